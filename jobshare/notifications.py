"""
Notification collaborator.

Events are emitted when requests are created or answered. Delivery (email,
push) happens elsewhere; emitting is fire-and-forget and never affects the
outcome of the operation that triggered it.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

PARTNERSHIP_REQUESTED = "partnership.requested"
PARTNERSHIP_RESPONDED = "partnership.responded"
SHARE_REQUEST_CREATED = "share_request.created"
SHARE_REQUEST_RESPONDED = "share_request.responded"
JOB_STATUS_SYNCED = "job.status_synced"


class Notifier(Protocol):
    """Receives protocol events."""

    def emit(self, event: str, payload: Dict[str, Any]) -> None: ...


class LoggingNotifier:
    """Default notifier: records events in the log."""

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        logger.info(f"Event {event}: {payload}")


class RecordingNotifier:
    """Keeps emitted events in memory; handy for tests and the CLI."""

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        self.events.append((event, dict(payload)))

    def of_type(self, event: str) -> List[Dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]


class CallbackNotifier:
    """Forwards events to a plain callable."""

    def __init__(self, callback: Callable[[str, Dict[str, Any]], None]):
        self._callback = callback

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        self._callback(event, payload)


def safe_emit(notifier: Optional[Notifier], event: str, payload: Dict[str, Any]) -> None:
    """Emit an event, logging instead of raising if the notifier fails."""
    if notifier is None:
        return
    try:
        notifier.emit(event, payload)
    except Exception as e:
        logger.warning(f"Notifier failed for {event}: {e}")
