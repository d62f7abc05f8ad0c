"""Configuration for job sharing."""

import os
from dataclasses import dataclass
from typing import Optional, Tuple

# Hop cap for auto-assignment cascades
DEFAULT_MAX_CASCADE_DEPTH = 10

# Partnership request messages are shown verbatim to the target company
DEFAULT_MAX_MESSAGE_LENGTH = 500

DEFAULT_TERMINAL_STATUSES = ("served", "cancelled")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    if raw.strip().lower() in ("none", "never"):
        return None
    return int(raw)


@dataclass
class JobShareConfig:
    """Tunable limits for the sharing protocol.

    Attributes:
        max_cascade_depth: Maximum number of automatic hops a single
            acceptance may trigger
        max_message_length: Maximum partnership request message length
        min_zip_length: Minimum length of a zip code used for matching
        auto_assign_expires_in_hours: Expiry for auto-assigned requests
            (None = never expires)
        sync_max_attempts: Inline attempts per status sync target
        sync_max_retries: Queue retries before a sync target is dead-lettered
        terminal_statuses: Job statuses that end a job and trigger sync
    """

    max_cascade_depth: int = DEFAULT_MAX_CASCADE_DEPTH
    max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH
    min_zip_length: int = 5
    auto_assign_expires_in_hours: Optional[int] = None
    sync_max_attempts: int = 3
    sync_max_retries: int = 5
    terminal_statuses: Tuple[str, ...] = DEFAULT_TERMINAL_STATUSES

    def __post_init__(self):
        if self.max_cascade_depth < 0:
            raise ValueError("max_cascade_depth cannot be negative")
        if self.max_message_length <= 0:
            raise ValueError("max_message_length must be positive")
        if self.sync_max_attempts < 1:
            raise ValueError("sync_max_attempts must be at least 1")
        if (
            self.auto_assign_expires_in_hours is not None
            and self.auto_assign_expires_in_hours <= 0
        ):
            raise ValueError("auto_assign_expires_in_hours must be positive")
        self.terminal_statuses = tuple(self.terminal_statuses)

    @classmethod
    def from_env(cls) -> "JobShareConfig":
        """Build a config from ``JOBSHARE_*`` environment variables."""
        statuses = os.environ.get("JOBSHARE_TERMINAL_STATUSES")
        return cls(
            max_cascade_depth=_env_int("JOBSHARE_MAX_CASCADE_DEPTH", DEFAULT_MAX_CASCADE_DEPTH),
            max_message_length=_env_int(
                "JOBSHARE_MAX_MESSAGE_LENGTH", DEFAULT_MAX_MESSAGE_LENGTH
            ),
            min_zip_length=_env_int("JOBSHARE_MIN_ZIP_LENGTH", 5),
            auto_assign_expires_in_hours=_env_int("JOBSHARE_AUTO_ASSIGN_EXPIRES_IN_HOURS", None),
            sync_max_attempts=_env_int("JOBSHARE_SYNC_MAX_ATTEMPTS", 3),
            sync_max_retries=_env_int("JOBSHARE_SYNC_MAX_RETRIES", 5),
            terminal_statuses=(
                tuple(s.strip() for s in statuses.split(",") if s.strip())
                if statuses
                else DEFAULT_TERMINAL_STATUSES
            ),
        )

    def is_terminal(self, status: Optional[str]) -> bool:
        return status in self.terminal_statuses


DEFAULT_CONFIG = JobShareConfig()
