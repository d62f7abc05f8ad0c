"""Logging setup for the Jobshare backend."""

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def configure_logging(debug: bool = False) -> None:
    """Configure root logging once for the process."""
    level = logging.DEBUG if debug else logging.INFO
    root = logging.getLogger()
    if not any(getattr(h, "_jobshare", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._jobshare = True
        root.addHandler(handler)
    root.setLevel(level)
    # Library loggers follow the app level
    logging.getLogger("jobshare").setLevel(level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


_share_logger = get_logger("jobshare.api.events")


def log_share_event(
    action: str,
    company_id: str,
    subject_id: str,
    success: bool,
    error: str | None = None,
) -> None:
    """Log a request-level sharing action in one greppable line."""
    outcome = "OK" if success else "FAIL"
    message = f"{action.upper()} | {company_id} | {subject_id} | {outcome}"
    if error:
        message += f" | {error}"
    if success:
        _share_logger.info(message)
    else:
        _share_logger.warning(message)
