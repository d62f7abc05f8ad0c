"""Store and service wiring for the Jobshare backend."""

from typing import Annotated

from fastapi import Depends

from jobshare import JobSharing
from jobshare.config import JobShareConfig
from jobshare.storage import DocumentStore, SQLiteStore

from .config import Settings, get_settings
from .logging_config import get_logger

logger = get_logger("jobshare.api.database")

_store: DocumentStore | None = None


def get_store(settings: Settings | None = None) -> DocumentStore:
    """Get the cached document store."""
    global _store
    if _store is None:
        if settings is None:
            settings = get_settings()
        _store = SQLiteStore(settings.database_path)
        logger.info(f"Opened document store at {settings.database_path}")
    return _store


def get_job_sharing(settings: Annotated[Settings, Depends(get_settings)]) -> JobSharing:
    """FastAPI dependency for the sharing service."""
    config = JobShareConfig(
        max_cascade_depth=settings.max_cascade_depth,
        auto_assign_expires_in_hours=settings.auto_assign_expires_in_hours,
    )
    return JobSharing(get_store(settings), config=config)


# Type alias for dependency injection
Sharing = Annotated[JobSharing, Depends(get_job_sharing)]
