"""Storage backends for job sharing.

- DocumentStore / Transaction: protocols every backend implements
- InMemoryStore: dict-backed store for tests and local use
- SQLiteStore: file-backed JSON document store
"""

from jobshare.storage.base import (
    COMPANIES,
    DIRECTORY,
    JOBS,
    PARTNERSHIP_REQUESTS,
    SHARE_REQUESTS,
    SYNC_QUEUE,
    VERSION_FIELD,
    DocumentStore,
    Transaction,
    format_datetime,
    new_id,
    parse_datetime,
    seed,
    utc_now,
)
from jobshare.storage.memory import InMemoryStore
from jobshare.storage.sqlite import SQLiteStore

__all__ = [
    "DocumentStore",
    "Transaction",
    "InMemoryStore",
    "SQLiteStore",
    "COMPANIES",
    "JOBS",
    "PARTNERSHIP_REQUESTS",
    "SHARE_REQUESTS",
    "DIRECTORY",
    "SYNC_QUEUE",
    "VERSION_FIELD",
    "format_datetime",
    "new_id",
    "parse_datetime",
    "seed",
    "utc_now",
]
