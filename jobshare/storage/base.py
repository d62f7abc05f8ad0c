"""
Document store protocol for job sharing.

The sharing protocol only needs a transactional key-document store: each
collection maps document ids to JSON-compatible dicts. Every stored document
carries a ``_version`` counter; writes made through a transaction are
checked against the version that was read, so a stale copy can never
silently replace a newer one.
"""

import copy
import uuid
from datetime import datetime, timezone
from typing import Any, ContextManager, Dict, Iterable, List, Optional, Protocol

from jobshare.errors import ConflictError

VERSION_FIELD = "_version"

# Collections used by the sharing protocol
COMPANIES = "companies"
JOBS = "jobs"
PARTNERSHIP_REQUESTS = "partnership_requests"
SHARE_REQUESTS = "job_share_requests"
DIRECTORY = "directory"
SYNC_QUEUE = "sync_queue"

ALLOWED_COLLECTIONS = frozenset(
    {COMPANIES, JOBS, PARTNERSHIP_REQUESTS, SHARE_REQUESTS, DIRECTORY, SYNC_QUEUE}
)


def validate_collection(name: str) -> str:
    """Reject collection names outside the allowlist."""
    if name not in ALLOWED_COLLECTIONS:
        raise ValueError(f"Unknown collection: {name}")
    return name


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime to ISO format (None stays None)."""
    return value.isoformat() if value else None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO datetime string, tolerating a trailing ``Z``.

    Naive values are assumed to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            text = str(value)
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            dt = datetime.fromisoformat(text)
        except (ValueError, TypeError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def matches_filters(doc: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    """Equality match on top-level fields. ``None`` also matches a missing field."""
    for key, expected in filters.items():
        if doc.get(key) != expected:
            return False
    return True


def copy_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    return copy.deepcopy(doc) if doc is not None else None


def check_version(collection: str, doc_id: str, stored: Optional[dict], incoming: dict) -> int:
    """Return the next version for ``incoming`` or raise on a stale write."""
    if stored is None:
        return 1
    stored_version = stored.get(VERSION_FIELD, 0)
    if incoming.get(VERSION_FIELD, stored_version) != stored_version:
        raise ConflictError(
            f"{collection}/{doc_id} was modified concurrently "
            f"(expected version {incoming.get(VERSION_FIELD)}, found {stored_version})"
        )
    return stored_version + 1


class Transaction(Protocol):
    """A unit of work against the document store.

    Writes become visible to other callers only when the enclosing
    ``transaction()`` block exits without an exception.
    """

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Get a document copy, or None."""
        ...

    def query(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        """List documents whose top-level fields equal ``filters``."""
        ...

    def insert(self, collection: str, doc: Dict[str, Any]) -> str:
        """Insert a new document. Raises ConflictError if the id exists."""
        ...

    def put(self, collection: str, doc: Dict[str, Any]) -> Dict[str, Any]:
        """Write a document, checking its ``_version`` against the stored one."""
        ...

    def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns True if it existed."""
        ...


class DocumentStore(Protocol):
    """Protocol for persistence backends."""

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Read a single document outside of a transaction."""
        ...

    def query(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        """Read documents outside of a transaction."""
        ...

    def transaction(self) -> ContextManager[Transaction]:
        """Open a serializable transaction."""
        ...


def seed(store: DocumentStore, collection: str, docs: Iterable[Dict[str, Any]]) -> List[str]:
    """Insert documents in a single transaction. Used by fixtures and the CLI."""
    ids = []
    with store.transaction() as tx:
        for doc in docs:
            ids.append(tx.insert(collection, dict(doc)))
    return ids
