"""
In-memory document store for testing and local development.
"""

import contextlib
import logging
import threading
from typing import Any, Dict, Iterator, List, Optional

from jobshare.errors import ConflictError

from .base import (
    VERSION_FIELD,
    check_version,
    copy_doc,
    matches_filters,
    new_id,
    validate_collection,
)

logger = logging.getLogger(__name__)

_DELETED = object()


class InMemoryTransaction:
    """Transaction that stages writes until the owning store commits them."""

    def __init__(self, data: Dict[str, Dict[str, dict]]):
        self._data = data
        self._staged: Dict[str, Dict[str, Any]] = {}

    def _current(self, collection: str, doc_id: str) -> Optional[dict]:
        staged = self._staged.get(collection, {})
        if doc_id in staged:
            value = staged[doc_id]
            return None if value is _DELETED else value
        return self._data.get(collection, {}).get(doc_id)

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        validate_collection(collection)
        return copy_doc(self._current(collection, doc_id))

    def query(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        validate_collection(collection)
        ids = set(self._data.get(collection, {})) | set(self._staged.get(collection, {}))
        results = []
        for doc_id in sorted(ids):
            doc = self._current(collection, doc_id)
            if doc is not None and matches_filters(doc, filters):
                results.append(copy_doc(doc))
        return results

    def insert(self, collection: str, doc: Dict[str, Any]) -> str:
        validate_collection(collection)
        doc_id = doc.get("id") or new_id()
        if self._current(collection, doc_id) is not None:
            raise ConflictError(f"{collection}/{doc_id} already exists")
        stored = copy_doc(doc)
        stored["id"] = doc_id
        stored[VERSION_FIELD] = 1
        self._staged.setdefault(collection, {})[doc_id] = stored
        return doc_id

    def put(self, collection: str, doc: Dict[str, Any]) -> Dict[str, Any]:
        validate_collection(collection)
        doc_id = doc.get("id")
        if not doc_id:
            raise ValueError("Document id is required for put")
        stored = copy_doc(doc)
        stored[VERSION_FIELD] = check_version(
            collection, doc_id, self._current(collection, doc_id), doc
        )
        self._staged.setdefault(collection, {})[doc_id] = stored
        return copy_doc(stored)

    def delete(self, collection: str, doc_id: str) -> bool:
        validate_collection(collection)
        existed = self._current(collection, doc_id) is not None
        self._staged.setdefault(collection, {})[doc_id] = _DELETED
        return existed

    def _apply(self) -> None:
        for collection, docs in self._staged.items():
            target = self._data.setdefault(collection, {})
            for doc_id, value in docs.items():
                if value is _DELETED:
                    target.pop(doc_id, None)
                else:
                    target[doc_id] = value


class InMemoryStore:
    """Dict-backed document store.

    Transactions hold a process-wide lock for their whole duration, so they
    are serializable: two concurrent callers racing on the same document run
    one after the other and the second observes the first one's writes.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, dict]] = {}
        self._lock = threading.RLock()

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        validate_collection(collection)
        with self._lock:
            return copy_doc(self._data.get(collection, {}).get(doc_id))

    def query(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        validate_collection(collection)
        with self._lock:
            docs = self._data.get(collection, {})
            return [
                copy_doc(docs[doc_id])
                for doc_id in sorted(docs)
                if matches_filters(docs[doc_id], filters)
            ]

    @contextlib.contextmanager
    def transaction(self) -> Iterator[InMemoryTransaction]:
        with self._lock:
            tx = InMemoryTransaction(self._data)
            try:
                yield tx
            except Exception as e:
                logger.debug(f"Transaction failed, discarding staged writes: {e}")
                raise
            tx._apply()

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
