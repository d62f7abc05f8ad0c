"""Read-only directory lookup of companies by zip code."""

import logging
from typing import Any, Dict, List, Protocol

from jobshare.errors import ValidationError
from jobshare.storage import DIRECTORY, DocumentStore

logger = logging.getLogger(__name__)


def listing_rating(entry: Dict[str, Any]) -> float:
    """Average rating of a listing; older listings only carry ``rating``."""
    value = entry.get("rating_average")
    if value is None:
        value = entry.get("rating")
    return float(value or 0)


class DirectoryIndex(Protocol):
    """Search interface of the company directory."""

    def search(self, zip_code: str, is_active: bool = True) -> List[Dict[str, Any]]: ...


class StoreDirectoryIndex:
    """Directory backed by the ``directory`` collection of a document store."""

    def __init__(self, store: DocumentStore, min_zip_length: int = 5):
        self._store = store
        self._min_zip_length = min_zip_length

    def search(self, zip_code: str, is_active: bool = True) -> List[Dict[str, Any]]:
        """Find listed companies in a zip code, best-rated first.

        Raises:
            ValidationError: If the zip code is empty or too short
        """
        zip_code = (zip_code or "").strip()
        if len(zip_code) < self._min_zip_length:
            raise ValidationError("Please provide a valid ZIP code")

        entries = self._store.query(DIRECTORY, zip=zip_code, is_active=is_active)
        entries.sort(key=lambda e: (-listing_rating(e), e.get("name") or ""))
        logger.debug(f"Directory search {zip_code}: {len(entries)} result(s)")
        return entries
