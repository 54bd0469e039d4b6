"""
Trade Engine - Document Store.

============================================================
PURPOSE
============================================================
Key-value document persistence contract used by the
coordinator, and an in-process implementation.

CONTRACT:
- get(key) returns None when the document does not exist
- Every write bumps the document version
- commit() applies several writes atomically: either every
  key is updated or none is
- commit() raises WriteConflictError when any document's
  version differs from the version the caller read
  (expected version 0 means "must not exist yet")

KEYS:
- league/{league_id}/settings
- user/{user_id}/tradeState
- user/{user_id}/roster

============================================================
"""

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from core.exceptions import WriteConflictError


logger = logging.getLogger(__name__)


# ============================================================
# KEYS
# ============================================================

def settings_key(league_id: str) -> str:
    return f"league/{league_id}/settings"


def trade_state_key(user_id: str) -> str:
    return f"user/{user_id}/tradeState"


def roster_key(user_id: str) -> str:
    return f"user/{user_id}/roster"


# ============================================================
# DOCUMENT
# ============================================================

@dataclass(frozen=True)
class StoredDocument:
    """A document and the version it was read at."""

    key: str
    """Document key."""

    data: Dict[str, Any]
    """JSON-safe payload."""

    version: int
    """Monotonic write counter, starting at 1."""


# ============================================================
# STORE INTERFACE
# ============================================================

class PersistentStore(ABC):
    """Async document store interface."""

    @abstractmethod
    async def get(self, key: str) -> Optional[StoredDocument]:
        """Read a document, or None if absent."""

    @abstractmethod
    async def set(self, key: str, data: Dict[str, Any]) -> StoredDocument:
        """Unconditionally write a single document."""

    @abstractmethod
    async def commit(
        self,
        writes: Mapping[str, Dict[str, Any]],
        expected_versions: Mapping[str, int],
    ) -> Dict[str, StoredDocument]:
        """
        Atomically write several documents.

        Args:
            writes: Key to new payload
            expected_versions: Key to version read (0 = absent)

        Returns:
            Written documents keyed by key

        Raises:
            WriteConflictError: If any expected version is stale
        """

    async def close(self) -> None:
        """Release resources."""


# ============================================================
# IN-MEMORY STORE
# ============================================================

class InMemoryDocumentStore(PersistentStore):
    """
    Process-local store.

    Payloads are deep-copied in and out so callers can never
    mutate stored state without a write.
    """

    def __init__(self):
        self._documents: Dict[str, Tuple[Dict[str, Any], int]] = {}
        self._lock = asyncio.Lock()
        self._commit_count = 0

    @property
    def commit_count(self) -> int:
        """Number of successful commit() calls."""
        return self._commit_count

    def _version_of(self, key: str) -> int:
        entry = self._documents.get(key)
        return entry[1] if entry else 0

    async def get(self, key: str) -> Optional[StoredDocument]:
        async with self._lock:
            entry = self._documents.get(key)
            if entry is None:
                return None
            data, version = entry
            return StoredDocument(key=key, data=copy.deepcopy(data), version=version)

    async def set(self, key: str, data: Dict[str, Any]) -> StoredDocument:
        async with self._lock:
            version = self._version_of(key) + 1
            self._documents[key] = (copy.deepcopy(data), version)
            logger.debug(f"Stored {key} at version {version}")
            return StoredDocument(key=key, data=copy.deepcopy(data), version=version)

    async def commit(
        self,
        writes: Mapping[str, Dict[str, Any]],
        expected_versions: Mapping[str, int],
    ) -> Dict[str, StoredDocument]:
        async with self._lock:
            # Validate everything before touching anything
            for key, expected in expected_versions.items():
                actual = self._version_of(key)
                if actual != expected:
                    raise WriteConflictError(
                        f"Version conflict on {key}",
                        key=key,
                        expected_version=expected,
                        actual_version=actual,
                    )

            written: Dict[str, StoredDocument] = {}
            for key, data in writes.items():
                version = self._version_of(key) + 1
                self._documents[key] = (copy.deepcopy(data), version)
                written[key] = StoredDocument(key=key, data=copy.deepcopy(data), version=version)

            self._commit_count += 1
            logger.debug(f"Committed {len(written)} documents: {sorted(written)}")
            return written


__all__ = [
    "settings_key",
    "trade_state_key",
    "roster_key",
    "StoredDocument",
    "PersistentStore",
    "InMemoryDocumentStore",
]
