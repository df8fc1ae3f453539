"""
Assignment stores - where visitor-to-variant assignments are remembered.

AssignmentStore is the contract the assignment engine depends on. The
database implementation lives in repositories.variant_assignment_repository;
CachedAssignmentStore fronts any store with an in-process TTL cache.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple
import threading
import time


class AssignmentStore(ABC):
    """Persistent visitor -> variant map, keyed by test"""

    @abstractmethod
    def get_assignment(self, test_id: str, visitor_id: str) -> Optional[str]:
        """Return the stored variant key or None"""

    @abstractmethod
    def save_assignment(self, test_id: str, visitor_id: str, variant_key: str) -> None:
        """Store the assignment; a later save for the same pair wins"""

    def forget(self, test_id: str, visitor_id: str) -> None:
        """Drop any copy of an assignment whose transaction was rolled back"""


class CacheEntry:
    """A cached value with expiration."""

    def __init__(self, value: Any, ttl: Optional[int] = None):
        self.value = value
        self.created_at = time.monotonic()
        self.ttl = ttl

    def is_expired(self) -> bool:
        if self.ttl is None:
            return False
        return time.monotonic() - self.created_at > self.ttl


class CachedAssignmentStore(AssignmentStore):
    """
    Read-through, write-through cache in front of another AssignmentStore.

    Thread-safe. Only positive lookups are cached, so a visitor assigned by
    another worker is picked up on the next miss. Callers forget() saves
    whose transaction did not commit.
    """

    def __init__(self, backing_store: AssignmentStore, ttl: Optional[int] = 3600,
                 max_entries: int = 50000):
        self._backing_store = backing_store
        self._ttl = ttl
        self._max_entries = max_entries
        self._cache: Dict[Tuple[str, str], CacheEntry] = {}
        self._lock = threading.RLock()

    def get_assignment(self, test_id: str, visitor_id: str) -> Optional[str]:
        key = (test_id, visitor_id)
        with self._lock:
            entry = self._cache.get(key)
            if entry is not None:
                if not entry.is_expired():
                    return entry.value
                del self._cache[key]

        variant_key = self._backing_store.get_assignment(test_id, visitor_id)
        if variant_key is not None:
            self._remember(key, variant_key)
        return variant_key

    def save_assignment(self, test_id: str, visitor_id: str, variant_key: str) -> None:
        self._backing_store.save_assignment(test_id, visitor_id, variant_key)
        self._remember((test_id, visitor_id), variant_key)

    def forget(self, test_id: str, visitor_id: str) -> None:
        with self._lock:
            self._cache.pop((test_id, visitor_id), None)
        self._backing_store.forget(test_id, visitor_id)

    def _remember(self, key: Tuple[str, str], variant_key: str) -> None:
        with self._lock:
            if len(self._cache) >= self._max_entries and key not in self._cache:
                self._evict_expired()
                if len(self._cache) >= self._max_entries:
                    # Oldest insertion goes first
                    self._cache.pop(next(iter(self._cache)))
            self._cache[key] = CacheEntry(variant_key, self._ttl)

    def _evict_expired(self) -> None:
        expired = [key for key, entry in self._cache.items() if entry.is_expired()]
        for key in expired:
            del self._cache[key]
