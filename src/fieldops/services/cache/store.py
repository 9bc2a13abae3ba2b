"""In-process key/value store with per-entry, per-category expiry."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Mapping, Optional

from ...config import settings

logger = logging.getLogger(__name__)


class CacheCategory(str, Enum):
    """Cache entry classification; each category carries its own default TTL.

    Keys follow a naming contract: geocode results live under ``location:``
    and distance lookups under ``distanceMatrix:``. Writers pass the category
    explicitly; ``from_key`` exists for the HTTP surface, where the prefix is
    the only signal a remote caller gives.
    """

    LOCATION = "location"
    DISTANCE_MATRIX = "distanceMatrix"
    DEFAULT = "default"

    @property
    def prefix(self) -> str:
        return "" if self is CacheCategory.DEFAULT else f"{self.value}:"

    def key(self, suffix: str) -> str:
        return f"{self.prefix}{suffix}"

    @classmethod
    def from_key(cls, key: str) -> "CacheCategory":
        for category in (cls.LOCATION, cls.DISTANCE_MATRIX):
            if key.startswith(category.prefix):
                return category
        return cls.DEFAULT


def default_ttls() -> dict[CacheCategory, int]:
    return {
        CacheCategory.LOCATION: settings.cache_ttl_location_seconds,
        CacheCategory.DISTANCE_MATRIX: settings.cache_ttl_distance_matrix_seconds,
        CacheCategory.DEFAULT: settings.cache_ttl_default_seconds,
    }


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: Any
    category: CacheCategory
    expires_at: float


def _validate_ttl(ttl: Any) -> int:
    if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl <= 0:
        raise ValueError(f"ttl must be a positive integer number of seconds, got {ttl!r}")
    return ttl


class ExpiringCache:
    """Time-based cache guarded by a single lock.

    There is no size bound and no LRU eviction: entries leave the map when
    deleted, when read after expiry, or when ``purge_expired`` sweeps them.
    """

    def __init__(
        self,
        ttls: Mapping[CacheCategory, int] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        resolved = default_ttls()
        if ttls:
            resolved.update(ttls)
        self.ttls = {category: _validate_ttl(value) for category, value in resolved.items()}
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                logger.debug("Cache entry expired: %s", key)
                return None
            return entry.value

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        category: CacheCategory = CacheCategory.DEFAULT,
    ) -> CacheEntry:
        seconds = self.ttls[category] if ttl is None else _validate_ttl(ttl)
        with self._lock:
            entry = CacheEntry(key=key, value=value, category=category, expires_at=self._clock() + seconds)
            self._entries[key] = entry
        return entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def expires_at(self, key: str) -> Optional[float]:
        with self._lock:
            entry = self._entries.get(key)
            return entry.expires_at if entry else None

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Purged %d expired cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None


@lru_cache()
def get_cache() -> ExpiringCache:
    """Process-wide cache shared by the HTTP surface and the scheduler."""
    return ExpiringCache()
