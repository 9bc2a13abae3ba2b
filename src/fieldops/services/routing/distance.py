"""Cache-first travel distance lookups with a straight-line fallback."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Protocol, Sequence

import numpy as np

from ...config import settings
from ...errors import DistanceUnavailable
from ...models.domain import Coordinate
from ..cache import CacheCategory, ExpiringCache
from ..geospatial import coordinate_distance_km

logger = logging.getLogger(__name__)


class DistanceProvider(Protocol):
    def distance_km(self, a: Coordinate, b: Coordinate) -> float:
        ...


def pair_key(a: Coordinate, b: Coordinate) -> str:
    """Order-independent cache key for a coordinate pair.

    Coordinates are written at full precision (``repr`` round-trips floats), so
    two distinct pairs never share an entry.
    """
    first, second = sorted(((a.latitude, a.longitude), (b.latitude, b.longitude)))
    return CacheCategory.DISTANCE_MATRIX.key(f"{first[0]!r},{first[1]!r}|{second[0]!r},{second[1]!r}")


class DistanceProviderAdapter:
    def __init__(
        self,
        provider: Optional[DistanceProvider],
        cache: ExpiringCache,
        max_parallel_lookups: int | None = None,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.max_parallel_lookups = max_parallel_lookups or settings.max_parallel_lookups

    def distance(self, a: Coordinate, b: Coordinate) -> float:
        """Travel distance in km between two coordinates.

        Raises:
            DistanceUnavailable: no provider is configured, or it failed for
                this pair. Callers treat this as retryable.
        """
        if a == b:
            return 0.0
        key = pair_key(a, b)
        cached = self.cache.get(key)
        if cached is not None:
            return float(cached)
        if self.provider is None:
            raise DistanceUnavailable("no distance provider configured")

        try:
            value = self.provider.distance_km(a, b)
        except Exception as exc:
            raise DistanceUnavailable(f"provider error: {exc}") from exc
        if value is None or value < 0:
            raise DistanceUnavailable(f"provider returned invalid distance {value!r}")

        self.cache.set(key, float(value), category=CacheCategory.DISTANCE_MATRIX)
        return float(value)

    def distance_or_estimate(self, a: Coordinate, b: Coordinate) -> float:
        try:
            return self.distance(a, b)
        except DistanceUnavailable as exc:
            if self.provider is not None:
                logger.warning("Falling back to straight-line distance: %s", exc)
            return coordinate_distance_km(a, b)

    def matrix(self, coordinates: Sequence[Coordinate]) -> np.ndarray:
        """Symmetric pairwise distance matrix; pairs are looked up concurrently."""
        size = len(coordinates)
        result = np.zeros((size, size))
        pairs = [(i, j) for i in range(size) for j in range(i + 1, size)]
        if not pairs:
            return result

        with ThreadPoolExecutor(max_workers=min(self.max_parallel_lookups, len(pairs))) as executor:
            values = executor.map(lambda pair: self.distance_or_estimate(coordinates[pair[0]], coordinates[pair[1]]), pairs)
            for (i, j), value in zip(pairs, values):
                result[i, j] = value
                result[j, i] = value
        return result
