"""Cache-first coordinate resolution for service jobs."""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Sequence

from ...config import settings
from ...errors import GeocodeFailure
from ...models.domain import Coordinate, DroppedJob, ServiceJob
from ..cache import CacheCategory, ExpiringCache
from .providers import GeocodingProvider

logger = logging.getLogger(__name__)


class GeoLookupAdapter:
    def __init__(
        self,
        provider: GeocodingProvider,
        cache: ExpiringCache,
        max_parallel_lookups: int | None = None,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.max_parallel_lookups = max_parallel_lookups or settings.max_parallel_lookups

    @staticmethod
    def cache_key(location_ref: str) -> str:
        return CacheCategory.LOCATION.key(location_ref)

    def resolve(self, location_ref: str) -> Coordinate:
        """Return the coordinate for ``location_ref``, consulting the cache first.

        Raises:
            GeocodeFailure: the reference is blank, the provider errors, or it
                has no match. No default coordinate is ever substituted.
        """
        if not location_ref or not location_ref.strip():
            raise GeocodeFailure(location_ref or "", "empty location reference")

        key = self.cache_key(location_ref)
        cached = Coordinate.from_cached(self.cache.get(key))
        if cached is not None:
            logger.debug("Geocode cache hit for %s", location_ref)
            return cached

        try:
            coordinate = self.provider.geocode(location_ref)
        except Exception as exc:
            raise GeocodeFailure(location_ref, f"provider error: {exc}") from exc
        if coordinate is None:
            raise GeocodeFailure(location_ref, "no match for location reference")

        self.cache.set(key, coordinate, category=CacheCategory.LOCATION)
        return coordinate

    def _timed_resolve(self, job_id: str, location_ref: str, started: dict[str, float]) -> Coordinate:
        started[job_id] = time.monotonic()
        return self.resolve(location_ref)

    def resolve_many(
        self,
        jobs: Sequence[ServiceJob],
        timeout: float | None = None,
        batch_timeout: float | None = None,
    ) -> tuple[list[ServiceJob], list[DroppedJob]]:
        """Resolve every job concurrently; failures are dropped, not fatal.

        ``timeout`` bounds each lookup, measured from the moment a worker
        picks it up, so lookups waiting in the queue do not use up their
        budget. ``batch_timeout`` bounds the whole call; lookups still queued
        or running when it passes are dropped as well. Jobs that already
        carry a coordinate are kept as-is. Both returned lists keep the input
        order.
        """
        per_lookup = timeout if timeout is not None else settings.provider_timeout_seconds
        batch_limit = batch_timeout if batch_timeout is not None else settings.lookup_batch_timeout_seconds
        pending = [job for job in jobs if job.coordinate is None]
        resolved: dict[str, Coordinate] = {}
        failures: dict[str, str] = {}

        if pending:
            started: dict[str, float] = {}
            executor = ThreadPoolExecutor(max_workers=min(self.max_parallel_lookups, len(pending)))
            try:
                futures = {
                    executor.submit(self._timed_resolve, job.job_id, job.location_ref, started): job
                    for job in pending
                }

                def collect(done) -> None:
                    for future in done:
                        job = futures[future]
                        try:
                            resolved[job.job_id] = future.result()
                        except GeocodeFailure as exc:
                            failures[job.job_id] = exc.reason

                outstanding = set(futures)
                batch_deadline = time.monotonic() + batch_limit
                while outstanding:
                    now = time.monotonic()
                    if now >= batch_deadline:
                        break
                    job_ids = [futures[f].job_id for f in outstanding]
                    expiries = [started[job_id] + per_lookup for job_id in job_ids if job_id in started]
                    # re-check at least once per lookup budget to catch lookups that started since the last pass
                    wake_at = min(expiries + [batch_deadline, now + per_lookup])
                    done, outstanding = wait(outstanding, timeout=max(wake_at - now, 0.0), return_when=FIRST_COMPLETED)
                    collect(done)
                    now = time.monotonic()
                    expired = {
                        f for f in outstanding
                        if not f.done()
                        and futures[f].job_id in started
                        and now - started[futures[f].job_id] >= per_lookup
                    }
                    for future in expired:
                        future.cancel()
                        failures[futures[future].job_id] = f"lookup timed out after {per_lookup:.1f}s"
                    outstanding -= expired
                done, outstanding = wait(outstanding, timeout=0)
                collect(done)
                for future in outstanding:
                    future.cancel()
                    failures[futures[future].job_id] = f"lookup batch timed out after {batch_limit:.1f}s"
            finally:
                executor.shutdown(wait=False, cancel_futures=True)

        located: list[ServiceJob] = []
        dropped: list[DroppedJob] = []
        for job in jobs:
            if job.coordinate is not None:
                located.append(job)
            elif job.job_id in resolved:
                located.append(job.located(resolved[job.job_id]))
            else:
                reason = failures.get(job.job_id, "unresolved")
                logger.warning("Dropping job %s (location %r): %s", job.job_id, job.location_ref, reason)
                dropped.append(DroppedJob(job_id=job.job_id, location_ref=job.location_ref, reason=reason))
        return located, dropped
