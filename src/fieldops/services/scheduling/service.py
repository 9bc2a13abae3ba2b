"""High-level orchestration for scheduling requests."""

from __future__ import annotations

import logging
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime
from functools import lru_cache
from typing import Callable, Optional, Sequence, TypeVar

from ...config import settings
from ...data.jobs_repository import CsvJobSource, CsvTechnicianRoster, JobSource, TechnicianRoster
from ...errors import InsufficientTechnicians, InvalidWindow, JobFetchFailure
from ...models.domain import Coordinate, DroppedJob, ServiceJob, Technician
from ...models.timestamps import ensure_utc
from ...schemas.scheduling import DroppedJobModel, ScheduledServiceModel, ScheduleResponse
from ..cache import get_cache
from ..clustering import ClusteringEngine
from ..dispatch import DispatchAssigner
from ..geocoding import GeoLookupAdapter, build_geocoding_provider
from ..routing import DistanceProviderAdapter, OSRMClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _call_with_timeout(fn: Callable[..., T], *args, timeout: float) -> T:
    executor = ThreadPoolExecutor(max_workers=1)
    try:
        return executor.submit(fn, *args).result(timeout=timeout)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def _summarise_dropped(dropped: Sequence[DroppedJob]) -> list[str]:
    counts = Counter(job.reason for job in dropped)
    return [f"{count} services unassigned. Reason: {reason}" for reason, count in counts.items()]


class ScheduleOrchestrator:
    """Fetch, locate, cluster and assign the jobs of one time window."""

    def __init__(
        self,
        *,
        job_source: JobSource,
        roster: TechnicianRoster,
        geo: GeoLookupAdapter,
        engine: ClusteringEngine,
        assigner: DispatchAssigner | None = None,
        clustering_mode: str | None = None,
        radius_km: float | None = None,
        capacity_policy: str | None = None,
        job_fetch_timeout: float | None = None,
        lookup_timeout: float | None = None,
        lookup_batch_timeout: float | None = None,
    ) -> None:
        self.job_source = job_source
        self.roster = roster
        self.geo = geo
        self.engine = engine
        self.assigner = assigner or DispatchAssigner()
        self.clustering_mode = clustering_mode or settings.clustering_mode
        self.radius_km = radius_km if radius_km is not None else settings.cluster_radius_km
        self.capacity_policy = capacity_policy or settings.capacity_policy
        self.job_fetch_timeout = job_fetch_timeout or settings.job_fetch_timeout_seconds
        self.lookup_timeout = lookup_timeout or settings.provider_timeout_seconds
        self.lookup_batch_timeout = lookup_batch_timeout or settings.lookup_batch_timeout_seconds
        if self.capacity_policy not in ("fail", "reduce"):
            raise ValueError(f"Unknown capacity policy '{self.capacity_policy}'.")

    def _fetch(self, label: str, fn: Callable[..., Sequence[T]], window: tuple[datetime, datetime]) -> list[T]:
        try:
            return list(_call_with_timeout(fn, *window, timeout=self.job_fetch_timeout))
        except FutureTimeout as exc:
            raise JobFetchFailure(window, f"{label} timed out after {self.job_fetch_timeout:.1f}s") from exc
        except Exception as exc:
            raise JobFetchFailure(window, f"{label} failed: {exc}") from exc

    def _target_clusters(
        self,
        requested: Optional[int],
        technicians: Sequence[Technician],
        window: tuple[datetime, datetime],
    ) -> Optional[int]:
        if requested is None or requested <= len(technicians):
            return requested
        if self.capacity_policy == "fail":
            raise InsufficientTechnicians(clusters=requested, technicians=len(technicians), window=window)
        logger.warning(
            "Requested %d clusters but only %d technicians are available; reducing",
            requested,
            len(technicians),
        )
        return len(technicians)

    def schedule(
        self,
        window_start: datetime,
        window_end: datetime,
        target_clusters: Optional[int] = None,
    ) -> ScheduleResponse:
        start, end = ensure_utc(window_start), ensure_utc(window_end)
        if end <= start:
            raise InvalidWindow(start, end)
        if target_clusters is not None and target_clusters < 1:
            raise ValueError("target_clusters must be >= 1")
        window = (start, end)
        started = time.perf_counter()

        jobs: list[ServiceJob] = self._fetch("job source", self.job_source.fetch_jobs, window)
        technicians: list[Technician] = self._fetch("technician roster", self.roster.list_technicians, window)
        logger.info(
            "Fetched %d jobs and %d technicians for [%s, %s)",
            len(jobs),
            len(technicians),
            start.isoformat(),
            end.isoformat(),
        )

        located, dropped = self.geo.resolve_many(
            jobs,
            timeout=self.lookup_timeout,
            batch_timeout=self.lookup_batch_timeout,
        )
        if dropped:
            logger.warning("%d of %d jobs dropped before clustering", len(dropped), len(jobs))

        if not located:
            return self._response(window, [], self._empty_info(technicians), dropped, started)
        if not technicians:
            raise InsufficientTechnicians(
                clusters=target_clusters or 1,
                technicians=0,
                window=window,
                reason="no technicians available",
            )

        target = self._target_clusters(target_clusters, technicians, window)
        clustering = self.engine.cluster(
            located,
            max_clusters=len(technicians),
            target_clusters=target,
            radius_km=self.radius_km if self.clustering_mode == "radius" else None,
        )
        try:
            dispatch = self.assigner.assign(clustering.clusters, technicians)
        except InsufficientTechnicians as exc:
            raise InsufficientTechnicians(
                clusters=exc.clusters,
                technicians=exc.technicians,
                window=window,
                reason=exc.reason,
            ) from exc

        by_id = {job.job_id: job for job in located}
        scheduled: list[ScheduledServiceModel] = []
        for assignment in dispatch.assignments:
            for job_id in assignment.job_ids:
                job = by_id[job_id]
                coordinate: Coordinate = job.coordinate
                scheduled.append(
                    ScheduledServiceModel(
                        jobId=job.job_id,
                        techId=assignment.tech_id,
                        clusterId=assignment.cluster_id,
                        locationRef=job.location_ref,
                        start=job.start,
                        end=job.end,
                        latitude=coordinate.latitude,
                        longitude=coordinate.longitude,
                    )
                )

        info = {**clustering.metadata, **dispatch.clustering_info}
        return self._response(window, scheduled, info, dropped, started)

    @staticmethod
    def _empty_info(technicians: Sequence[Technician]) -> dict:
        return {
            "totalClusters": 0,
            "clusterSizes": {},
            "techniciansUsed": 0,
            "techniciansAvailable": len(technicians),
            "assignments": {},
            "connectedPointsCount": 0,
            "outlierCount": 0,
        }

    @staticmethod
    def _response(
        window: tuple[datetime, datetime],
        scheduled: list[ScheduledServiceModel],
        info: dict,
        dropped: Sequence[DroppedJob],
        started: float,
    ) -> ScheduleResponse:
        clustering_info = dict(info)
        clustering_info["window"] = {"start": window[0].isoformat(), "end": window[1].isoformat()}
        clustering_info["droppedCount"] = len(dropped)
        clustering_info["totalDuration"] = round((time.perf_counter() - started) * 1000.0, 3)
        logger.info(
            "Scheduled %d services across %d clusters (%d dropped)",
            len(scheduled),
            clustering_info.get("totalClusters", 0),
            len(dropped),
        )
        return ScheduleResponse(
            scheduledServices=scheduled,
            clusteringInfo=clustering_info,
            droppedJobs=[
                DroppedJobModel(jobId=job.job_id, locationRef=job.location_ref, reason=job.reason)
                for job in dropped
            ],
            unassignedServices=_summarise_dropped(dropped),
        )


def build_orchestrator() -> ScheduleOrchestrator:
    """Wire the orchestrator from settings and the process-wide cache."""
    cache = get_cache()
    distance_provider = OSRMClient() if settings.osrm_base_url else None
    distance = DistanceProviderAdapter(distance_provider, cache) if distance_provider else None
    origin = Coordinate(*settings.dispatch_origin) if settings.dispatch_origin else None
    return ScheduleOrchestrator(
        job_source=CsvJobSource(),
        roster=CsvTechnicianRoster(),
        geo=GeoLookupAdapter(build_geocoding_provider(), cache),
        engine=ClusteringEngine(
            distance=distance,
            max_jobs_per_cluster=settings.max_jobs_per_technician,
            origin=origin,
        ),
    )


@lru_cache()
def get_orchestrator() -> ScheduleOrchestrator:
    return build_orchestrator()
