"""Greedy spatial clustering of located service jobs."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from ...models.domain import Cluster, Coordinate, ServiceJob
from ..geospatial import coordinate_distance_km, haversine_matrix_km
from ..routing.distance import DistanceProviderAdapter

logger = logging.getLogger(__name__)

ALGORITHM_NAME = "greedy-nearest-centroid"


@dataclass(slots=True)
class ClusteringResult:
    clusters: list[Cluster]
    metadata: dict = field(default_factory=dict)

    def counts(self) -> dict[str, int]:
        return {cluster.cluster_id: len(cluster) for cluster in self.clusters}


class ClusteringEngine:
    """Partition jobs into at most ``max_clusters`` geographic groups.

    Features:
    - Deterministic: jobs are processed in (latitude, longitude, job_id) order
      and every tie is broken by index or identifier
    - Count mode seeds one cluster per slot by farthest-point selection
    - Radius mode opens a new cluster when no centroid is within the radius
    - Optional rebalancing enforces a maximum number of jobs per cluster
    """

    def __init__(
        self,
        *,
        distance: DistanceProviderAdapter | None = None,
        max_jobs_per_cluster: int | None = None,
        origin: Coordinate | None = None,
    ) -> None:
        if max_jobs_per_cluster is not None and max_jobs_per_cluster < 1:
            raise ValueError("max_jobs_per_cluster must be >= 1")
        self.distance = distance
        self.max_jobs_per_cluster = max_jobs_per_cluster
        self.origin = origin or Coordinate(0.0, 0.0)

    def _distance(self, a: Coordinate, b: Coordinate) -> float:
        if self.distance is not None:
            return self.distance.distance_or_estimate(a, b)
        return coordinate_distance_km(a, b)

    def _pairwise(self, coordinates: Sequence[Coordinate]) -> np.ndarray:
        if self.distance is not None:
            return self.distance.matrix(coordinates)
        return haversine_matrix_km(coordinates)

    def _nearest(self, coordinate: Coordinate, clusters: Sequence[Cluster], candidates: Sequence[int]) -> tuple[int, float]:
        best_index, best_distance = -1, float("inf")
        for index in candidates:
            centroid = clusters[index].centroid
            if centroid is None:
                raise ValueError(f"Cluster {index} has no members to measure against.")
            distance = self._distance(coordinate, centroid)
            if distance < best_distance:
                best_index, best_distance = index, distance
        return best_index, best_distance

    @staticmethod
    def _farthest_point_seeds(matrix: np.ndarray, k: int) -> list[int]:
        """Pick ``k`` row indices that are maximally separated, starting at row 0."""
        seeds = [0]
        min_distance = matrix[0].astype(float).copy()
        min_distance[0] = -1.0
        while len(seeds) < k:
            # argmax returns the first maximum, so ties go to the earlier job
            index = int(np.argmax(min_distance))
            seeds.append(index)
            min_distance = np.minimum(min_distance, matrix[index])
            min_distance[seeds] = -1.0
        return seeds

    def _seed_and_assign(self, ordered: Sequence[ServiceJob], k: int) -> list[Cluster]:
        coordinates = [job.coordinate for job in ordered]
        matrix = self._pairwise(coordinates)
        seeds = self._farthest_point_seeds(matrix, k)

        clusters: list[Cluster] = []
        for seed in seeds:
            cluster = Cluster(cluster_id="")
            cluster.add(ordered[seed].job_id, coordinates[seed])
            clusters.append(cluster)

        seed_set = set(seeds)
        candidates = range(len(clusters))
        for index, job in enumerate(ordered):
            if index in seed_set:
                continue
            target, _ = self._nearest(job.coordinate, clusters, candidates)
            clusters[target].add(job.job_id, job.coordinate)
        return clusters

    def _grow_by_radius(self, ordered: Sequence[ServiceJob], max_clusters: int, radius_km: float) -> list[Cluster]:
        clusters: list[Cluster] = []
        for job in ordered:
            if clusters:
                target, distance = self._nearest(job.coordinate, clusters, range(len(clusters)))
                if distance <= radius_km or len(clusters) >= max_clusters:
                    clusters[target].add(job.job_id, job.coordinate)
                    continue
            cluster = Cluster(cluster_id="")
            cluster.add(job.job_id, job.coordinate)
            clusters.append(cluster)
        return clusters

    def _rebalance(self, clusters: list[Cluster], coordinates: dict[str, Coordinate]) -> list[dict]:
        """Move farthest members out of overloaded clusters into ones with spare room."""
        capacity = self.max_jobs_per_cluster
        transfers: list[dict] = []
        if capacity is None:
            return transfers

        for index, cluster in enumerate(clusters):
            while len(cluster) > capacity:
                centroid = cluster.centroid
                job_id = min(
                    cluster.job_ids,
                    key=lambda jid: (-self._distance(coordinates[jid], centroid), jid),
                )
                targets = [i for i, other in enumerate(clusters) if i != index and len(other) < capacity]
                if not targets:
                    break
                target, distance = self._nearest(coordinates[job_id], clusters, targets)
                cluster.remove(job_id, coordinates[job_id])
                clusters[target].add(job_id, coordinates[job_id])
                transfers.append(
                    {
                        "job_id": job_id,
                        "from_cluster": cluster,
                        "to_cluster": clusters[target],
                        "distance_km": round(distance, 3),
                    }
                )
        return transfers

    def _finalise(self, clusters: list[Cluster], coordinates: dict[str, Coordinate]) -> list[Cluster]:
        for cluster in clusters:
            points = np.array([[coordinates[jid].latitude, coordinates[jid].longitude] for jid in cluster.job_ids])
            mean = points.mean(axis=0)
            cluster.centroid = Coordinate(float(mean[0]), float(mean[1]))
            cluster.radius_km = max(
                coordinate_distance_km(cluster.centroid, coordinates[jid]) for jid in cluster.job_ids
            )

        ordered = sorted(
            clusters,
            key=lambda c: (coordinate_distance_km(self.origin, c.centroid), min(c.job_ids)),
        )
        for position, cluster in enumerate(ordered):
            cluster.cluster_id = f"C{position + 1:02d}"
        return ordered

    def cluster(
        self,
        jobs: Sequence[ServiceJob],
        *,
        max_clusters: int,
        target_clusters: Optional[int] = None,
        radius_km: Optional[float] = None,
    ) -> ClusteringResult:
        """Group ``jobs`` into clusters.

        Args:
            jobs: Jobs with resolved coordinates. Jobs whose lookup failed must
                be removed by the caller beforehand.
            max_clusters: Hard upper bound, normally the technician count.
            target_clusters: Desired cluster count in count mode (capped by
                ``max_clusters`` and the job count).
            radius_km: Switches to radius mode when given.

        Returns:
            Clusters ordered by centroid distance from the origin, plus metadata.
        """
        started = time.perf_counter()
        missing = [job.job_id for job in jobs if job.coordinate is None]
        if missing:
            raise ValueError(f"Jobs without coordinates cannot be clustered: {missing}")
        mode = "radius" if radius_km is not None else "count"
        if not jobs:
            return ClusteringResult([], metadata=self._metadata([], {}, mode, 0, [], started))
        if max_clusters < 1:
            raise ValueError("max_clusters must be >= 1")
        if target_clusters is not None and target_clusters < 1:
            raise ValueError("target_clusters must be >= 1")
        if radius_km is not None and radius_km <= 0:
            raise ValueError("radius_km must be > 0")

        ordered = sorted(jobs, key=lambda job: (job.coordinate.latitude, job.coordinate.longitude, job.job_id))
        coordinates = {job.job_id: job.coordinate for job in ordered}

        if mode == "radius":
            clusters = self._grow_by_radius(ordered, max_clusters, radius_km)
            requested = max_clusters
        else:
            requested = min(target_clusters or max_clusters, max_clusters, len(ordered))
            clusters = self._seed_and_assign(ordered, requested)

        transfers = self._rebalance(clusters, coordinates)
        clusters = self._finalise(clusters, coordinates)
        transfers = [
            {**transfer, "from_cluster": transfer["from_cluster"].cluster_id, "to_cluster": transfer["to_cluster"].cluster_id}
            for transfer in transfers
        ]

        logger.info(
            "Clustered %d jobs into %d clusters (%s mode, %d transfers)",
            len(ordered),
            len(clusters),
            mode,
            len(transfers),
        )
        return ClusteringResult(clusters, metadata=self._metadata(clusters, coordinates, mode, requested, transfers, started))

    def _metadata(
        self,
        clusters: Sequence[Cluster],
        coordinates: dict[str, Coordinate],
        mode: str,
        requested: int,
        transfers: list[dict],
        started: float,
    ) -> dict:
        member_distances = [
            coordinate_distance_km(cluster.centroid, coordinates[jid])
            for cluster in clusters
            for jid in cluster.job_ids
        ]
        metadata = {
            "algorithm": ALGORITHM_NAME,
            "mode": mode,
            "requestedClusters": requested,
            "performanceDuration": round((time.perf_counter() - started) * 1000.0, 3),
            "connectedPointsCount": len(coordinates),
            "outlierCount": 0,
            "maxDistance": round(max(member_distances), 3) if member_distances else 0.0,
            "minDistance": round(min(member_distances), 3) if member_distances else 0.0,
            "avgDistance": round(sum(member_distances) / len(member_distances), 3) if member_distances else 0.0,
            "clusterRadii": {cluster.cluster_id: round(cluster.radius_km, 3) for cluster in clusters},
            "transfers": transfers,
        }
        if self.max_jobs_per_cluster is not None:
            metadata["maxJobsPerCluster"] = self.max_jobs_per_cluster
            violations = {
                cluster.cluster_id: len(cluster)
                for cluster in clusters
                if len(cluster) > self.max_jobs_per_cluster
            }
            if violations:
                metadata["violations"] = violations
            else:
                metadata["constraintSatisfied"] = True
        return metadata
