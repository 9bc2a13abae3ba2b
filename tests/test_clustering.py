import random
from datetime import datetime, timezone

import pytest

from fieldops.models.domain import Cluster, Coordinate, ServiceJob
from fieldops.services.cache import ExpiringCache
from fieldops.services.clustering import ALGORITHM_NAME, ClusteringEngine
from fieldops.services.routing import DistanceProviderAdapter

ORIGIN = Coordinate(24.70, 46.60)
CENTRES = {
    "A": (24.70, 46.60),
    "B": (24.90, 46.90),
    "C": (25.10, 46.50),
}


def _job(job_id: str, lat: float, lon: float) -> ServiceJob:
    return ServiceJob(
        job_id=job_id,
        location_ref=f"LOC-{job_id}",
        start=datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc),
        coordinate=Coordinate(lat, lon),
    )


def _group(prefix: str, centre: tuple[float, float], size: int) -> list[ServiceJob]:
    lat, lon = centre
    return [_job(f"{prefix}{i}", lat + i * 0.001, lon + i * 0.001) for i in range(size)]


def _three_groups(size: int = 4) -> list[ServiceJob]:
    return [job for name, centre in CENTRES.items() for job in _group(name, centre, size)]


def _shape(result) -> list[tuple[str, list[str]]]:
    return [(cluster.cluster_id, list(cluster.job_ids)) for cluster in result.clusters]


def test_separated_groups_become_clusters_ordered_from_origin():
    result = ClusteringEngine(origin=ORIGIN).cluster(_three_groups(), max_clusters=3)

    assert [cluster.cluster_id for cluster in result.clusters] == ["C01", "C02", "C03"]
    assert [sorted(cluster.job_ids) for cluster in result.clusters] == [
        ["A0", "A1", "A2", "A3"],
        ["B0", "B1", "B2", "B3"],
        ["C0", "C1", "C2", "C3"],
    ]
    assert result.counts() == {"C01": 4, "C02": 4, "C03": 4}


def test_clustering_is_independent_of_input_order():
    jobs = _three_groups(5)
    shuffled = list(jobs)
    random.Random(7).shuffle(shuffled)
    engine = ClusteringEngine(origin=ORIGIN)

    assert _shape(engine.cluster(jobs, max_clusters=3)) == _shape(engine.cluster(shuffled, max_clusters=3))


def test_distance_adapter_without_provider_matches_plain_engine():
    jobs = _three_groups()
    adapter = DistanceProviderAdapter(None, ExpiringCache())

    with_adapter = ClusteringEngine(distance=adapter, origin=ORIGIN).cluster(jobs, max_clusters=3)
    plain = ClusteringEngine(origin=ORIGIN).cluster(jobs, max_clusters=3)

    assert _shape(with_adapter) == _shape(plain)


def test_zero_jobs_yield_no_clusters():
    result = ClusteringEngine().cluster([], max_clusters=4)

    assert result.clusters == []
    assert result.metadata["connectedPointsCount"] == 0
    assert result.metadata["algorithm"] == ALGORITHM_NAME


def test_single_technician_gets_one_cluster():
    result = ClusteringEngine().cluster(_three_groups(), max_clusters=1)

    assert len(result.clusters) == 1
    assert len(result.clusters[0]) == 12


def test_cluster_count_capped_by_max_and_job_count():
    jobs = _three_groups()

    assert len(ClusteringEngine().cluster(jobs, max_clusters=3, target_clusters=10).clusters) == 3
    assert len(ClusteringEngine().cluster(jobs[:2], max_clusters=5).clusters) == 2
    assert len(ClusteringEngine().cluster(jobs, max_clusters=5, target_clusters=2).clusters) == 2


def test_duplicate_coordinates_still_fill_every_cluster():
    jobs = [_job(f"J{i}", 24.7, 46.6) for i in range(4)]

    result = ClusteringEngine().cluster(jobs, max_clusters=3)

    assert len(result.clusters) == 3
    assert sum(len(cluster) for cluster in result.clusters) == 4


def test_every_job_lands_in_exactly_one_cluster():
    jobs = _three_groups(6)

    result = ClusteringEngine().cluster(jobs, max_clusters=4)

    members = [job_id for cluster in result.clusters for job_id in cluster.job_ids]
    assert sorted(members) == sorted(job.job_id for job in jobs)


def test_jobs_without_coordinates_rejected():
    job = ServiceJob(job_id="X", location_ref="X", start=datetime(2025, 1, 6, tzinfo=timezone.utc))

    with pytest.raises(ValueError):
        ClusteringEngine().cluster([job], max_clusters=1)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_clusters": 0},
        {"max_clusters": 2, "target_clusters": 0},
        {"max_clusters": 2, "radius_km": 0},
    ],
)
def test_invalid_parameters_rejected(kwargs):
    with pytest.raises(ValueError):
        ClusteringEngine().cluster(_three_groups(1), **kwargs)


def test_radius_mode_opens_cluster_per_distant_group():
    result = ClusteringEngine(origin=ORIGIN).cluster(_three_groups(), max_clusters=5, radius_km=5.0)

    assert len(result.clusters) == 3
    assert result.metadata["mode"] == "radius"
    assert all(radius <= 5.0 for radius in result.metadata["clusterRadii"].values())


def test_radius_mode_respects_max_clusters():
    result = ClusteringEngine().cluster(_three_groups(), max_clusters=2, radius_km=1.0)

    assert len(result.clusters) == 2
    assert sum(len(cluster) for cluster in result.clusters) == 12


def test_rebalance_moves_farthest_members_into_spare_clusters():
    jobs = _group("A", CENTRES["A"], 5) + _group("B", CENTRES["B"], 1)

    result = ClusteringEngine(max_jobs_per_cluster=3, origin=ORIGIN).cluster(jobs, max_clusters=2)

    assert sorted(result.counts().values()) == [3, 3]
    assert result.metadata["constraintSatisfied"] is True
    transfers = result.metadata["transfers"]
    assert len(transfers) == 2
    assert all(transfer["job_id"].startswith("A") for transfer in transfers)
    assert all(transfer["from_cluster"] == "C01" and transfer["to_cluster"] == "C02" for transfer in transfers)


def test_rebalance_reports_unsatisfiable_capacity():
    jobs = _group("A", CENTRES["A"], 6) + _group("B", CENTRES["B"], 1)

    result = ClusteringEngine(max_jobs_per_cluster=3, origin=ORIGIN).cluster(jobs, max_clusters=2)

    assert result.metadata["violations"] == {"C01": 4}
    assert "constraintSatisfied" not in result.metadata


def test_metadata_distance_statistics():
    result = ClusteringEngine(origin=ORIGIN).cluster(_three_groups(), max_clusters=3)
    metadata = result.metadata

    assert metadata["connectedPointsCount"] == 12
    assert metadata["outlierCount"] == 0
    assert metadata["requestedClusters"] == 3
    assert 0.0 <= metadata["minDistance"] <= metadata["avgDistance"] <= metadata["maxDistance"]
    assert metadata["performanceDuration"] >= 0.0


def test_remove_from_cluster_without_centroid_raises():
    cluster = Cluster("C01", job_ids=["a", "b"])

    with pytest.raises(ValueError):
        cluster.remove("a", ORIGIN)


def test_nearest_rejects_empty_cluster():
    with pytest.raises(ValueError):
        ClusteringEngine()._nearest(ORIGIN, [Cluster("C01")], [0])
