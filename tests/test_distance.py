import httpx
import numpy as np
import pytest

from fieldops.errors import DistanceUnavailable
from fieldops.models.domain import Coordinate
from fieldops.services.cache import CacheCategory, ExpiringCache
from fieldops.services.geospatial import coordinate_distance_km, haversine_km, haversine_matrix_km
from fieldops.services.routing import DistanceProviderAdapter, OSRMClient, check_health, pair_key

RIYADH = Coordinate(24.7136, 46.6753)
JEDDAH = Coordinate(21.4858, 39.1925)


class CountingDistance:
    def __init__(self, value: float = 12.5) -> None:
        self.value = value
        self.calls = 0

    def distance_km(self, a: Coordinate, b: Coordinate) -> float:
        self.calls += 1
        return self.value


class BrokenDistance:
    def distance_km(self, a: Coordinate, b: Coordinate) -> float:
        raise TimeoutError("provider timed out")


def test_pair_key_is_order_independent():
    key = pair_key(RIYADH, JEDDAH)

    assert key == pair_key(JEDDAH, RIYADH)
    assert key.startswith("distanceMatrix:")
    assert CacheCategory.from_key(key) is CacheCategory.DISTANCE_MATRIX


def test_nearby_pairs_get_their_own_entries():
    # under a metre apart, still a different pair
    nearby = Coordinate(24.713600001, 46.6753)
    provider = CountingDistance()
    adapter = DistanceProviderAdapter(provider, ExpiringCache())

    assert pair_key(nearby, JEDDAH) != pair_key(RIYADH, JEDDAH)
    adapter.distance(RIYADH, JEDDAH)
    provider.value = 13.0
    assert adapter.distance(nearby, JEDDAH) == 13.0
    assert adapter.distance(RIYADH, JEDDAH) == 12.5
    assert provider.calls == 2


def test_distance_miss_then_hit_either_direction():
    provider = CountingDistance()
    cache = ExpiringCache()
    adapter = DistanceProviderAdapter(provider, cache)

    assert adapter.distance(RIYADH, JEDDAH) == 12.5
    assert adapter.distance(JEDDAH, RIYADH) == 12.5
    assert provider.calls == 1
    assert cache.get(pair_key(RIYADH, JEDDAH)) == 12.5


def test_distance_uses_distance_matrix_ttl():
    cache = ExpiringCache(ttls={CacheCategory.DISTANCE_MATRIX: 3600}, clock=lambda: 50.0)
    DistanceProviderAdapter(CountingDistance(), cache).distance(RIYADH, JEDDAH)

    assert cache.expires_at(pair_key(RIYADH, JEDDAH)) == 50.0 + 3600


def test_identical_points_skip_provider():
    provider = CountingDistance()
    adapter = DistanceProviderAdapter(provider, ExpiringCache())

    assert adapter.distance(RIYADH, Coordinate(24.7136, 46.6753)) == 0.0
    assert provider.calls == 0


def test_missing_provider_raises_then_estimates():
    adapter = DistanceProviderAdapter(None, ExpiringCache())

    with pytest.raises(DistanceUnavailable):
        adapter.distance(RIYADH, JEDDAH)
    assert adapter.distance_or_estimate(RIYADH, JEDDAH) == pytest.approx(coordinate_distance_km(RIYADH, JEDDAH))


def test_provider_failure_falls_back_without_caching():
    cache = ExpiringCache()
    adapter = DistanceProviderAdapter(BrokenDistance(), cache)

    with pytest.raises(DistanceUnavailable) as excinfo:
        adapter.distance(RIYADH, JEDDAH)
    assert "provider timed out" in excinfo.value.reason

    estimate = adapter.distance_or_estimate(RIYADH, JEDDAH)
    assert estimate == pytest.approx(haversine_km(24.7136, 46.6753, 21.4858, 39.1925))
    assert len(cache) == 0


@pytest.mark.parametrize("value", [None, -1.0])
def test_invalid_provider_values_rejected(value):
    adapter = DistanceProviderAdapter(CountingDistance(value), ExpiringCache())

    with pytest.raises(DistanceUnavailable):
        adapter.distance(RIYADH, JEDDAH)


def test_matrix_is_symmetric_with_zero_diagonal():
    coordinates = [RIYADH, JEDDAH, Coordinate(26.4207, 50.0888)]
    adapter = DistanceProviderAdapter(None, ExpiringCache())

    matrix = adapter.matrix(coordinates)

    assert matrix.shape == (3, 3)
    assert np.allclose(matrix, matrix.T)
    assert np.allclose(np.diag(matrix), 0.0)
    assert np.allclose(matrix, haversine_matrix_km(coordinates))


def _osrm(monkeypatch: pytest.MonkeyPatch, handler, max_retries: int = 2) -> OSRMClient:
    client = OSRMClient(
        base_url="http://osrm.example.test",
        profile="driving",
        timeout=1.0,
        max_retries=max_retries,
        backoff_seconds=0.0,
    )
    monkeypatch.setattr(client, "_get_client", lambda: httpx.Client(transport=httpx.MockTransport(handler)))
    return client


def _table_response(meters: float | None) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "code": "Ok",
            "durations": [[0, 600], [600, 0]],
            "distances": [[0, meters], [meters, 0]],
        },
    )


def test_osrm_distance_km(monkeypatch: pytest.MonkeyPatch):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _table_response(1500.0)

    client = _osrm(monkeypatch, handler)

    assert client.distance_km(RIYADH, JEDDAH) == pytest.approx(1.5)
    assert seen[0].url.path.startswith("/table/v1/driving/")
    assert seen[0].url.params["annotations"] == "duration,distance"


def test_osrm_table_requires_two_coordinates(monkeypatch: pytest.MonkeyPatch):
    client = _osrm(monkeypatch, lambda request: _table_response(1.0))

    with pytest.raises(ValueError):
        client.table([RIYADH])


def test_osrm_no_route_raises(monkeypatch: pytest.MonkeyPatch):
    client = _osrm(monkeypatch, lambda request: _table_response(None))

    with pytest.raises(ValueError):
        client.distance_km(RIYADH, JEDDAH)


def test_osrm_error_code_raises(monkeypatch: pytest.MonkeyPatch):
    client = _osrm(monkeypatch, lambda request: httpx.Response(200, json={"code": "InvalidQuery", "message": "bad"}))

    with pytest.raises(ValueError, match="bad"):
        client.table([RIYADH, JEDDAH])


def test_osrm_retries_server_errors(monkeypatch: pytest.MonkeyPatch):
    responses = iter([httpx.Response(502), _table_response(2000.0)])
    client = _osrm(monkeypatch, lambda request: next(responses))

    assert client.distance_km(RIYADH, JEDDAH) == pytest.approx(2.0)


def test_osrm_connection_failure_after_retries(monkeypatch: pytest.MonkeyPatch):
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        raise httpx.ConnectError("refused", request=request)

    client = _osrm(monkeypatch, handler, max_retries=1)

    with pytest.raises(ConnectionError):
        client.table([RIYADH, JEDDAH])
    assert len(calls) == 2


def test_osrm_failure_through_adapter_falls_back(monkeypatch: pytest.MonkeyPatch):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    adapter = DistanceProviderAdapter(_osrm(monkeypatch, handler, max_retries=0), ExpiringCache())

    assert adapter.distance_or_estimate(RIYADH, JEDDAH) == pytest.approx(coordinate_distance_km(RIYADH, JEDDAH))


def test_osrm_client_requires_base_url(monkeypatch: pytest.MonkeyPatch):
    from fieldops.services.routing import osrm_client

    monkeypatch.setattr(osrm_client.settings, "osrm_base_url", None)

    with pytest.raises(ValueError):
        OSRMClient()
    assert check_health() is False
