import threading
import time

import pytest

from delivery_routing.models.domain import Coordinate, GeoPoint
from delivery_routing.services.geocoding import GeocodeCache, GeoPointResolver, ResolutionError, normalize_address
from delivery_routing.services.geocoding.google_client import GoogleGeocodingClient


class CountingGeocoder:
    def __init__(self, delay: float = 0.0, failing: tuple[str, ...] = ()):
        self.delay = delay
        self.failing = failing
        self.calls = 0
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def geocode(self, address):
        with self._lock:
            self.calls += 1
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if address in self.failing:
                raise ResolutionError(address, "not_found")
            if address == "boom":
                raise RuntimeError("socket closed")
            return Coordinate(46.0 + len(address) / 100, 17.0)
        finally:
            with self._lock:
                self.active -= 1


def _points(*addresses):
    return [GeoPoint(id=f"P{index}", label=address, address=address) for index, address in enumerate(addresses)]


def test_resolve_batch_collects_failures_without_cancelling_siblings():
    geocoder = CountingGeocoder(failing=("Hiányzó utca",))
    points = _points("Fő utca 1", "Hiányzó utca", "Petőfi utca 5")

    batch = GeoPointResolver(geocoder, max_concurrency=3).resolve_batch(points)

    assert set(batch.resolved) == {"P0", "P2"}
    assert set(batch.failures) == {"P1"}
    assert batch.failures["P1"].reason == "not_found"
    assert not batch.cancelled
    assert points[0].coordinate is not None
    assert points[1].coordinate is None


def test_resolve_batch_converts_unexpected_errors():
    batch = GeoPointResolver(CountingGeocoder(), max_concurrency=2).resolve_batch(_points("boom", "Fő utca 1"))

    assert batch.failures["P0"].reason == "provider_error"
    assert "P1" in batch.resolved


def test_resolve_batch_respects_concurrency_limit():
    geocoder = CountingGeocoder(delay=0.05)
    points = _points(*(f"Utca {index}" for index in range(8)))

    batch = GeoPointResolver(geocoder, max_concurrency=2).resolve_batch(points)

    assert len(batch.resolved) == 8
    assert geocoder.peak <= 2


def test_resolve_batch_passes_known_coordinates_through():
    geocoder = CountingGeocoder()
    known = GeoPoint(id="K", label="Known", address="Anything", coordinate=Coordinate(46.8, 17.7))

    batch = GeoPointResolver(geocoder).resolve_batch([known])

    assert batch.resolved == {"K": Coordinate(46.8, 17.7)}
    assert geocoder.calls == 0


def test_resolve_batch_cancelled_by_event():
    cancel = threading.Event()
    cancel.set()

    batch = GeoPointResolver(CountingGeocoder()).resolve_batch(_points("Fő utca 1"), cancel_event=cancel)

    assert batch.cancelled
    assert batch.resolved == {}


def test_cache_is_read_through_and_keyed_by_normalized_address():
    geocoder = CountingGeocoder()
    cache = GeocodeCache()
    resolver = GeoPointResolver(geocoder, cache=cache)

    first = resolver.resolve("Fő utca 1,  Balatonszemes")
    second = resolver.resolve("  fő utca 1, BALATONSZEMES ")

    assert first == second
    assert geocoder.calls == 1
    assert len(cache) == 1


def test_cache_does_not_store_failures():
    geocoder = CountingGeocoder(failing=("Hiányzó utca",))
    resolver = GeoPointResolver(geocoder, cache=GeocodeCache())

    for _ in range(2):
        with pytest.raises(ResolutionError):
            resolver.resolve("Hiányzó utca")

    assert geocoder.calls == 2


def test_normalize_address():
    assert normalize_address("  Fő   Utca 1 ") == "fő utca 1"


class FakeGoogleClient:
    def __init__(self, results):
        self.results = results

    def geocode(self, address):
        return self.results


def test_google_client_parses_first_result():
    client = GoogleGeocodingClient(
        client=FakeGoogleClient([{"geometry": {"location": {"lat": 46.8167, "lng": 17.7833}}}])
    )

    assert client.geocode("Fő utca 1, Balatonszemes") == Coordinate(46.8167, 17.7833)


@pytest.mark.parametrize(
    "results, reason",
    [
        ([], "not_found"),
        ([{"geometry": {}}], "not_found"),
        ([{"geometry": {"location": {"lat": 123.0, "lng": 17.0}}}], "invalid_coordinates"),
    ],
)
def test_google_client_failures(results, reason):
    client = GoogleGeocodingClient(client=FakeGoogleClient(results))

    with pytest.raises(ResolutionError) as excinfo:
        client.geocode("Fő utca 1")

    assert excinfo.value.reason == reason


def test_google_client_rejects_empty_address():
    with pytest.raises(ResolutionError) as excinfo:
        GoogleGeocodingClient(client=FakeGoogleClient([])).geocode("   ")

    assert excinfo.value.reason == "empty_address"
