import threading
import time
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from delivery_routing.models.domain import Coordinate, Destination, Vehicle
from delivery_routing.services.geocoding import GeocodeCache, GeoPointResolver, ResolutionError
from delivery_routing.services.routing.errors import FailureReason, OptimizationError, ProviderError
from delivery_routing.services.routing.models import MatrixElement
from delivery_routing.services.routing.osrm_client import OSRMClient
from delivery_routing.services.routing.service import OptimizationState, RouteOptimizer

DEPARTURE = datetime(2025, 3, 14, 6, 30, tzinfo=timezone.utc)

COORDINATES = {
    "Fő utca 1, Balatonszemes": Coordinate(46.8167, 17.7833),
    "Petőfi utca 5, Balatonszárszó": Coordinate(46.8500, 17.8333),
    "Kossuth utca 12, Balatonlelle": Coordinate(46.7900, 17.7600),
    "Rákóczi út 3, Balatonboglár": Coordinate(46.7750, 17.6500),
}
DEPOT = Destination(id="O", address="Fő utca 1, Balatonszemes", label="Pékség")


class DummyGeocoder:
    def __init__(self, known=COORDINATES, delay: float = 0.0):
        self.known = dict(known)
        self.delay = delay
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def geocode(self, address):
        with self._lock:
            self.calls.append(address)
        if self.delay:
            time.sleep(self.delay)
        if address not in self.known:
            raise ResolutionError(address, "not_found")
        return self.known[address]


class DummyMatrix:
    """Prices pairs from a table keyed by coordinate; absent pairs are unroutable."""

    def __init__(self, costs):
        self.costs = costs
        self.calls = 0

    def matrix(self, origins, destinations, mode="driving"):
        self.calls += 1
        grid = []
        for origin in origins:
            row = []
            for destination in destinations:
                if origin == destination:
                    row.append(MatrixElement("OK", 0, 0))
                elif (origin, destination) in self.costs:
                    distance, duration = self.costs[(origin, destination)]
                    row.append(MatrixElement("OK", distance, duration))
                else:
                    row.append(MatrixElement("ZERO_RESULTS"))
            grid.append(row)
        return grid


class BrokenMatrix:
    def matrix(self, origins, destinations, mode="driving"):
        raise ProviderError("connection refused")


def _costs(pairs):
    costs = {}
    for (a, b), value in pairs.items():
        costs[(COORDINATES[a], COORDINATES[b])] = value
        costs[(COORDINATES[b], COORDINATES[a])] = value
    return costs


SZEMES = "Fő utca 1, Balatonszemes"
SZARSZO = "Petőfi utca 5, Balatonszárszó"
LELLE = "Kossuth utca 12, Balatonlelle"
BOGLAR = "Rákóczi út 3, Balatonboglár"

EXAMPLE_COSTS = _costs(
    {
        (SZEMES, LELLE): (2000, 300),
        (SZEMES, SZARSZO): (5000, 600),
        (LELLE, SZARSZO): (1000, 120),
    }
)


def _roster(vehicle_id):
    vehicles = {
        "JOV-030": Vehicle("JOV-030", "JOV-030", "Renault Master", "active", 12.0),
        "RKA-376": Vehicle("RKA-376", "RKA-376", "Ford Transit", "active", None),
    }
    return vehicles.get(vehicle_id)


def _optimizer(geocoder=None, matrix=None, **kwargs):
    return RouteOptimizer(
        GeoPointResolver(geocoder or DummyGeocoder(), max_concurrency=4),
        matrix or DummyMatrix(EXAMPLE_COSTS),
        _roster,
        origin=DEPOT,
        **kwargs,
    )


def test_optimize_route_example_scenario():
    destinations = [
        Destination(id="B", address=SZARSZO),
        Destination(id="A", address=LELLE),
        Destination(id="C", address="Nincs ilyen utca 99"),
    ]

    result = _optimizer().optimize_route("JOV-030", destinations, DEPARTURE, 10.0)

    assert result.unresolved_destinations == ("C",)
    assert result.unreachable_destinations == ()
    assert result.tour == ("O", "A", "B")
    assert result.total_distance_meters == 3000
    assert result.total_duration_seconds == 420
    assert result.fuel_liters == pytest.approx(0.3)
    assert result.departure_time == DEPARTURE
    assert result.arrival_time == DEPARTURE + timedelta(seconds=420)
    assert result.metadata["geocoding_failures"] == {"C": "not_found"}
    assert result.metadata["states"] == [
        OptimizationState.IDLE.value,
        OptimizationState.RESOLVING_ADDRESSES.value,
        OptimizationState.BUILDING_MATRIX.value,
        OptimizationState.CONSTRUCTING_TOUR.value,
        OptimizationState.AGGREGATING.value,
        OptimizationState.DONE.value,
    ]


def test_optimize_route_uses_vehicle_fuel_rate_then_default():
    destinations = [Destination(id="A", address=LELLE)]

    with_vehicle_rate = _optimizer().optimize_route("JOV-030", destinations, DEPARTURE)
    with_default_rate = _optimizer(default_fuel_rate_l_per_100km=8.0).optimize_route(
        "RKA-376", destinations, DEPARTURE
    )

    assert with_vehicle_rate.fuel_liters == pytest.approx(2000 / 100000 * 12.0)
    assert with_default_rate.fuel_liters == pytest.approx(2000 / 100000 * 8.0)


def test_optimize_route_skips_geocoding_for_known_coordinates():
    geocoder = DummyGeocoder()
    destinations = [
        Destination(id="A", address="ignored", coordinate=COORDINATES[LELLE]),
        Destination(id="B", address=SZARSZO),
    ]

    result = _optimizer(geocoder=geocoder).optimize_route("JOV-030", destinations, DEPARTURE, 10.0)

    assert result.tour == ("O", "A", "B")
    assert "ignored" not in geocoder.calls


def test_optimize_route_all_destinations_fail():
    destinations = [
        Destination(id="X", address="Ismeretlen 1"),
        Destination(id="Y", address="Ismeretlen 2"),
    ]

    with pytest.raises(OptimizationError) as excinfo:
        _optimizer().optimize_route("JOV-030", destinations, DEPARTURE, 10.0)

    assert excinfo.value.reason is FailureReason.NO_REACHABLE_DESTINATIONS


def test_optimize_route_reports_unreachable_destinations():
    costs = _costs({(SZEMES, LELLE): (2000, 300)})
    destinations = [Destination(id="A", address=LELLE), Destination(id="B", address=BOGLAR)]

    result = _optimizer(matrix=DummyMatrix(costs)).optimize_route("JOV-030", destinations, DEPARTURE, 10.0)

    assert result.tour == ("O", "A")
    assert result.unreachable_destinations == ("B",)
    assert result.unresolved_destinations == ("B",)
    assert result.total_distance_meters == 2000


def test_optimize_route_unknown_vehicle():
    with pytest.raises(OptimizationError) as excinfo:
        _optimizer().optimize_route("XYZ-999", [Destination(id="A", address=LELLE)], DEPARTURE)

    assert excinfo.value.reason is FailureReason.UNKNOWN_VEHICLE


def test_optimize_route_requires_destinations():
    with pytest.raises(OptimizationError) as excinfo:
        _optimizer().optimize_route("JOV-030", [], DEPARTURE)

    assert excinfo.value.reason is FailureReason.INVALID_REQUEST


def test_optimize_route_origin_unresolved():
    optimizer = _optimizer()
    origin = Destination(id="O", address="Nem létező pékség")

    with pytest.raises(OptimizationError) as excinfo:
        optimizer.optimize_route("JOV-030", [Destination(id="A", address=LELLE)], DEPARTURE, origin=origin)

    assert excinfo.value.reason is FailureReason.ORIGIN_UNRESOLVED


def test_optimize_route_matrix_failure_is_fatal():
    with pytest.raises(OptimizationError) as excinfo:
        _optimizer(matrix=BrokenMatrix()).optimize_route(
            "JOV-030", [Destination(id="A", address=LELLE)], DEPARTURE, 10.0
        )

    assert excinfo.value.reason is FailureReason.MATRIX_ERROR


def test_optimize_route_cancelled_before_resolution_finishes():
    cancel = threading.Event()
    cancel.set()
    matrix = DummyMatrix(EXAMPLE_COSTS)

    with pytest.raises(OptimizationError) as excinfo:
        _optimizer(matrix=matrix).optimize_route(
            "JOV-030", [Destination(id="A", address=LELLE)], DEPARTURE, cancel_event=cancel
        )

    assert excinfo.value.reason is FailureReason.CANCELLED
    assert matrix.calls == 0


def test_optimize_route_deadline_expires_during_resolution():
    geocoder = DummyGeocoder(delay=0.5)
    matrix = DummyMatrix(EXAMPLE_COSTS)

    with pytest.raises(OptimizationError) as excinfo:
        _optimizer(geocoder=geocoder, matrix=matrix).optimize_route(
            "JOV-030", [Destination(id="A", address=LELLE)], DEPARTURE, timeout_seconds=0.05
        )

    assert excinfo.value.reason is FailureReason.CANCELLED
    assert matrix.calls == 0


def test_optimize_route_naive_departure_is_utc():
    result = _optimizer().optimize_route(
        "JOV-030", [Destination(id="A", address=LELLE)], datetime(2025, 3, 14, 6, 30), 10.0
    )

    assert result.departure_time == DEPARTURE
    assert result.arrival_time == DEPARTURE + timedelta(seconds=300)


def test_optimize_route_rejects_destination_colliding_with_origin():
    with pytest.raises(OptimizationError) as excinfo:
        _optimizer().optimize_route("JOV-030", [Destination(id="O", address=LELLE)], DEPARTURE)

    assert excinfo.value.reason is FailureReason.INVALID_REQUEST


def test_concurrent_requests_do_not_share_state():
    cache = GeocodeCache()
    geocoder = DummyGeocoder()
    optimizer = RouteOptimizer(
        GeoPointResolver(geocoder, cache=cache, max_concurrency=2),
        DummyMatrix(EXAMPLE_COSTS),
        _roster,
        origin=DEPOT,
    )
    results = {}

    def run(vehicle_id, destinations):
        results[vehicle_id] = optimizer.optimize_route(vehicle_id, destinations, DEPARTURE, 10.0)

    threads = [
        threading.Thread(target=run, args=("JOV-030", [Destination(id="A", address=LELLE), Destination(id="B", address=SZARSZO)])),
        threading.Thread(target=run, args=("RKA-376", [Destination(id="B", address=SZARSZO)])),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results["JOV-030"].tour == ("O", "A", "B")
    assert results["RKA-376"].tour == ("O", "B")
    assert results["RKA-376"].total_distance_meters == 5000


def test_optimize_route_malformed_osrm_table_is_matrix_error():
    def handler(request):
        return httpx.Response(200, json={"code": "Ok", "distances": [[0]], "durations": [[0]]})

    osrm = OSRMClient(
        base_url="http://osrm.test",
        transport=httpx.MockTransport(handler),
        max_retries=0,
        backoff_seconds=0,
    )

    with pytest.raises(OptimizationError) as excinfo:
        _optimizer(matrix=osrm).optimize_route("JOV-030", [Destination(id="A", address=LELLE)], DEPARTURE, 10.0)

    assert excinfo.value.reason is FailureReason.MATRIX_ERROR


def test_route_result_metadata_is_read_only():
    result = _optimizer().optimize_route("JOV-030", [Destination(id="A", address=LELLE)], DEPARTURE, 10.0)

    with pytest.raises(TypeError):
        result.metadata["fuel_rate_l_per_100km"] = 99
    assert result.metadata["fuel_rate_l_per_100km"] == 10.0


class SlowResolver(GeoPointResolver):
    def resolve_batch(self, points, *, cancel_event=None, deadline=None):
        time.sleep(0.1)
        return super().resolve_batch(points, cancel_event=cancel_event, deadline=deadline)


def test_optimize_route_deadline_checked_before_matrix():
    matrix = DummyMatrix(EXAMPLE_COSTS)
    optimizer = RouteOptimizer(
        SlowResolver(DummyGeocoder()),
        matrix,
        _roster,
        origin=Destination(id="O", address=SZEMES, coordinate=COORDINATES[SZEMES]),
    )

    with pytest.raises(OptimizationError) as excinfo:
        optimizer.optimize_route(
            "JOV-030",
            [Destination(id="A", address=LELLE, coordinate=COORDINATES[LELLE])],
            DEPARTURE,
            timeout_seconds=0.05,
        )

    assert excinfo.value.reason is FailureReason.CANCELLED
    assert matrix.calls == 0
