import pytest

from delivery_routing.models.domain import Coordinate, GeoPoint
from delivery_routing.services.routing.errors import MatrixError, ProviderError
from delivery_routing.services.routing.matrix import build_matrix
from delivery_routing.services.routing.models import MatrixElement


def _point(pid: str, lat: float, lng: float) -> GeoPoint:
    return GeoPoint(id=pid, label=pid, address=f"{pid} utca 1", coordinate=Coordinate(lat, lng))


class DummyProvider:
    def __init__(self, grid):
        self.grid = grid
        self.calls = 0

    def matrix(self, origins, destinations, mode="driving"):
        self.calls += 1
        assert mode == "driving"
        assert len(origins) == len(destinations)
        return self.grid


class FailingProvider:
    def matrix(self, origins, destinations, mode="driving"):
        raise ProviderError("401 Unauthorized")


OK = "OK"


def test_build_matrix_keeps_unreachable_pairs():
    points = [_point("O", 46.8167, 17.7833), _point("A", 46.85, 17.8333)]
    provider = DummyProvider(
        [
            [MatrixElement(OK, 3.0, 1.0), MatrixElement(OK, 5230.6, 412.4)],
            [MatrixElement("ZERO_RESULTS"), MatrixElement(OK, 0, 0)],
        ]
    )

    matrix = build_matrix(points, provider)

    assert matrix.point_ids == ("O", "A")
    assert len(list(matrix)) == 4
    assert matrix.entry("O", "O").distance_meters == 0
    assert matrix.entry("O", "O").duration_seconds == 0
    assert matrix.entry("O", "A").distance_meters == 5231
    assert matrix.entry("O", "A").duration_seconds == 412
    back = matrix.entry("A", "O")
    assert back.distance_meters is None
    assert back.duration_seconds is None
    assert not back.is_reachable


def test_build_matrix_treats_not_found_as_unreachable():
    points = [_point("O", 46.8, 17.7), _point("A", 46.9, 17.8)]
    provider = DummyProvider(
        [
            [MatrixElement(OK, 0, 0), MatrixElement("NOT_FOUND", 100, 10)],
            [MatrixElement(OK, 100, 10), MatrixElement(OK, 0, 0)],
        ]
    )

    matrix = build_matrix(points, provider)

    assert not matrix.entry("O", "A").is_reachable
    assert matrix.entry("A", "O").is_reachable


def test_build_matrix_single_point_skips_provider():
    provider = DummyProvider([])

    matrix = build_matrix([_point("O", 46.8, 17.7)], provider)

    assert provider.calls == 0
    assert matrix.entry("O", "O").distance_meters == 0


def test_build_matrix_requires_coordinates():
    unresolved = GeoPoint(id="C", label="C", address="Nowhere")

    with pytest.raises(ValueError):
        build_matrix([_point("O", 46.8, 17.7), unresolved], DummyProvider([]))


def test_build_matrix_wraps_provider_failure():
    with pytest.raises(MatrixError):
        build_matrix([_point("O", 46.8, 17.7), _point("A", 46.9, 17.8)], FailingProvider())


def test_build_matrix_rejects_malformed_grid():
    provider = DummyProvider([[MatrixElement(OK, 0, 0), MatrixElement(OK, 1, 1)]])

    with pytest.raises(MatrixError):
        build_matrix([_point("O", 46.8, 17.7), _point("A", 46.9, 17.8)], provider)
