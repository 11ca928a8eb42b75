"""Pairwise travel cost matrix construction."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from ...config import settings
from ...models.domain import Coordinate, GeoPoint
from .errors import MatrixError, ProviderError
from .models import CostMatrix, CostMatrixEntry, MatrixElement

logger = logging.getLogger(__name__)


class MatrixProvider(Protocol):
    def matrix(
        self,
        origins: Sequence[Coordinate],
        destinations: Sequence[Coordinate],
        mode: str = "driving",
    ) -> list[list[MatrixElement]]:
        ...


def _whole(value: float) -> int:
    return int(round(value))


def build_matrix(points: Sequence[GeoPoint], provider: MatrixProvider, *, mode: str = "driving") -> CostMatrix:
    """Price every ordered pair of ``points`` with a single provider call.

    Every point must already carry a coordinate. Pairs the provider cannot
    route are kept with ``None`` distance and duration so the matrix stays
    square. Distances and durations are rounded to whole metres and seconds
    here, once.
    """
    if not points:
        raise ValueError("At least one point is required to build a cost matrix.")
    missing = [point.id for point in points if point.coordinate is None]
    if missing:
        raise ValueError(f"Points without coordinates cannot enter the matrix: {missing}")

    ids = [point.id for point in points]
    if len(points) == 1:
        return CostMatrix(ids, [CostMatrixEntry(ids[0], ids[0], 0, 0)])

    coordinates = [point.coordinate for point in points]
    try:
        grid = provider.matrix(coordinates, coordinates, mode=mode)
    except (ProviderError, ConnectionError, TimeoutError) as exc:
        logger.error("Matrix provider failed for %d points: %s", len(points), exc)
        raise MatrixError(str(exc)) from exc

    if len(grid) != len(points) or any(len(row) != len(points) for row in grid):
        raise MatrixError(f"Provider returned a malformed grid for {len(points)} points.")

    entries: list[CostMatrixEntry] = []
    unreachable = 0
    for i, from_id in enumerate(ids):
        for j, to_id in enumerate(ids):
            element = grid[i][j]
            if i == j:
                entries.append(CostMatrixEntry(from_id, to_id, 0, 0))
            elif element.is_ok:
                entries.append(
                    CostMatrixEntry(
                        from_id,
                        to_id,
                        _whole(element.distance_meters),
                        _whole(element.duration_seconds),
                    )
                )
            else:
                unreachable += 1
                entries.append(CostMatrixEntry(from_id, to_id, None, None))

    if unreachable:
        logger.warning("%d of %d pairs are unreachable", unreachable, len(ids) * (len(ids) - 1))
    return CostMatrix(ids, entries)


def get_matrix_provider() -> MatrixProvider:
    if settings.matrix_provider == "google":
        from .google_matrix import GoogleDistanceMatrixClient

        return GoogleDistanceMatrixClient()
    from .osrm_client import OSRMClient

    return OSRMClient()
