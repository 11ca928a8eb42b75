"""Nearest-neighbour tour construction.

Greedy, not TSP-optimal: from the current stop, always drive to the closest
unvisited stop that the matrix can route to. Ties go to the lexicographically
smaller id, so identical inputs always yield the identical tour. When no
remaining stop is reachable from the current one the tour ends there and the
leftovers are reported as unreachable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .models import CostMatrix, Criterion, Tour


@dataclass(frozen=True, slots=True)
class TourConstruction:
    tour: Tour
    unreachable: tuple[str, ...] = ()


def build_tour(
    origin_id: str,
    destination_ids: Sequence[str],
    matrix: CostMatrix,
    *,
    criterion: Criterion = "distance",
) -> TourConstruction:
    if origin_id not in matrix:
        raise KeyError(f"Origin {origin_id} is not in the cost matrix")

    remaining: list[str] = []
    for destination_id in destination_ids:
        if destination_id == origin_id or destination_id in remaining:
            continue
        if destination_id not in matrix:
            raise KeyError(f"Destination {destination_id} is not in the cost matrix")
        remaining.append(destination_id)

    tour = [origin_id]
    current = origin_id
    while remaining:
        best_id: str | None = None
        best_cost: int | None = None
        for candidate in remaining:
            entry = matrix.entry(current, candidate)
            if not entry.is_reachable:
                continue
            cost = entry.cost(criterion)
            if best_cost is None or cost < best_cost or (cost == best_cost and candidate < best_id):
                best_id, best_cost = candidate, cost
        if best_id is None:
            break
        tour.append(best_id)
        remaining.remove(best_id)
        current = best_id

    return TourConstruction(tour=tuple(tour), unreachable=tuple(remaining))
