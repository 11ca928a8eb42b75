"""Route totals, fuel estimate and timing for a constructed tour."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Sequence

from .errors import InternalConsistencyError
from .models import CostMatrix, Criterion, RouteLeg, RouteResult, Tour

METERS_PER_100_KM = 100_000


def estimate_fuel_liters(distance_meters: int, rate_l_per_100km: float) -> float:
    return distance_meters / METERS_PER_100_KM * rate_l_per_100km


def aggregate(
    tour: Tour,
    matrix: CostMatrix,
    departure_time: datetime,
    fuel_rate_l_per_100km: float,
    *,
    vehicle_id: str,
    unresolved: Sequence[str] = (),
    unreachable: Sequence[str] = (),
    criterion: Criterion = "distance",
) -> RouteResult:
    """Walk the tour over the same matrix that produced it.

    Totals are plain sums over the legs; nothing is re-derived from
    coordinates. A leg the matrix cannot price means the tour is broken and
    raises ``InternalConsistencyError``.
    """
    if not tour:
        raise ValueError("A tour must contain at least the origin.")
    if fuel_rate_l_per_100km < 0:
        raise ValueError("Fuel rate cannot be negative.")

    legs: list[RouteLeg] = []
    elapsed = 0
    for from_id, to_id in zip(tour, tour[1:]):
        try:
            entry = matrix.entry(from_id, to_id)
        except KeyError as exc:
            raise InternalConsistencyError(f"Leg {from_id}->{to_id} is not in the cost matrix") from exc
        if not entry.is_reachable:
            raise InternalConsistencyError(f"Leg {from_id}->{to_id} has no distance/duration")
        elapsed += entry.duration_seconds
        legs.append(
            RouteLeg(
                from_id=from_id,
                to_id=to_id,
                distance_meters=entry.distance_meters,
                duration_seconds=entry.duration_seconds,
                arrival_time=departure_time + timedelta(seconds=elapsed),
            )
        )

    total_distance = sum(leg.distance_meters for leg in legs)
    total_duration = sum(leg.duration_seconds for leg in legs)
    return RouteResult(
        vehicle_id=vehicle_id,
        tour=tuple(tour),
        legs=tuple(legs),
        total_distance_meters=total_distance,
        total_duration_seconds=total_duration,
        fuel_liters=estimate_fuel_liters(total_distance, fuel_rate_l_per_100km),
        departure_time=departure_time,
        arrival_time=departure_time + timedelta(seconds=total_duration),
        unresolved_destinations=tuple(unresolved),
        unreachable_destinations=tuple(unreachable),
        criterion=criterion,
    )
