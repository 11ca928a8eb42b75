"""Routing orchestration service."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Sequence

from ...config import settings
from ...data.vehicle_repository import get_vehicle
from ...models.domain import Coordinate, Destination, GeoPoint, Vehicle
from ..geocoding import GeocodeCache, GeoPointResolver, is_interrupted
from .aggregator import aggregate
from .errors import FailureReason, InternalConsistencyError, MatrixError, OptimizationError
from .matrix import MatrixProvider, build_matrix, get_matrix_provider
from .models import Criterion, RouteResult
from .tour import build_tour

logger = logging.getLogger(__name__)

VehicleLookup = Callable[[str], Optional[Vehicle]]


class OptimizationState(str, Enum):
    IDLE = "idle"
    RESOLVING_ADDRESSES = "resolving_addresses"
    BUILDING_MATRIX = "building_matrix"
    CONSTRUCTING_TOUR = "constructing_tour"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


_ALLOWED_TRANSITIONS: dict[OptimizationState, frozenset[OptimizationState]] = {
    OptimizationState.IDLE: frozenset({OptimizationState.RESOLVING_ADDRESSES, OptimizationState.FAILED}),
    OptimizationState.RESOLVING_ADDRESSES: frozenset({OptimizationState.BUILDING_MATRIX, OptimizationState.FAILED}),
    OptimizationState.BUILDING_MATRIX: frozenset({OptimizationState.CONSTRUCTING_TOUR, OptimizationState.FAILED}),
    OptimizationState.CONSTRUCTING_TOUR: frozenset({OptimizationState.AGGREGATING, OptimizationState.FAILED}),
    OptimizationState.AGGREGATING: frozenset({OptimizationState.DONE, OptimizationState.FAILED}),
    OptimizationState.DONE: frozenset(),
    OptimizationState.FAILED: frozenset(),
}


@dataclass(slots=True)
class OptimizationRun:
    """Lifecycle of one optimization request."""

    vehicle_id: str
    state: OptimizationState = OptimizationState.IDLE
    history: list[OptimizationState] = field(default_factory=lambda: [OptimizationState.IDLE])
    failure: Optional[OptimizationError] = None

    def advance(self, state: OptimizationState) -> None:
        if state not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal transition {self.state.value} -> {state.value}")
        logger.debug("Route for %s: %s -> %s", self.vehicle_id, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def fail(self, reason: FailureReason, detail: str | None = None) -> OptimizationError:
        error = OptimizationError(reason, detail)
        self.advance(OptimizationState.FAILED)
        self.failure = error
        logger.warning("Route optimization for %s failed: %s", self.vehicle_id, error)
        return error


def default_origin() -> Optional[Destination]:
    """The configured depot, if an address or coordinate is set."""
    coordinate = None
    if settings.depot_latitude is not None and settings.depot_longitude is not None:
        coordinate = Coordinate(lat=settings.depot_latitude, lng=settings.depot_longitude)
    if coordinate is None and not settings.depot_address:
        return None
    return Destination(
        id=settings.depot_id,
        address=settings.depot_address or "",
        label="Depot",
        coordinate=coordinate,
    )


def _dedupe(destinations: Sequence[Destination]) -> list[Destination]:
    seen: set[str] = set()
    unique: list[Destination] = []
    for destination in destinations:
        if destination.id in seen:
            logger.warning("Ignoring duplicate destination id %s", destination.id)
            continue
        seen.add(destination.id)
        unique.append(destination)
    return unique


class RouteOptimizer:
    """Resolve, price, order and total one vehicle's delivery round.

    Collaborators are injected; no state is shared between requests apart
    from the resolver's read-through cache.
    """

    def __init__(
        self,
        resolver: GeoPointResolver,
        matrix_provider: MatrixProvider,
        vehicle_lookup: VehicleLookup,
        *,
        origin: Optional[Destination] = None,
        default_fuel_rate_l_per_100km: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self.resolver = resolver
        self.matrix_provider = matrix_provider
        self.vehicle_lookup = vehicle_lookup
        self.origin = origin
        self.default_fuel_rate = (
            default_fuel_rate_l_per_100km
            if default_fuel_rate_l_per_100km is not None
            else settings.default_fuel_rate_l_per_100km
        )
        self.timeout_seconds = timeout_seconds

    def _fuel_rate(self, vehicle: Vehicle, requested: Optional[float]) -> float:
        if requested is not None:
            return requested
        if vehicle.fuel_consumption_l_per_100km is not None:
            return vehicle.fuel_consumption_l_per_100km
        return self.default_fuel_rate

    def optimize_route(
        self,
        vehicle_id: str,
        destinations: Sequence[Destination],
        departure_time: datetime,
        fuel_rate_l_per_100km: Optional[float] = None,
        *,
        origin: Optional[Destination] = None,
        criterion: Criterion = "distance",
        cancel_event: Optional[threading.Event] = None,
        timeout_seconds: Optional[float] = None,
    ) -> RouteResult:
        run = OptimizationRun(vehicle_id=vehicle_id)

        if not destinations:
            raise run.fail(FailureReason.INVALID_REQUEST, "At least one destination is required.")
        vehicle = self.vehicle_lookup(vehicle_id)
        if vehicle is None:
            raise run.fail(FailureReason.UNKNOWN_VEHICLE, f"Vehicle {vehicle_id} is not in the roster.")
        fuel_rate = self._fuel_rate(vehicle, fuel_rate_l_per_100km)
        if fuel_rate < 0:
            raise run.fail(FailureReason.INVALID_REQUEST, "Fuel rate cannot be negative.")
        start = origin or self.origin
        if start is None:
            raise run.fail(FailureReason.INVALID_REQUEST, "No origin given and no depot configured.")
        unique = _dedupe(destinations)
        if any(destination.id == start.id for destination in unique):
            raise run.fail(FailureReason.INVALID_REQUEST, f"Destination id {start.id} collides with the origin.")
        if departure_time.tzinfo is None:
            departure_time = departure_time.replace(tzinfo=timezone.utc)

        timeout = timeout_seconds if timeout_seconds is not None else self.timeout_seconds
        deadline = time.monotonic() + timeout if timeout is not None else None

        run.advance(OptimizationState.RESOLVING_ADDRESSES)
        origin_point = GeoPoint.from_destination(start)
        stop_points = [GeoPoint.from_destination(destination) for destination in unique]
        batch = self.resolver.resolve_batch(
            [origin_point, *stop_points],
            cancel_event=cancel_event,
            deadline=deadline,
        )
        if batch.cancelled:
            raise run.fail(FailureReason.CANCELLED, "Address resolution was cancelled or timed out.")
        if origin_point.id in batch.failures:
            raise run.fail(FailureReason.ORIGIN_UNRESOLVED, batch.failures[origin_point.id].message)

        resolved_points = [point for point in stop_points if point.id in batch.resolved]
        unresolved = [point.id for point in stop_points if point.id not in batch.resolved]
        if not resolved_points:
            raise run.fail(FailureReason.NO_REACHABLE_DESTINATIONS, "No destination address could be resolved.")
        if is_interrupted(cancel_event, deadline):
            raise run.fail(FailureReason.CANCELLED, "Request cancelled or timed out before the matrix was built.")

        # The matrix call is atomic: cancellation is no longer honoured past this point.
        run.advance(OptimizationState.BUILDING_MATRIX)
        matrix_points = [origin_point, *resolved_points]
        try:
            matrix = build_matrix(matrix_points, self.matrix_provider)
        except MatrixError as exc:
            raise run.fail(FailureReason.MATRIX_ERROR, str(exc)) from exc

        run.advance(OptimizationState.CONSTRUCTING_TOUR)
        construction = build_tour(
            origin_point.id,
            [point.id for point in resolved_points],
            matrix,
            criterion=criterion,
        )
        if construction.unreachable:
            logger.warning(
                "Vehicle %s: %d destinations unreachable from the partial tour: %s",
                vehicle_id,
                len(construction.unreachable),
                list(construction.unreachable),
            )

        run.advance(OptimizationState.AGGREGATING)
        try:
            result = aggregate(
                construction.tour,
                matrix,
                departure_time,
                fuel_rate,
                vehicle_id=vehicle.vehicle_id,
                unresolved=[*unresolved, *construction.unreachable],
                unreachable=construction.unreachable,
                criterion=criterion,
            )
        except InternalConsistencyError as exc:
            logger.error("Tour for %s failed consistency check: %s", vehicle_id, exc)
            raise run.fail(FailureReason.INTERNAL_CONSISTENCY, str(exc)) from exc

        run.advance(OptimizationState.DONE)
        result = replace(
            result,
            metadata={
                "license_plate": vehicle.license_plate,
                "origin_id": origin_point.id,
                "fuel_rate_l_per_100km": fuel_rate,
                "geocoding_failures": {
                    point_id: error.reason for point_id, error in batch.failures.items()
                },
                "labels": {point.id: point.label for point in [origin_point, *stop_points]},
                "states": [state.value for state in run.history],
            },
        )
        logger.info(
            "Vehicle %s: %d stops, %d m, %d s, %.2f L",
            vehicle_id,
            len(result.tour) - 1,
            result.total_distance_meters,
            result.total_duration_seconds,
            result.fuel_liters,
        )
        return result


_geocode_cache = GeocodeCache()


def build_default_optimizer() -> RouteOptimizer:
    from ..geocoding.google_client import GoogleGeocodingClient

    resolver = GeoPointResolver(
        GoogleGeocodingClient(),
        cache=_geocode_cache if settings.geocode_cache_enabled else None,
    )
    return RouteOptimizer(
        resolver,
        get_matrix_provider(),
        get_vehicle,
        origin=default_origin(),
        timeout_seconds=settings.optimization_timeout_seconds,
    )


def optimize_route(
    vehicle_id: str,
    destinations: Sequence[Destination],
    departure_time: datetime,
    fuel_rate_l_per_100km: Optional[float] = None,
    **options,
) -> RouteResult:
    """Optimize with collaborators built from settings."""
    return build_default_optimizer().optimize_route(
        vehicle_id,
        destinations,
        departure_time,
        fuel_rate_l_per_100km,
        **options,
    )
