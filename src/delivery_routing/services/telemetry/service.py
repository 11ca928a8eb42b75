"""Vehicle position lookup and proximity ranking for vehicle selection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from ...config import settings
from ...models.domain import Coordinate, VehicleStatus, VehicleTelemetry
from ..geospatial import bearing_degrees, great_circle_distance_km
from .client import TelemetryError

logger = logging.getLogger(__name__)


class TelemetrySource(Protocol):
    def get_location(self, vehicle_id: str) -> dict | None:
        ...

    def get_all_locations(self) -> list[dict]:
        ...


@dataclass(frozen=True, slots=True)
class NearbyVehicle:
    telemetry: VehicleTelemetry
    distance_km: float
    bearing_degrees: float


def derive_status(
    speed_kmh: Optional[float],
    *,
    ignition_on: Optional[bool] = None,
    reported: Optional[str] = None,
    threshold_kmh: Optional[float] = None,
) -> VehicleStatus:
    """Moving above the speed threshold, otherwise idle with the engine on, else stopped."""
    threshold = settings.moving_speed_threshold_kmh if threshold_kmh is None else threshold_kmh
    if speed_kmh is not None:
        if speed_kmh > threshold:
            return VehicleStatus.MOVING
        return VehicleStatus.IDLE if ignition_on else VehicleStatus.STOPPED
    if reported:
        try:
            return VehicleStatus(reported.strip().lower())
        except ValueError:
            logger.debug("Ignoring unknown provider status '%s'", reported)
    return VehicleStatus.IDLE if ignition_on else VehicleStatus.STOPPED


def _first(payload: dict, *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def _parse_timestamp(value: Any) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if isinstance(value, (int, float)):
        # epoch seconds, or milliseconds when implausibly large
        seconds = value / 1000 if value > 10**11 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


_TRUE_FLAGS = {"true", "1", "on", "yes"}
_FALSE_FLAGS = {"false", "0", "off", "no", ""}


def _parse_flag(value: Any) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_FLAGS:
        return True
    if text in _FALSE_FLAGS:
        return False
    logger.debug("Ignoring unreadable ignition flag %r", value)
    return None


def parse_telemetry(payload: dict, vehicle_id: Optional[str] = None) -> VehicleTelemetry:
    """Map a provider payload onto ``VehicleTelemetry``.

    Accepts both flat payloads and ones nesting the fix under ``location``.
    """
    if not isinstance(payload, dict):
        raise TelemetryError(f"Tracking payload is not an object: {payload!r}")
    try:
        return _build_telemetry(payload, vehicle_id)
    except (TypeError, ValueError, OverflowError) as exc:
        raise TelemetryError(f"Tracking payload has an unreadable field: {exc}") from exc


def _build_telemetry(payload: dict, vehicle_id: Optional[str]) -> VehicleTelemetry:
    location = payload.get("location") if isinstance(payload.get("location"), dict) else payload
    lat = _first(location, "latitude", "lat")
    lng = _first(location, "longitude", "lng", "lon")
    if lat is None or lng is None:
        raise TelemetryError("Tracking payload has no coordinates.")

    identifier = vehicle_id or _first(payload, "vehicleId", "vehicle_id", "id")
    if identifier is None:
        raise TelemetryError("Tracking payload has no vehicle id.")
    speed = _first(location, "speed", "speedKmh")
    heading = _first(location, "heading", "course")
    ignition = _first(payload, "ignition", "engineOn")

    return VehicleTelemetry(
        vehicle_id=str(identifier),
        license_plate=str(_first(payload, "licensePlate", "license_plate") or identifier),
        coordinate=Coordinate(lat=float(lat), lng=float(lng)),
        speed_kmh=float(speed or 0.0),
        heading_degrees=float(heading or 0.0) % 360,
        status=derive_status(
            float(speed) if speed is not None else None,
            ignition_on=_parse_flag(ignition),
            reported=_first(payload, "status"),
        ),
        observed_at=_parse_timestamp(_first(location, "timestamp", "observedAt")),
        driver_name=_first(payload, "driver", "driverName"),
    )


class TelemetryService:
    """Read-only view of live vehicle positions; used for display, never for route costing."""

    def __init__(self, source: TelemetrySource) -> None:
        self.source = source

    def current_location(self, vehicle_id: str) -> Optional[VehicleTelemetry]:
        payload = self.source.get_location(vehicle_id)
        if payload is None:
            return None
        return parse_telemetry(payload, vehicle_id=vehicle_id)

    def all_active(self) -> list[VehicleTelemetry]:
        vehicles: list[VehicleTelemetry] = []
        for payload in self.source.get_all_locations():
            try:
                vehicles.append(parse_telemetry(payload))
            except TelemetryError as exc:
                logger.warning("Skipping unreadable tracking record: %s", exc)
        return sorted(vehicles, key=lambda item: item.vehicle_id)

    def nearby(
        self,
        point: Coordinate,
        *,
        radius_km: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> list[NearbyVehicle]:
        ranked = []
        for telemetry in self.all_active():
            distance = great_circle_distance_km(point, telemetry.coordinate)
            if radius_km is not None and distance > radius_km:
                continue
            ranked.append(
                NearbyVehicle(
                    telemetry=telemetry,
                    distance_km=distance,
                    bearing_degrees=bearing_degrees(
                        point.lat, point.lng, telemetry.coordinate.lat, telemetry.coordinate.lng
                    ),
                )
            )
        ranked.sort(key=lambda item: (item.distance_km, item.telemetry.vehicle_id))
        return ranked[:limit] if limit is not None else ranked


def get_telemetry_service() -> TelemetryService:
    from .client import TrackingClient

    return TelemetryService(TrackingClient())
