"""Domain models for delivery stops, fleet vehicles and their telemetry."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A WGS84 position in decimal degrees."""

    lat: float
    lng: float

    def is_valid(self) -> bool:
        return -90.0 <= self.lat <= 90.0 and -180.0 <= self.lng <= 180.0

    def as_tuple(self) -> tuple[float, float]:
        return (self.lat, self.lng)


@dataclass(slots=True)
class Destination:
    """A delivery stop as submitted by the caller."""

    id: str
    address: str
    label: Optional[str] = None
    coordinate: Optional[Coordinate] = None


@dataclass(slots=True)
class GeoPoint:
    """A stop registered for one optimization request.

    ``coordinate`` remains ``None`` until resolved, and stays ``None`` for the
    rest of the request when resolution fails.
    """

    id: str
    label: str
    address: str
    coordinate: Optional[Coordinate] = None

    @classmethod
    def from_destination(cls, destination: Destination) -> "GeoPoint":
        return cls(
            id=destination.id,
            label=destination.label or destination.address,
            address=destination.address,
            coordinate=destination.coordinate,
        )

    @property
    def is_resolved(self) -> bool:
        return self.coordinate is not None


class VehicleStatus(str, Enum):
    MOVING = "moving"
    STOPPED = "stopped"
    IDLE = "idle"


@dataclass(slots=True)
class Vehicle:
    """Represents a fleet vehicle from the roster."""

    vehicle_id: str
    license_plate: str
    model: Optional[str]
    status: str
    fuel_consumption_l_per_100km: Optional[float] = None
    driver_name: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status.lower() == "active"


@dataclass(frozen=True, slots=True)
class VehicleTelemetry:
    """Latest observed position of a vehicle; each poll replaces the previous one."""

    vehicle_id: str
    license_plate: str
    coordinate: Coordinate
    speed_kmh: float
    heading_degrees: float
    status: VehicleStatus
    observed_at: datetime
    driver_name: Optional[str] = None
