"""Vehicle roster and telemetry schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from ..models.domain import Vehicle, VehicleTelemetry
from .routing import CoordinateModel


class TelemetryModel(BaseModel):
    vehicle_id: str
    license_plate: str
    coordinates: CoordinateModel
    speed_kmh: float
    heading_degrees: float
    status: str
    observed_at: datetime
    driver_name: Optional[str] = None

    @classmethod
    def from_domain(cls, telemetry: VehicleTelemetry) -> "TelemetryModel":
        return cls(
            vehicle_id=telemetry.vehicle_id,
            license_plate=telemetry.license_plate,
            coordinates=CoordinateModel(lat=telemetry.coordinate.lat, lng=telemetry.coordinate.lng),
            speed_kmh=telemetry.speed_kmh,
            heading_degrees=telemetry.heading_degrees,
            status=telemetry.status.value,
            observed_at=telemetry.observed_at,
            driver_name=telemetry.driver_name,
        )


class VehicleModel(BaseModel):
    vehicle_id: str
    license_plate: str
    model: Optional[str] = None
    status: str
    fuel_consumption_l_per_100km: Optional[float] = None
    driver_name: Optional[str] = None
    location: Optional[TelemetryModel] = None

    @classmethod
    def from_domain(cls, vehicle: Vehicle, telemetry: VehicleTelemetry | None = None) -> "VehicleModel":
        return cls(
            vehicle_id=vehicle.vehicle_id,
            license_plate=vehicle.license_plate,
            model=vehicle.model,
            status=vehicle.status,
            fuel_consumption_l_per_100km=vehicle.fuel_consumption_l_per_100km,
            driver_name=vehicle.driver_name,
            location=TelemetryModel.from_domain(telemetry) if telemetry else None,
        )


class NearbyVehicleModel(BaseModel):
    distance_km: float
    bearing_degrees: float
    telemetry: TelemetryModel


class VehicleListResponse(BaseModel):
    items: List[VehicleModel]
    telemetry_available: bool
