"""Fleet roster and live position endpoints."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status

from ...data.vehicle_repository import get_vehicle, list_active_vehicles
from ...models.domain import Coordinate
from ...schemas.vehicles import NearbyVehicleModel, TelemetryModel, VehicleListResponse, VehicleModel
from ...services.telemetry import TelemetryError, get_telemetry_service

router = APIRouter(prefix="/vehicles", tags=["vehicles"])

logger = logging.getLogger(__name__)


@router.get("", response_model=VehicleListResponse, status_code=status.HTTP_200_OK)
def list_vehicles() -> VehicleListResponse:
    """Active roster, each vehicle enriched with its latest position when the tracker responds."""
    vehicles = list_active_vehicles()
    try:
        positions = {item.vehicle_id.lower(): item for item in get_telemetry_service().all_active()}
        telemetry_available = True
    except TelemetryError as exc:
        logger.warning("Tracking provider unavailable, listing roster without positions: %s", exc)
        positions = {}
        telemetry_available = False

    items = [
        VehicleModel.from_domain(
            vehicle,
            positions.get(vehicle.vehicle_id.lower()) or positions.get(vehicle.license_plate.lower()),
        )
        for vehicle in vehicles
    ]
    return VehicleListResponse(items=items, telemetry_available=telemetry_available)


@router.get("/nearby", response_model=List[NearbyVehicleModel], status_code=status.HTTP_200_OK)
def nearby_vehicles(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_km: Optional[float] = Query(default=None, gt=0),
    limit: Optional[int] = Query(default=None, ge=1),
) -> List[NearbyVehicleModel]:
    try:
        ranked = get_telemetry_service().nearby(Coordinate(lat=lat, lng=lng), radius_km=radius_km, limit=limit)
    except TelemetryError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return [
        NearbyVehicleModel(
            distance_km=round(item.distance_km, 3),
            bearing_degrees=round(item.bearing_degrees, 1),
            telemetry=TelemetryModel.from_domain(item.telemetry),
        )
        for item in ranked
    ]


@router.get("/{vehicle_id}/location", response_model=TelemetryModel, status_code=status.HTTP_200_OK)
def vehicle_location(vehicle_id: str) -> TelemetryModel:
    vehicle = get_vehicle(vehicle_id)
    if vehicle is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Vehicle {vehicle_id} not found")
    try:
        telemetry = get_telemetry_service().current_location(vehicle.license_plate)
    except TelemetryError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    if telemetry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No position reported for vehicle {vehicle_id}",
        )
    return TelemetryModel.from_domain(telemetry)
