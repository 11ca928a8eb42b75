"""Routing request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ..models.domain import Coordinate, Destination
from ..services.routing.models import RouteResult


class CoordinateModel(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class DestinationModel(BaseModel):
    id: str = Field(..., min_length=1)
    address: str = ""
    label: Optional[str] = None
    coordinates: Optional[CoordinateModel] = Field(
        default=None,
        description="Known position; when present the address is not geocoded.",
    )

    def to_domain(self) -> Destination:
        coordinate = Coordinate(lat=self.coordinates.lat, lng=self.coordinates.lng) if self.coordinates else None
        return Destination(id=self.id, address=self.address, label=self.label, coordinate=coordinate)


class OptimizeRouteRequest(BaseModel):
    vehicle_id: str
    destinations: List[DestinationModel] = Field(..., min_length=1)
    departure_time: datetime
    fuel_rate_l_per_100km: Optional[float] = Field(default=None, ge=0)
    origin: Optional[DestinationModel] = Field(
        default=None,
        description="Start of the round. Defaults to the configured depot.",
    )
    criterion: Literal["distance", "duration"] = "distance"
    timeout_seconds: Optional[float] = Field(default=None, gt=0)
    persist: bool = False


class RouteLegModel(BaseModel):
    sequence: int
    from_id: str
    to_id: str
    to_label: Optional[str] = None
    distance_meters: int
    duration_seconds: int
    arrival_time: datetime


class RouteResultModel(BaseModel):
    vehicle_id: str
    tour: List[str]
    legs: List[RouteLegModel]
    total_distance_meters: int
    total_duration_seconds: int
    fuel_liters: float
    departure_time: datetime
    arrival_time: datetime
    unresolved_destinations: List[str]
    unreachable_destinations: List[str]
    criterion: str
    metadata: Dict = Field(default_factory=dict)
    output_dir: Optional[str] = Field(default=None, description="Run directory when the route was persisted.")

    @classmethod
    def from_result(cls, result: RouteResult, output_dir: Optional[str] = None) -> "RouteResultModel":
        labels = result.metadata.get("labels", {})
        return cls(
            vehicle_id=result.vehicle_id,
            tour=list(result.tour),
            legs=[
                RouteLegModel(
                    sequence=index,
                    from_id=leg.from_id,
                    to_id=leg.to_id,
                    to_label=labels.get(leg.to_id),
                    distance_meters=leg.distance_meters,
                    duration_seconds=leg.duration_seconds,
                    arrival_time=leg.arrival_time,
                )
                for index, leg in enumerate(result.legs, start=1)
            ],
            total_distance_meters=result.total_distance_meters,
            total_duration_seconds=result.total_duration_seconds,
            fuel_liters=result.fuel_liters,
            departure_time=result.departure_time,
            arrival_time=result.arrival_time,
            unresolved_destinations=list(result.unresolved_destinations),
            unreachable_destinations=list(result.unreachable_destinations),
            criterion=result.criterion,
            metadata=dict(result.metadata),
            output_dir=output_dir,
        )
