"""Serializers for routing outputs."""

from __future__ import annotations

import csv
import io
from pathlib import Path

from ...persistence.filesystem import FileStorage
from ..routing.models import RouteResult


def route_result_to_json(result: RouteResult) -> dict:
    return {
        "vehicle_id": result.vehicle_id,
        "criterion": result.criterion,
        "tour": list(result.tour),
        "total_distance_meters": result.total_distance_meters,
        "total_duration_seconds": result.total_duration_seconds,
        "fuel_liters": round(result.fuel_liters, 3),
        "departure_time": result.departure_time.isoformat(),
        "arrival_time": result.arrival_time.isoformat(),
        "unresolved_destinations": list(result.unresolved_destinations),
        "unreachable_destinations": list(result.unreachable_destinations),
        "metadata": dict(result.metadata),
    }


def route_result_to_csv(result: RouteResult) -> str:
    buffer = io.StringIO()
    fieldnames = [
        "vehicle_id",
        "sequence",
        "from_id",
        "to_id",
        "distance_meters",
        "duration_seconds",
        "arrival_time",
    ]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames, lineterminator="\n")
    writer.writeheader()
    for sequence, leg in enumerate(result.legs, start=1):
        writer.writerow(
            {
                "vehicle_id": result.vehicle_id,
                "sequence": sequence,
                "from_id": leg.from_id,
                "to_id": leg.to_id,
                "distance_meters": leg.distance_meters,
                "duration_seconds": leg.duration_seconds,
                "arrival_time": leg.arrival_time.isoformat(),
            }
        )
    return buffer.getvalue()


def save_route_result(result: RouteResult, storage: FileStorage | None = None) -> Path:
    """Write ``summary.json`` and ``legs.csv`` into a fresh run directory."""
    storage = storage or FileStorage()
    run_dir = storage.make_run_directory(prefix=f"route_{result.vehicle_id}")
    storage.write_json(run_dir / "summary.json", route_result_to_json(result))
    storage.write_csv(run_dir / "legs.csv", route_result_to_csv(result))
    return run_dir
