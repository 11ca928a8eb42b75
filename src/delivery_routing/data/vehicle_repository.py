"""Data access helpers for the fleet roster."""

from __future__ import annotations

import csv
import functools
from pathlib import Path
from typing import Optional

from ..config import settings
from ..models.domain import Vehicle


def _coerce_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == "":
        return None
    try:
        return float(value.replace(",", "."))
    except ValueError as exc:
        raise ValueError(f"Unable to parse float from value '{value}'") from exc


@functools.lru_cache(maxsize=1)
def load_vehicles(source: Optional[Path] = None) -> tuple[Vehicle, ...]:
    """Load vehicles from the configured CSV file."""

    csv_path = source or settings.vehicles_file
    if not csv_path.exists():
        raise FileNotFoundError(f"Vehicle file not found: {csv_path}")

    vehicles: list[Vehicle] = []
    with csv_path.open(mode="r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            raise ValueError(f"Vehicle file '{csv_path}' is missing a header row.")
        for row in reader:
            plate = (row.get("license_plate") or "").strip()
            vehicle_id = (row.get("vehicle_id") or "").strip() or plate
            if not vehicle_id:
                continue  # ignore rows without any identifier
            vehicles.append(
                Vehicle(
                    vehicle_id=vehicle_id,
                    license_plate=plate or vehicle_id,
                    model=(row.get("model") or "").strip() or None,
                    status=(row.get("status") or "active").strip().lower(),
                    fuel_consumption_l_per_100km=_coerce_float(row.get("fuel_consumption")),
                    driver_name=(row.get("driver_name") or "").strip() or None,
                )
            )
    return tuple(vehicles)


def get_vehicle(vehicle_id: str, source: Optional[Path] = None) -> Optional[Vehicle]:
    """Find a vehicle by id or licence plate, ignoring case."""

    needle = vehicle_id.strip().lower()
    for vehicle in load_vehicles(source):
        if vehicle.vehicle_id.lower() == needle or vehicle.license_plate.lower() == needle:
            return vehicle
    return None


def list_active_vehicles(source: Optional[Path] = None) -> list[Vehicle]:
    return sorted(
        (vehicle for vehicle in load_vehicles(source) if vehicle.is_active),
        key=lambda vehicle: vehicle.license_plate,
    )
