"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Iterator, Literal, Mapping, Optional, Sequence

Tour = tuple[str, ...]
Criterion = Literal["distance", "duration"]

ELEMENT_OK = "OK"
ELEMENT_NOT_FOUND = "NOT_FOUND"
ELEMENT_ZERO_RESULTS = "ZERO_RESULTS"


@dataclass(frozen=True, slots=True)
class MatrixElement:
    """One cell of a provider's distance/duration grid."""

    status: str
    distance_meters: Optional[float] = None
    duration_seconds: Optional[float] = None

    @property
    def is_ok(self) -> bool:
        return (
            self.status == ELEMENT_OK
            and self.distance_meters is not None
            and self.duration_seconds is not None
        )


@dataclass(frozen=True, slots=True)
class CostMatrixEntry:
    from_id: str
    to_id: str
    distance_meters: Optional[int]
    duration_seconds: Optional[int]

    @property
    def is_reachable(self) -> bool:
        return self.distance_meters is not None and self.duration_seconds is not None

    def cost(self, criterion: Criterion) -> Optional[int]:
        return self.duration_seconds if criterion == "duration" else self.distance_meters


class CostMatrix:
    """Square table of travel costs between resolved points, keyed by point id."""

    __slots__ = ("_point_ids", "_entries")

    def __init__(self, point_ids: Sequence[str], entries: Sequence[CostMatrixEntry]) -> None:
        ids = tuple(point_ids)
        if len(set(ids)) != len(ids):
            raise ValueError("Cost matrix point ids must be unique.")
        table: dict[tuple[str, str], CostMatrixEntry] = {}
        for entry in entries:
            if entry.from_id not in ids or entry.to_id not in ids:
                raise ValueError(f"Entry {entry.from_id}->{entry.to_id} references an unknown point.")
            if entry.from_id == entry.to_id:
                entry = CostMatrixEntry(entry.from_id, entry.to_id, 0, 0)
            table[(entry.from_id, entry.to_id)] = entry
        if len(table) != len(ids) * len(ids):
            raise ValueError(
                f"Cost matrix over {len(ids)} points needs {len(ids) ** 2} entries, got {len(table)}."
            )
        self._point_ids = ids
        self._entries = table

    @property
    def point_ids(self) -> Tour:
        return self._point_ids

    def __contains__(self, point_id: object) -> bool:
        return point_id in self._point_ids

    def __len__(self) -> int:
        return len(self._point_ids)

    def __iter__(self) -> Iterator[CostMatrixEntry]:
        for from_id in self._point_ids:
            for to_id in self._point_ids:
                yield self._entries[(from_id, to_id)]

    def entry(self, from_id: str, to_id: str) -> CostMatrixEntry:
        try:
            return self._entries[(from_id, to_id)]
        except KeyError:
            raise KeyError(f"No matrix entry for {from_id}->{to_id}") from None


@dataclass(frozen=True, slots=True)
class RouteLeg:
    from_id: str
    to_id: str
    distance_meters: int
    duration_seconds: int
    arrival_time: datetime


@dataclass(frozen=True, slots=True)
class RouteResult:
    vehicle_id: str
    tour: Tour
    legs: tuple[RouteLeg, ...]
    total_distance_meters: int
    total_duration_seconds: int
    fuel_liters: float
    departure_time: datetime
    arrival_time: datetime
    unresolved_destinations: tuple[str, ...] = ()
    unreachable_destinations: tuple[str, ...] = ()
    criterion: Criterion = "distance"
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))
