"""Error taxonomy for route optimization."""

from __future__ import annotations

from enum import Enum


class ProviderError(RuntimeError):
    """An external mapping provider could not complete a call."""


class MatrixError(RuntimeError):
    """The distance/duration matrix could not be built at all."""


class InternalConsistencyError(RuntimeError):
    """A tour contains a leg the cost matrix cannot price."""


class FailureReason(str, Enum):
    INVALID_REQUEST = "invalid_request"
    UNKNOWN_VEHICLE = "unknown_vehicle"
    ORIGIN_UNRESOLVED = "origin_unresolved"
    NO_REACHABLE_DESTINATIONS = "no_reachable_destinations"
    MATRIX_ERROR = "matrix_error"
    CANCELLED = "cancelled"
    INTERNAL_CONSISTENCY = "internal_consistency"


class OptimizationError(Exception):
    """Terminal failure of an optimization request."""

    def __init__(self, reason: FailureReason, detail: str | None = None) -> None:
        self.reason = reason
        self.detail = detail or reason.value.replace("_", " ")
        super().__init__(f"{reason.value}: {self.detail}")
