from .client import TelemetryError, TrackingClient
from .service import NearbyVehicle, TelemetryService, derive_status, get_telemetry_service, parse_telemetry

__all__ = [
    "NearbyVehicle",
    "TelemetryError",
    "TelemetryService",
    "TrackingClient",
    "derive_status",
    "get_telemetry_service",
    "parse_telemetry",
]
