"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="ROUTING_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Delivery Route Planner API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root log level for the service.")
    data_root: Path = Field(default=Path("data"), description="Root directory for static data files.")
    vehicles_file: Path = Field(
        default=Path("data/vehicles.csv"),
        description="Fleet roster with licence plates and fuel consumption.",
    )

    depot_id: str = Field(default="depot", description="Identifier used for the route origin.")
    depot_address: Optional[str] = Field(
        default=None,
        description="Street address of the bakery the rounds start from.",
    )
    depot_latitude: Optional[float] = Field(default=None, ge=-90.0, le=90.0)
    depot_longitude: Optional[float] = Field(default=None, ge=-180.0, le=180.0)

    matrix_provider: Literal["osrm", "google"] = Field(
        default="osrm",
        description="Backend used to price every ordered pair of stops.",
    )
    osrm_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the OSRM routing service (e.g., http://localhost:5000).",
    )
    osrm_profile: Literal["driving", "driving-hgv"] = Field(
        default="driving",
        description="OSRM profile to use when computing travel times.",
    )
    osrm_max_retries: int = Field(default=3, ge=0)
    osrm_backoff_seconds: float = Field(default=1.0, ge=0.0)

    google_maps_api_key: Optional[str] = Field(
        default=None,
        description="Key for the Google Maps geocoding and distance matrix APIs.",
    )
    geocoding_max_concurrency: int = Field(
        default=8,
        ge=1,
        description="Upper bound on simultaneous geocoding calls for one request.",
    )
    geocode_cache_enabled: bool = True

    tracking_base_url: str = Field(
        default="https://api.trackgps.ro/api",
        description="Base URL of the vehicle tracking provider.",
    )
    tracking_api_key: Optional[str] = None
    tracking_username: Optional[str] = None
    tracking_password: Optional[str] = None
    tracking_timeout_seconds: float = Field(default=10.0, gt=0.0)
    moving_speed_threshold_kmh: float = Field(
        default=0.0,
        ge=0.0,
        description="Vehicles reporting a speed above this value are considered moving.",
    )

    default_fuel_rate_l_per_100km: float = Field(default=10.0, ge=0.0)
    optimization_timeout_seconds: Optional[float] = Field(
        default=30.0,
        gt=0.0,
        description="Deadline for address resolution within one optimization request.",
    )

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("data_root", "vehicles_file", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
