"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="DISPATCH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Fleet Dispatch Sync API"
    api_prefix: str = "/api"
    data_root: Path = Field(default=Path("data"), description="Root directory for static data files.")
    stations_file: Path = Field(
        default=Path("data/stations.csv"),
        description="Home stations with latitude/longitude coordinates.",
    )
    resources_file: Path = Field(
        default=Path("data/resources.csv"),
        description="Movable resources (call sign, category, home station).",
    )

    osrm_base_url: Optional[str] = Field(
        default="https://router.project-osrm.org",
        description="Base URL for the OSRM routing service (e.g., http://localhost:5000).",
    )
    osrm_profile: Literal["driving", "driving-hgv"] = Field(
        default="driving",
        description="OSRM profile to use when resolving routes.",
    )
    osrm_timeout_seconds: float = Field(default=10.0, gt=0.0)
    osrm_max_retries: int = Field(default=2, ge=0)
    osrm_backoff_seconds: float = Field(default=0.5, ge=0.0)

    default_speed_mps: float = Field(
        default=20.0,
        gt=0.0,
        description="Travel speed (meters per second) used when a movement does not carry one.",
    )
    arrival_tolerance_m: float = Field(
        default=1.0,
        ge=0.0,
        description="Distance short of the route end at which a movement counts as arrived.",
    )
    default_anchor: tuple[float, float] = Field(
        default=(59.9139, 10.7522),
        description="Fallback (lat, lng) used when no better coordinate is known.",
    )
    frame_rate_hz: float = Field(default=30.0, gt=0.0)
    feed_poll_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="Polling interval of the Supabase change feed.",
    )

    nominatim_base_url: str = Field(default="https://nominatim.openstreetmap.org")
    geocode_country_suffix: str = Field(default="Norge")
    geocode_countrycodes: str = Field(default="no")
    geocode_viewbox: Optional[str] = Field(
        default="10.0,59.0,11.8,60.3",
        description="Search bounds as minLon,minLat,maxLon,maxLat.",
    )
    geocode_user_agent: str = Field(default="fleet-dispatch-sync/0.1")
    geocode_timeout_seconds: float = Field(default=10.0, gt=0.0)

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )
    movements_table: str = "movement_states"
    incidents_table: str = "incidents"
    logs_table: str = "logs"

    @field_validator("data_root", "stations_file", "resources_file", mode="before")
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

    @field_validator("default_anchor", mode="before")
    @classmethod
    def _parse_anchor_from_env(cls, value: Any) -> tuple[float, float]:
        """Parse a (lat, lng) pair from "59.91,10.75" or a JSON array."""
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except (json.JSONDecodeError, TypeError):
                parsed = [item.strip() for item in value.split(",") if item.strip()]
            value = parsed
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return (float(value[0]), float(value[1]))
        raise ValueError("default_anchor must be a (lat, lng) pair")


settings = Settings()
