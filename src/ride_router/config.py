"""Application configuration and settings management."""

from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="RIDEROUTE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Rider Route Planner API"
    api_prefix: str = "/api"
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    osrm_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the OSRM routing service (e.g., http://localhost:5000).",
    )
    osrm_profile: Literal["driving", "car", "bike", "foot"] = Field(
        default="driving",
        description="OSRM profile to use when computing travel costs.",
    )
    matrix_metric: Literal["distance", "duration"] = Field(
        default="distance",
        description="Cost stored in the distance matrix: metres or seconds.",
    )
    nominatim_base_url: str = Field(
        default="https://nominatim.openstreetmap.org",
        description="Base URL of a Nominatim-compatible geocoder.",
    )
    nominatim_user_agent: str = Field(default="RiderRoutePlanner/1.0")
    geocode_country_codes: Optional[str] = Field(
        default="us",
        description="Comma separated ISO country codes passed to the geocoder.",
    )
    geocode_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Minimum gap between geocoder requests (public Nominatim allows one per second).",
    )
    request_timeout_seconds: float = Field(default=30.0, gt=0.0)

    matrix_chunk_size: int = Field(default=10, ge=1, description="Provider batch cap per side.")
    provider_max_attempts: int = Field(default=3, ge=1)
    provider_backoff_seconds: float = Field(default=1.0, ge=0.0)

    directions_waypoint_cap: int = Field(default=25, ge=0)
    deep_link_waypoint_cap: int = Field(default=10, ge=0)

    non_rider_keywords: tuple[str, ...] = Field(default=("driver", "assistant"))
    insert_policy: Literal["append", "reoptimize"] = Field(
        default="append",
        description="Whether inserting a stop appends it or rebuilds the tour.",
    )

    # Optional depot; when unset the first roster stop is the origin.
    origin_name: str = "Depot"
    origin_street: Optional[str] = None
    origin_city: Optional[str] = None
    origin_state: Optional[str] = None
    origin_zip: Optional[str] = None

    @property
    def origin_configured(self) -> bool:
        return all((self.origin_street, self.origin_city, self.origin_state, self.origin_zip))

    @field_validator("frontend_allowed_origins", "non_rider_keywords", mode="before")
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
