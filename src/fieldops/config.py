"""Application configuration and settings management."""

from pathlib import Path
from typing import Annotated, Any, Literal, Optional

import json
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="FIELDOPS_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Field Service Dispatch API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root logging level.")
    data_root: Path = Field(default=Path("data"), description="Root directory for static data files.")
    jobs_file: Path = Field(default=Path("data/jobs.csv"), description="Service job export; defaults to <data_root>/jobs.csv.")
    technicians_file: Path = Field(default=Path("data/technicians.csv"), description="Technician roster; defaults to <data_root>/technicians.csv.")
    locations_file: Path = Field(
        default=Path("data/locations.csv"),
        description="Location index (location_id, latitude, longitude) used when no geocoder URL is set.",
    )
    geocoder_base_url: Optional[str] = Field(
        default=None,
        description="Base URL of a Nominatim-compatible geocoder (e.g., https://nominatim.openstreetmap.org).",
    )
    geocoder_user_agent: str = Field(default="fieldops-dispatch/0.1")
    osrm_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the OSRM routing service (e.g., http://localhost:5000).",
    )
    osrm_profile: Literal["driving", "driving-hgv"] = Field(default="driving")
    provider_max_retries: int = Field(default=2, ge=0)
    provider_backoff_seconds: float = Field(default=0.5, ge=0.0)
    provider_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Upper bound for a single geocode or distance lookup.",
    )
    lookup_batch_timeout_seconds: float = Field(
        default=120.0,
        gt=0.0,
        description="Upper bound for resolving all job locations of one scheduling run.",
    )
    job_fetch_timeout_seconds: float = Field(default=30.0, gt=0.0)
    max_parallel_lookups: int = Field(default=8, ge=1)

    cache_ttl_location_seconds: int = Field(default=86400, gt=0)
    cache_ttl_distance_matrix_seconds: int = Field(default=3600, gt=0)
    cache_ttl_default_seconds: int = Field(default=300, gt=0)

    clustering_mode: Literal["count", "radius"] = Field(
        default="count",
        description="Seed one cluster per technician ('count') or grow clusters within a radius ('radius').",
    )
    cluster_radius_km: float = Field(default=8.0, gt=0.0)
    max_jobs_per_technician: Optional[int] = Field(default=None, ge=1)
    capacity_policy: Literal["fail", "reduce"] = Field(
        default="fail",
        description="What to do when more clusters are requested than technicians are available.",
    )
    dispatch_origin: Annotated[Optional[tuple[float, float]], NoDecode] = Field(
        default=None,
        description="Reference point (lat, lon) for ordering clusters; defaults to (0, 0).",
    )
    frontend_allowed_origins: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("data_root", "jobs_file", "technicians_file", "locations_file", mode="before")
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

    @field_validator("dispatch_origin", mode="before")
    @classmethod
    def _parse_origin(cls, value: Any) -> Optional[tuple[float, float]]:
        """Accept "lat,lon", a JSON array or a pair."""
        if value is None or value == "":
            return None
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError:
                parsed = [item.strip() for item in value.split(",")]
            value = parsed
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return float(value[0]), float(value[1])
        raise ValueError("dispatch_origin must be a 'lat,lon' pair")

    @model_validator(mode="after")
    def _files_under_data_root(self) -> "Settings":
        """Place data files not configured explicitly under ``data_root``."""
        for name, filename in (
            ("jobs_file", "jobs.csv"),
            ("technicians_file", "technicians.csv"),
            ("locations_file", "locations.csv"),
        ):
            if name not in self.model_fields_set:
                setattr(self, name, (self.data_root / filename).resolve())
        return self


settings = Settings()
