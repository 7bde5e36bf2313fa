"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="CONVOY_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Convoy Routing Command API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root logging level for the service.")
    data_root: Path = Field(default=Path("data"), description="Root directory for static data files.")
    network_file: Path = Field(
        default=Path("data/road_network.json"),
        description="Road network segments loaded once at startup.",
    )
    seed_convoys_file: Path = Field(
        default=Path("data/convoys.json"),
        description="Optional convoy list used to seed the in-memory store.",
    )

    # Road network
    high_risk_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    node_precision: int = Field(default=4, ge=0, le=8)
    snap_radius_km: float = Field(default=25.0, gt=0.0)

    # Convoy store
    endpoint_tolerance_km: float = Field(default=1.0, ge=0.0)

    # Conflict detection
    risk_score_alert_threshold: float = Field(default=55.0, ge=0.0, le=100.0)

    # Route optimizer
    optimizer_max_expansions: int = Field(default=20000, ge=1)
    optimizer_time_budget_seconds: float = Field(default=5.0, gt=0.0)
    conflict_penalty_factor: float = Field(default=1.5, ge=1.0)
    conflict_risk_penalty: float = Field(default=5.0, ge=0.0)

    # Merge advisor
    merge_min_overlap_fraction: float = Field(default=0.5, ge=0.0, le=1.0)
    merge_max_combined_vehicles: int = Field(default=40, ge=1)
    merge_tons_per_vehicle: float = Field(default=2.5, ge=0.0)

    # Operation events and notifications
    event_log_limit: int = Field(default=500, ge=1)
    event_webhook_url: Optional[str] = Field(
        default=None,
        description="Endpoint receiving convoy notifications (e.g., http://localhost:5000/hooks/convoy).",
    )
    webhook_max_retries: int = Field(default=3, ge=0)
    webhook_backoff_seconds: float = Field(default=1.0, ge=0.0)
    webhook_timeout_seconds: float = Field(default=10.0, gt=0.0)
    publish_queue_size: int = Field(default=1000, ge=1, description="Notifications buffered for background delivery.")

    persist_state: bool = Field(
        default=False,
        description="Write acknowledgements and the event log under data_root/state.",
    )

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("data_root", "network_file", "seed_convoys_file", mode="before")
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
