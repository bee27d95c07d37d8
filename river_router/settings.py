from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping tunables out of the routing code."""

    model_config = SettingsConfigDict(
        env_file=(".env",),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    out_dir: str = Field(default="", alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Query gate: endpoints further than this from every river are rejected.
    max_distance_from_river_mi: float = Field(
        default=20.0,
        gt=0.0,
        alias="RIVER_PATH_MAX_DISTANCE_MI",
    )
    # Wall-clock budget for network construction (flatten, splice, intersect, assemble).
    build_timeout_s: float = Field(default=30.0, ge=0.0, alias="RIVER_PATH_BUILD_TIMEOUT_S")
    intersection_check_interval: int = Field(
        default=5,
        ge=1,
        le=10_000,
        alias="RIVER_PATH_INTERSECTION_CHECK_INTERVAL",
    )
    graph_check_interval: int = Field(
        default=500,
        ge=1,
        le=1_000_000,
        alias="RIVER_PATH_GRAPH_CHECK_INTERVAL",
    )
    distance_decimals: int = Field(default=2, ge=0, le=9, alias="RIVER_PATH_DISTANCE_DECIMALS")
    # 7 decimals of a degree is roughly 1 cm at the equator.
    node_key_decimals: int = Field(default=7, ge=3, le=12, alias="RIVER_PATH_NODE_KEY_DECIMALS")
    strtree_pruning_enabled: bool = Field(default=True, alias="RIVER_PATH_STRTREE_PRUNING_ENABLED")

    @model_validator(mode="after")
    def _normalise_log_level(self) -> "Settings":
        self.log_level = str(self.log_level or "INFO").strip().upper() or "INFO"
        self.out_dir = str(self.out_dir or "").strip()
        return self


settings = Settings()
