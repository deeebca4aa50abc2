"""
Configuration for JSONDrop Server.

Uses pydantic-settings for environment variable loading. Every setting
can be overridden with a JSONDROP_ prefixed variable, e.g.
JSONDROP_DEFAULT_QUOTA_MB=50.

Invariants:
    - All settings have sensible defaults for local development
    - Quota, expiry and interval settings must be positive
    - Keys and other secrets are never logged

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - Keep broadcaster timings consistent: heartbeat < stale threshold
"""

from __future__ import annotations

import logging

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


class Settings(BaseSettings):
    """Server configuration loaded from environment."""

    # HTTP binding
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, description="Bind port")

    # Storage layout
    data_dir: str = Field(default="./data", description="Directory for per-tenant SQLite files")
    catalog_path: str = Field(default="./data/catalog.db", description="Catalog SQLite file")
    wal_mode: bool = Field(default=True, description="Enable SQLite WAL journal mode")
    busy_timeout_ms: int = Field(default=5000, ge=0, description="SQLite busy timeout")

    # CORS
    cors_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")

    # Tenant lifecycle
    default_quota_mb: int = Field(default=100, gt=0, description="Quota per new tenant (MB)")
    expiry_days: int = Field(default=30, gt=0, description="Idle days before a tenant expires")
    expiry_check_interval_seconds: float = Field(
        default=24 * 3600, gt=0, description="Interval between expiry sweeps"
    )

    # Change broadcasting
    listener_queue_size: int = Field(default=10, gt=0, description="Per-listener event buffer")
    heartbeat_interval_seconds: float = Field(default=15.0, gt=0)
    stale_listener_seconds: float = Field(default=120.0, gt=0)
    sweep_interval_seconds: float = Field(default=30.0, gt=0)

    # Observability
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")
    log_format: str = Field(default="json", description="json or text")

    model_config = {"env_prefix": "JSONDROP_"}

    @model_validator(mode="after")
    def _check_listener_timings(self) -> Settings:
        if self.heartbeat_interval_seconds >= self.stale_listener_seconds:
            raise ValueError(
                "heartbeat_interval_seconds must be shorter than stale_listener_seconds"
            )
        return self

    @property
    def default_quota_bytes(self) -> int:
        """Quota limit assigned to new tenants, in bytes."""
        return self.default_quota_mb * BYTES_PER_MB

    @property
    def max_idle_seconds(self) -> float:
        """Idle period after which a tenant is swept."""
        return self.expiry_days * 24 * 3600.0

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "port": self.port,
                "data_dir": self.data_dir,
                "catalog_path": self.catalog_path,
                "cors_origins": self.cors_origins,
                "default_quota_mb": self.default_quota_mb,
                "expiry_days": self.expiry_days,
                "expiry_check_interval_seconds": self.expiry_check_interval_seconds,
                "log_level": self.log_level,
            },
        )
