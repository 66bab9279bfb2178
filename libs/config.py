"""
Global configuration system for the funnelscope batch jobs.

Provides globally shared configuration:
- Analysis parameters (date range, funnel window, cohort threshold, device filter)
- Raw event source settings
- Output storage settings
- S3/MinIO settings
- Generic service-level runtime settings
"""

from __future__ import annotations

from datetime import date
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from libs.models.events import DeviceCategory

PROJECT_ROOT: Path = Path(__file__).resolve().parents[1]
DEFAULT_ENV_PATH: Path = PROJECT_ROOT / ".env"


class AnalysisConfig(BaseSettings):
    """Parameters that determine the funnel and retention output."""

    start_date: date = Field(default=date(2021, 1, 1))
    end_date: date = Field(default=date(2021, 1, 31))
    funnel_window_days: int = Field(default=30, gt=0)
    cohort_size_threshold: int = Field(default=100, ge=1)
    device_filter: Optional[DeviceCategory] = Field(default=None)

    model_config = SettingsConfigDict(env_prefix="ANALYSIS__", extra="ignore")

    @model_validator(mode="after")
    def _check_date_range(self) -> "AnalysisConfig":
        if self.start_date > self.end_date:
            raise ValueError(
                f"start_date {self.start_date} is after end_date {self.end_date}"
            )
        return self


class SourceConfig(BaseSettings):
    """Raw event log location (GA4-style export)."""

    format: str = Field(default="parquet")
    path: str = Field(default="s3a://funnelscope-raw/raw/ga4_events")
    options: Dict[str, str] = Field(default_factory=dict)

    model_config = SettingsConfigDict(env_prefix="SOURCE__", extra="ignore")


class StorageConfig(BaseSettings):
    """Where silver/gold tables are written."""

    root: str = Field(default="s3a://funnelscope-raw")
    table_format: str = Field(default="delta")

    model_config = SettingsConfigDict(env_prefix="STORAGE__", extra="ignore")


class S3Config(BaseSettings):
    """Shared S3/MinIO configuration."""

    endpoint_url: str = Field(default="http://minio:9000")
    access_key: str = Field(default="minioadmin")
    secret_key: str = Field(default="minioadmin")

    model_config = SettingsConfigDict(env_prefix="S3__", extra="ignore")


class ServiceConfig(BaseSettings):
    """Generic service-level config."""

    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_prefix="SERVICE__", extra="ignore")


class AppConfig(BaseSettings):
    """Root global configuration object."""

    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    s3: S3Config = Field(default_factory=S3Config)
    service: ServiceConfig = Field(default_factory=ServiceConfig)

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    @lru_cache(maxsize=1)
    def load(cls) -> "AppConfig":
        try:
            env_file = str(DEFAULT_ENV_PATH) if DEFAULT_ENV_PATH.exists() else None
            return cls(_env_file=env_file)
        except ValidationError as exc:
            raise RuntimeError("Invalid configuration values.") from exc
