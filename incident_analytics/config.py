"""Incident analytics configuration system using Pydantic Settings."""

from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

OPEN_RESOLUTION_POLICIES = {"exclude", "provisional"}


class IncidentAnalyticsConfig(BaseSettings):
    """Main configuration class. Loads from .env file and environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "INCIDENT-ANALYTICS"
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./incidents.db"
    db_busy_timeout: int = 5000  # ms, SQLite only

    # Logging
    log_dir: str = "logs"
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    # Export
    export_dir: str = "exports"

    # Reporting
    report_top_cost_limit: int = 20
    report_analyst_min_resolved: int = 5
    report_resolved_within_hours: float = 24.0
    report_open_resolution_policy: str = "exclude"  # exclude / provisional
    report_closed_statuses: list[str] = ["Closed"]
    report_deadline_seconds: float = 30.0  # 0 disables the deadline

    @field_validator("report_open_resolution_policy")
    @classmethod
    def validate_open_resolution_policy(cls, v: str) -> str:
        v = v.lower()
        if v not in OPEN_RESOLUTION_POLICIES:
            raise ValueError(f"report_open_resolution_policy must be one of {OPEN_RESOLUTION_POLICIES}")
        return v

    @field_validator("report_top_cost_limit", "report_analyst_min_resolved", "db_busy_timeout")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("report_deadline_seconds", "report_resolved_within_hours")
    @classmethod
    def validate_non_negative_float(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must be >= 0")
        return v


def get_config() -> IncidentAnalyticsConfig:
    """Factory function to create config instance."""
    return IncidentAnalyticsConfig()
