"""
Configuration Management for Perfinper

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The REST base path used to live inside a module-level service singleton;
it is now a setting that is handed to the client explicitly.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiSettings(BaseSettings):
    """REST backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PERFINPER_API_",
        extra="ignore"
    )

    base_url: str = Field(
        default="http://localhost:3001/",
        description="Base URL of the transactions / fiscal books backend"
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single HTTP request"
    )
    # 1 means a request is attempted once and never retried
    max_attempts: int = Field(
        default=1,
        ge=1,
        le=10,
        description="Attempts for idempotent reads"
    )

    @field_validator('base_url')
    @classmethod
    def ensure_trailing_slash(cls, v: str) -> str:
        """Endpoints are joined relative to the base URL."""
        return v if v.endswith("/") else f"{v}/"


class CacheSettings(BaseSettings):
    """Local transaction cache configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PERFINPER_CACHE_",
        extra="ignore"
    )

    storage_path: Path = Field(
        default=Path(".perfinper/local_storage.json"),
        description="JSON file mirroring the transaction lists between runs"
    )
    min_search_length: int = Field(
        default=3,
        ge=1,
        description="Shorter search terms reset the display list"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for local structured logs"
    )

    # Display
    currency_symbol: str = Field(
        default="R$",
        description="Symbol used when formatting monetary totals"
    )

    # Bulk reassignment
    reassignment_compensation: str = Field(
        default="none",
        pattern="^(none|rollback)$",
        description="What to do with transactions detached by a failed transfer"
    )

    # Audit trail
    audit_log_path: Optional[Path] = Field(
        default=None,
        description="JSON-lines file for audit events (local logging only if unset)"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def api(self) -> ApiSettings:
        return ApiSettings()

    @property
    def cache(self) -> CacheSettings:
        return CacheSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with a
    `<name>_error` entry for every section that failed.
    """
    results = {}

    settings = get_settings()

    for name in ("api", "cache", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
