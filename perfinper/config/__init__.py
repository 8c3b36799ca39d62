"""Configuration package."""

from perfinper.config.settings import (
    ApiSettings,
    AppSettings,
    CacheSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "ApiSettings",
    "AppSettings",
    "CacheSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
