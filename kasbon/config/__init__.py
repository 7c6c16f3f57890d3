"""Configuration package."""

from kasbon.config.settings import (
    DEFAULT_ACTION_PASSWORD,
    DEFAULT_TIMEZONE,
    AppSettings,
    FirebaseSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "DEFAULT_ACTION_PASSWORD",
    "DEFAULT_TIMEZONE",
    "AppSettings",
    "FirebaseSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
