"""
Configuration Management for Kasbon

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.

WARNING: The action password has a hardcoded fallback. It is a shared,
client-visible secret meant to add friction before edits, not to protect
data. Anything beyond casual personal use needs real authentication.
"""

from datetime import date, datetime
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ACTION_PASSWORD = "haekal ganteng"

# Where the debts are recorded; decides what "today" is and how stored
# timestamps map to dates
DEFAULT_TIMEZONE = "Asia/Jakarta"


class FirebaseSettings(BaseSettings):
    """Firebase Realtime Database configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIREBASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    database_url: str = Field(
        ...,
        description="Realtime Database URL, e.g. https://<db>.firebasedatabase.app/"
    )
    credentials_path: Optional[str] = Field(
        default=None,
        description="Path to service account JSON. Application default credentials if unset."
    )

    # Locations within the database
    debts_path: str = Field(
        default="hutang",
        description="Path holding the debt records"
    )
    audit_path: str = Field(
        default="hutang_audit",
        description="Path holding audit events"
    )

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """The admin SDK only accepts https URLs."""
        v = v.strip()
        if not v.startswith("https://"):
            raise ValueError(f"Firebase database URL must start with https://, got {v!r}")
        return v

    @field_validator('debts_path', 'audit_path')
    @classmethod
    def strip_slashes(cls, v: str) -> str:
        v = v.strip().strip("/")
        if not v:
            raise ValueError("Database path cannot be empty")
        return v


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

    app_title: str = Field(
        default="Kasbon temen Guweh",
        description="Title shown at the top of the page"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level for the local structured log"
    )

    app_timezone: str = Field(
        default=DEFAULT_TIMEZONE,
        description="IANA timezone for today's date and for reading stored timestamps"
    )

    # Gate
    action_password: str = Field(
        default=DEFAULT_ACTION_PASSWORD,
        min_length=1,
        description="Shared password required before create/edit/delete"
    )

    # Photo limits
    max_photo_size_mb: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum size of a single photo in MB"
    )

    # Form sanity bounds
    earliest_entry_date: date = Field(
        default=date(1900, 1, 1),
        description="Oldest date accepted by the form"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return v

    @field_validator('app_timezone')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        v = v.strip()
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.app_timezone)

    def today(self) -> date:
        """Current date in the configured timezone."""
        return datetime.now(self.tzinfo).date()

    @property
    def max_photo_size_bytes(self) -> int:
        """Get max photo size in bytes."""
        return self.max_photo_size_mb * 1024 * 1024

    @property
    def uses_default_password(self) -> bool:
        return self.action_password == DEFAULT_ACTION_PASSWORD


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

    # Sub-settings are loaded lazily so the app can run without Firebase

    @property
    def firebase(self) -> FirebaseSettings:
        return FirebaseSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for the failures.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.firebase
        results["firebase"] = True
    except Exception as e:
        results["firebase"] = False
        results["firebase_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
