"""
Configuration Management for Spendly

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Spendly is an offline, single-user app, so the only external dependency
is the local database file; everything else is behaviour tuning.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Local SQLite database configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SPENDLY_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    path: str = Field(
        default="spendly.db",
        description="Path to the SQLite database file (':memory:' for a throwaway database)"
    )
    timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="How long a connection waits on a locked database"
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for a write that hits a locked database"
    )

    @field_validator('path')
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Warn if the database directory doesn't exist (sqlite won't create it)."""
        if v != ":memory:" and not Path(v).parent.exists():
            import warnings
            warnings.warn(
                f"Directory for database file {v} does not exist. "
                "Create it before starting the application."
            )
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

    # Logging
    debug_mode: bool = Field(
        default=False,
        description="Log at DEBUG whatever log_level says"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local structured logs"
    )

    # Sanity limits for amount entry
    max_transaction_amount_paise: int = Field(
        default=1_000_000_000,  # ₹1 crore
        ge=1,
        description="Amounts above this are flagged for the user to double-check"
    )

    # Recurring transactions
    recurring_lookback_months: int = Field(
        default=3,
        ge=1,
        le=12,
        description="How far back missed recurring occurrences are back-filled"
    )

    # Startup
    seed_predefined_on_startup: bool = Field(
        default=True,
        description="Seed predefined categories and the default account on first start"
    )

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug_mode else self.log_level


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
    def storage(self) -> StorageSettings:
        return StorageSettings()

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
    "<name>_error" entry describing each failure.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("storage", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
