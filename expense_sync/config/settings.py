"""
Configuration Management for Expense Sync

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The only environment switch the core cares about is which ledger file
to use (production or development); everything else is operational.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Flat-file ledger configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    file: str = Field(
        default="expenses.csv",
        description="Production ledger path"
    )
    dev_file: str = Field(
        default="expenses-dev.csv",
        description="Development ledger path (selected by the dev flag)"
    )
    backup_suffix: str = Field(
        default=".backup.csv",
        description="Suffix appended to the ledger path for the backup copy"
    )
    temp_suffix: str = Field(
        default=".tmp.csv",
        description="Suffix of the temporary file a rewrite is materialized into"
    )
    create_if_missing: bool = Field(
        default=True,
        description="Write a header-only ledger at startup if the file is absent"
    )
    serialize_writes: bool = Field(
        default=False,
        description="Serialize rewrites of the same ledger path with a process-wide lock"
    )

    @field_validator('backup_suffix', 'temp_suffix')
    @classmethod
    def validate_suffix(cls, v: str) -> str:
        """An empty suffix would make the backup or temp file the ledger itself."""
        if not v:
            raise ValueError("Suffix must not be empty")
        return v

    def path_for(self, dev: bool = False) -> Path:
        """Get the ledger path for the production or development environment."""
        return Path(self.dev_file if dev else self.file)


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

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Minimum log level"
    )
    log_json: bool = Field(
        default=True,
        description="Render logs as JSON lines (console rendering otherwise)"
    )

    # Request limits
    max_request_size_mb: int = Field(
        default=2,
        ge=1,
        le=50,
        description="Maximum request body size in MB"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def max_request_size_bytes(self) -> int:
        """Get max request size in bytes."""
        return self.max_request_size_mb * 1024 * 1024


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
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

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

    Returns a dict of {setting_name: is_valid}, plus "<name>_error"
    entries for the sections that failed. Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("ledger", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
