"""
Configuration Management for the Ledger Core

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The recurrence calculator takes its tunables as plain arguments, so only the
wiring layer (orchestrator) and the storage/sync services read settings.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Local store, sync and reminder configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    schema_version: str = Field(
        default="3.1",
        min_length=1,
        description="Schema version stamped on every persisted blob"
    )
    debounce_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Quiescence window before a local write is pushed"
    )
    override_grace_days: int = Field(
        default=7,
        ge=0,
        description="How many days in the past a custom due date still wins"
    )
    storage_dir: str = Field(
        default=".ledger",
        description="Directory for the JSON file backend"
    )
    transaction_log_key: str = Field(
        default="transaction_log",
        description="Local key caching the user's ledger entries"
    )
    reminder_days: str = Field(
        default="3,1,0",
        description="Comma-separated day offsets before a due date to remind on"
    )

    @field_validator('reminder_days')
    @classmethod
    def validate_reminder_days(cls, v: str) -> str:
        """Every offset must be a non-negative integer."""
        for part in v.split(","):
            part = part.strip()
            if not part.isdigit():
                raise ValueError(f"Invalid reminder offset: {part!r}")
        return v

    @property
    def reminder_days_list(self) -> list[int]:
        """Reminder offsets as integers, largest first."""
        return sorted(
            {int(part.strip()) for part in self.reminder_days.split(",")},
            reverse=True,
        )

    @property
    def storage_path(self) -> Path:
        return Path(self.storage_dir)


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets remote store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    settings_sheet_name: str = Field(
        default="UserSettings",
        description="Name of the sheet holding user-scoped key/value state"
    )
    ledger_sheet_name: str = Field(
        default="TransactionLog",
        description="Name of the append-only ledger sheet"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


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

    # Sub-settings are loaded lazily so the ledger can run fully offline
    # without any Google Sheets configuration.

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()


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

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.ledger
        results["ledger"] = True
    except Exception as e:
        results["ledger"] = False
        results["ledger_error"] = str(e)

    try:
        _ = settings.google_sheets
        results["google_sheets"] = True
    except Exception as e:
        results["google_sheets"] = False
        results["google_sheets_error"] = str(e)

    return results
