"""
Configuration Management for Smart Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """
    Ledger conventions shared by every component that reads or writes
    goal-linked transactions.

    CRITICAL: Changing the category or prefix on a live dataset orphans
    every existing goal contribution, because they are the linkage key.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore"
    )

    goal_savings_category: str = Field(
        default="Goal Savings",
        min_length=1,
        description="Category marking a transaction as a goal contribution"
    )
    contribution_prefix: str = Field(
        default="Saving for: ",
        min_length=1,
        description="Description prefix followed by the goal description"
    )
    monthly_summary_category: str = Field(
        default="Monthly Summary",
        description="Category used for manually entered monthly totals"
    )
    monthly_summary_icon: str = Field(
        default="💰",
        max_length=5,
    )
    default_goal_icon: str = Field(
        default="🎯",
        max_length=5,
        description="Icon given to goals created without one"
    )
    default_contribution_icon: str = Field(
        default="🐖",
        max_length=5,
        description="Icon used for contributions when the goal has none"
    )
    currency_symbol: str = Field(
        default="$",
        description="Currency symbol used in user-facing messages"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

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
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for transactions"
    )
    goals_sheet_name: str = Field(
        default="Goals",
        description="Name of the sheet for goals"
    )
    intents_sheet_name: str = Field(
        default="ReconciliationIntents",
        description="Name of the sheet for goal relink intents"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
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
    storage_backend: str = Field(
        default="google_sheets",
        pattern="^(google_sheets|memory)$",
        description="Which storage backend the orchestrator wires up"
    )

    # Input limits
    max_description_length: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Maximum goal/transaction description length"
    )
    max_category_length: int = Field(
        default=50,
        ge=1,
        le=50,
        description="Maximum transaction category length"
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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

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

    Returns a dict of {setting_name: is_valid}, plus a
    `<setting_name>_error` entry for each group that failed.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    groups = {
        "ledger": lambda: settings.ledger,
        "google_sheets": lambda: settings.google_sheets,
        "app": lambda: settings.app,
    }

    for name, load in groups.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
