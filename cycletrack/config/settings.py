"""
Configuration Management for Cycletrack

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Engine defaults (tolerances, cycle caps) live next to the storage
credentials so every tunable is visible in one place.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Defaults for cycle generation and matching."""

    model_config = SettingsConfigDict(
        env_prefix="CYCLES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    default_max_cycles: int = Field(
        default=12,
        ge=1,
        le=600,
        description="Cycles generated when a record sets no cap"
    )

    # Per-domain tolerances
    liability_tolerance_days: int = Field(default=7, ge=0)
    liability_amount_tolerance: Decimal = Field(default=Decimal("0.01"), ge=0, le=1)
    goal_tolerance_days: int = Field(default=7, ge=0)
    goal_amount_tolerance: Decimal = Field(default=Decimal("0.05"), ge=0, le=1)

    budget_warning_percent: float = Field(
        default=90.0,
        gt=0,
        le=100,
        description="Usage above which an open budget period is flagged partial"
    )
    days_in_year: int = Field(
        default=365,
        description="Day-count basis for interest accrual"
    )

    @field_validator('days_in_year')
    @classmethod
    def validate_days_in_year(cls, v: int) -> int:
        if v not in (360, 365, 366):
            raise ValueError("days_in_year must be 360, 365 or 366")
        return v


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
    liabilities_sheet_name: str = Field(default="Liabilities")
    payments_sheet_name: str = Field(default="LiabilityPayments")
    bills_sheet_name: str = Field(default="Bills")
    budgets_sheet_name: str = Field(default="Budgets")
    transactions_sheet_name: str = Field(default="Transactions")
    goals_sheet_name: str = Field(default="Goals")
    transfers_sheet_name: str = Field(default="GoalTransfers")
    annotations_sheet_name: str = Field(
        default="CycleAnnotations",
        description="Notes and overrides keyed by record and cycle number"
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
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


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

    # Loaded lazily to allow partial configuration

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

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

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    ``<name>_error`` entry for each group that failed to load.
    """
    results = {}

    settings = get_settings()

    for name in ("engine", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
