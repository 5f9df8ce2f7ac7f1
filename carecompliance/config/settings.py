"""
Configuration Management for Care Compliance

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


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

    # Worksheet names within the spreadsheet
    clients_sheet_name: str = "Clients"
    staff_sheet_name: str = "Staff"
    restrictions_sheet_name: str = "ClientStaffRestrictions"
    blacklist_sheet_name: str = "StaffBlacklist"
    qualifications_sheet_name: str = "StaffQualifications"
    availability_sheet_name: str = "StaffAvailabilityWindows"
    unavailability_sheet_name: str = "StaffUnavailabilityPeriods"
    appointments_sheet_name: str = "Appointments"
    assignments_sheet_name: str = "AppointmentAssignments"
    preferences_sheet_name: str = "ClientStaffPreferences"
    conflicts_sheet_name: str = "SchedulingConflicts"
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


class AllocationSettings(BaseSettings):
    """Tunables for the allocation validator and its fan-out operations."""

    model_config = SettingsConfigDict(
        env_prefix="ALLOCATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    qualification_expiry_warning_days: int = Field(
        default=30,
        ge=1,
        le=365,
        description="Warn when a qualification expires within this many days"
    )
    max_concurrent_validations: int = Field(
        default=10,
        ge=1,
        le=200,
        description="Upper bound on validations running at once in scans and batches"
    )
    validation_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Deadline for one validation call (None = no deadline)"
    )
    rank_warning_free_first: bool = Field(
        default=False,
        description="List staff without warnings ahead of flagged staff"
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

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
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
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def allocation(self) -> AllocationSettings:
        return AllocationSettings()

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
    entries describing failures. Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("google_sheets", "allocation", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
