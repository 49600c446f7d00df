"""Ledger configuration from environment variables and .env file."""

from zoneinfo import ZoneInfo

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, SettingsError

from hoa_ledger.errors import InvalidConfigError, LedgerError
from hoa_ledger.services.fiscal_calendar import (
    FiscalCalendar,
    resolve_timezone,
    validate_start_month,
)
from hoa_ledger.services.logging import LOG_LEVEL_MAP


class Settings(BaseSettings):
    """Ledger settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = Field(
        default="sqlite:///./hoa_ledger.db",
        description="SQLAlchemy connection string",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")

    # Calendar
    timezone: str = Field(
        default="America/Cancun",
        description="Deployment IANA zone used for every calendar extraction",
    )
    fiscal_year_start_month: int = Field(
        default=1, description="Default calendar month the fiscal year starts in (1-12)"
    )
    client_fiscal_year_start_months: dict[str, int] = Field(
        default_factory=dict,
        description="Per-client fiscal year start month overrides (JSON map)",
    )

    # Ledger policy
    dues_sources: list[str] = Field(
        default_factory=lambda: ["hoaDues"],
        description="Entry source categories counted as dues payments",
    )
    manual_entry_source: str = Field(
        default="admin", description="Default source for administrative corrections"
    )
    history_default_limit: int = Field(default=50, ge=1)
    history_max_limit: int = Field(default=500, ge=1)
    allow_negative_balance: bool = Field(
        default=True, description="Allow apply_delta to drive a balance below zero"
    )
    max_write_retries: int = Field(default=5, ge=1)

    # Display
    locale: str = Field(default="en_US", description="Babel locale for display strings")
    currency: str = Field(default="USD", description="ISO currency code for display strings")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/ledger.log", description="Log file path")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVEL_MAP:
            raise ValueError(f"log_level must be one of {sorted(LOG_LEVEL_MAP)}, got {value!r}")
        return level

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            resolve_timezone(value)
        except LedgerError as e:
            raise ValueError(e.message) from e
        return value

    @field_validator("fiscal_year_start_month")
    @classmethod
    def _check_start_month(cls, value: int) -> int:
        try:
            return validate_start_month(value)
        except LedgerError as e:
            raise ValueError(e.message) from e

    @field_validator("client_fiscal_year_start_months")
    @classmethod
    def _check_client_start_months(cls, value: dict[str, int]) -> dict[str, int]:
        for client_id, month in value.items():
            try:
                validate_start_month(month)
            except LedgerError as e:
                raise ValueError(f"client {client_id!r}: {e.message}") from e
        return value

    @property
    def zone(self) -> ZoneInfo:
        """Resolved deployment zone."""
        return resolve_timezone(self.timezone)

    def fiscal_year_start_month_for(self, client_id: str) -> int:
        """Fiscal year start month for a client (override or default)."""
        return self.client_fiscal_year_start_months.get(client_id, self.fiscal_year_start_month)

    def calendar_for(self, client_id: str) -> FiscalCalendar:
        """Fiscal calendar configured for a client."""
        return FiscalCalendar(self.zone, self.fiscal_year_start_month_for(client_id))


def load_settings(**overrides) -> Settings:
    """Load settings, converting validation failures to InvalidConfigError.

    Priority (highest to lowest):
    1. Keyword overrides
    2. Environment variables (TIMEZONE, FISCAL_YEAR_START_MONTH, DATABASE_URL, etc.)
    3. .env file in the working directory
    4. Default values

    Raises:
        InvalidConfigError: If any setting is missing or invalid
    """
    try:
        return Settings(**overrides)
    except (ValidationError, SettingsError) as e:
        raise InvalidConfigError(f"Invalid ledger configuration: {e}") from e


__all__ = ["Settings", "load_settings"]
