"""
Configuration Management for Budget Engine

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Timing constants for the refresh coordinator and the policies chosen for
the open questions (split validation, re-run during a running pipeline)
live next to the storage configuration so they can be reviewed together.
"""

from decimal import Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RerunPolicy(str, Enum):
    """What to do with a refresh request that arrives while a run is in flight."""
    QUEUE = "queue"  # Run once more right after the current run
    DROP = "drop"    # Ignore; the next natural trigger picks it up


class SplitPolicy(str, Enum):
    """How split assignments must relate to the pool entry they come from."""
    EXACT = "exact"                      # Assignments must sum to the pool amount
    ALLOW_REMAINDER = "allow_remainder"  # Under-assignment keeps the rest pooled


class EngineSettings(BaseSettings):
    """Accumulation, reconciliation and refresh settings."""
    
    model_config = SettingsConfigDict(
        env_prefix="ENGINE_",
        extra="ignore"
    )
    
    salary_category_name: str = Field(
        default="Salary",
        description="Category under which salary credits are recorded"
    )
    hidden_category_names: str = Field(
        default="__SKIP_DEFAULT_CATEGORIES__",
        description="Comma-separated category names never reported or accumulated"
    )
    ledger_start_year: int = Field(
        default=2025,
        ge=1970,
        le=9999,
        description="First year included in lifetime accumulation"
    )
    timezone: str = Field(
        default="Asia/Kolkata",
        description="Timezone that defines the current calendar month"
    )
    
    # Refresh coordinator timing
    throttle_interval_ms: int = Field(
        default=500,
        ge=0,
        description="Minimum interval between pipeline starts"
    )
    debounce_ms: int = Field(
        default=300,
        ge=0,
        description="Quiet period after the last mutation before recomputing"
    )
    rerun_policy: RerunPolicy = Field(
        default=RerunPolicy.QUEUE,
        description="Behaviour for refresh requests during a running pipeline"
    )
    
    # Split reconciliation
    split_policy: SplitPolicy = Field(
        default=SplitPolicy.EXACT,
        description="Validation applied to unassigned credit splits"
    )
    
    @field_validator('salary_category_name')
    @classmethod
    def validate_salary_category(cls, v: str) -> str:
        """Salary category must be a usable category name."""
        if not v.strip():
            raise ValueError("Salary category name cannot be empty")
        return v.strip()
    
    @property
    def hidden_categories(self) -> frozenset[str]:
        """Names excluded from summaries and accumulation (salary included)."""
        names = {
            name.strip()
            for name in self.hidden_category_names.split(",")
            if name.strip()
        }
        names.add(self.salary_category_name)
        return frozenset(names)
    
    @property
    def throttle_interval_seconds(self) -> float:
        return self.throttle_interval_ms / 1000
    
    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets ledger storage configuration."""
    
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
    categories_sheet_name: str = Field(default="Categories")
    budgets_sheet_name: str = Field(default="Budgets")
    expenses_sheet_name: str = Field(default="Expenses")
    credits_sheet_name: str = Field(default="Credits")
    credit_card_sheet_name: str = Field(default="CreditCard")
    unassigned_sheet_name: str = Field(default="MonthlyUnassignedCredits")
    salary_months_sheet_name: str = Field(default="SalaryMonths")
    recurring_sheet_name: str = Field(default="RecurringExpenses")
    profile_sheet_name: str = Field(default="Profile")
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
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for the structured log"
    )
    
    # Validation thresholds
    max_transaction_amount: Decimal = Field(
        default=Decimal("10000000"),
        gt=0,
        description="Amount above which a mutation is flagged as suspicious"
    )
    future_date_tolerance_days: int = Field(
        default=400,
        ge=0,
        description="How far in the future a ledger date can be without a warning"
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
    
    # Sub-settings are loaded lazily to allow partial configuration
    
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
    
    Uses LRU cache to ensure settings are only loaded once.
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
    
    for name in ("engine", "google_sheets", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)
    
    return results
