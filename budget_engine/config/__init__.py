"""Configuration package."""

from budget_engine.config.settings import (
    AppSettings,
    EngineSettings,
    GoogleSheetsSettings,
    RerunPolicy,
    Settings,
    SplitPolicy,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "EngineSettings",
    "GoogleSheetsSettings",
    "RerunPolicy",
    "Settings",
    "SplitPolicy",
    "get_settings",
    "validate_all_settings",
]
