"""Configuration package."""

from src.config.settings import (
    AppSettings,
    LedgerSettings,
    MetadataSettings,
    ReconciliationSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "LedgerSettings",
    "MetadataSettings",
    "ReconciliationSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
