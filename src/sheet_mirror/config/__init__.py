"""Configuration package for the sheet mirror."""

from .settings import (
    ConfigurationMissing,
    DatabaseSettings,
    FTPSettings,
    GoogleSettings,
    SheetSettings,
    SchedulingSettings,
    LoggingSettings,
    AppSettings,
    get_settings,
    reset_settings
)

__all__ = [
    "ConfigurationMissing",
    "DatabaseSettings",
    "FTPSettings",
    "GoogleSettings",
    "SheetSettings",
    "SchedulingSettings",
    "LoggingSettings",
    "AppSettings",
    "get_settings",
    "reset_settings"
]
