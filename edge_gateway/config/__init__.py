"""Configuration module for the edge gateway."""

from .settings import (
    DatabaseSettings,
    ProcessingSettings,
    RetentionSettings,
    Settings,
    SyncSettings,
    get_settings,
    load_settings,
)

__all__ = [
    "DatabaseSettings",
    "ProcessingSettings",
    "RetentionSettings",
    "Settings",
    "SyncSettings",
    "get_settings",
    "load_settings",
]
