"""Configuration module for voicevault."""

from .settings import (
    ApiSettings,
    DatabaseSettings,
    EnrichmentSettings,
    LibrarySettings,
    ObservabilitySettings,
    PlaybackSettings,
    Settings,
    get_settings,
)

__all__ = [
    "ApiSettings",
    "DatabaseSettings",
    "EnrichmentSettings",
    "LibrarySettings",
    "ObservabilitySettings",
    "PlaybackSettings",
    "Settings",
    "get_settings",
]
