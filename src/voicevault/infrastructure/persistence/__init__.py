"""Persistence layer: ORM models, database session management and repositories."""

from voicevault.infrastructure.persistence.database import Database
from voicevault.infrastructure.persistence.repositories import (
    FavoriteRepository,
    HistoryRepository,
    PlaylistRepository,
    ProgressRepository,
    SettingsRepository,
    TaxonomyRepository,
    TrackRepository,
    WorkRepository,
)

__all__ = [
    "Database",
    "FavoriteRepository",
    "HistoryRepository",
    "PlaylistRepository",
    "ProgressRepository",
    "SettingsRepository",
    "TaxonomyRepository",
    "TrackRepository",
    "WorkRepository",
]
