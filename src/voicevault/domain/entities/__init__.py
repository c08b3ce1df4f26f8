"""Domain entities."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from voicevault.domain.entities.playback import (
    BackendKind,
    PlayerState,
    RepeatMode,
)


def _utc_now() -> datetime:
    return datetime.now(UTC)


# Hey future me - WorkSort mirrors the three orderings the library grid offers.
# NEWEST is the default (created_at desc). EXTERNAL_CODE sorts codes DESCENDING
# (newest product codes first) and puts works without a code at the end.
class WorkSort(str, Enum):
    """Ordering for work listings."""

    NEWEST = "newest"
    TITLE = "title"
    EXTERNAL_CODE = "external_code"


class TaxonomyKind(str, Enum):
    """The three free-form taxonomy entity types attached to works."""

    TAG = "tag"
    CIRCLE = "circle"
    VOICE_ACTOR = "voice_actor"


# Yo, Work is ONE release folder. external_code is optional (folders without a product code
# are still valid works) but unique when present. title/taxonomy belong to the user and the
# enrichment pipeline - the scanner never touches them after the first insert!
@dataclass
class Work:
    """A cataloged release (one folder of related audio tracks)."""

    id: int
    title: str
    dir_path: str
    external_code: str | None = None
    cover_path: str | None = None
    created_at: datetime = field(default_factory=_utc_now)
    enriched_at: datetime | None = None
    circles: list[str] = field(default_factory=list)
    voice_actors: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)


# Listen up, WorkDetail is what the detail screen needs in one read: the work, its taxonomy
# names (already on Work) plus favorite membership and the resume point.
@dataclass
class WorkDetail(Work):
    """A Work plus per-user state for the detail view."""

    is_favorite: bool = False
    progress: "TrackProgress | None" = None


# Hey future me - is_visible=False marks a lower-priority duplicate (the mp3 next to a wav
# of the same name). Both rows exist; playback/UI queries only ever see the visible one.
@dataclass
class Track:
    """One audio file belonging to a Work."""

    id: int
    work_id: int
    title: str
    path: str
    duration_sec: int = 0
    track_number: int | None = None
    is_visible: bool = True


@dataclass
class TrackProgress:
    """Resume position, one per work."""

    work_id: int
    track_id: int
    position_sec: float
    updated_at: datetime = field(default_factory=_utc_now)


@dataclass
class TaxonomyCount:
    """A taxonomy entity with the number of works carrying it (for suggestion UIs)."""

    id: int
    name: str
    work_count: int


@dataclass
class WorkMetadata:
    """Metadata record returned by the external lookup collaborator."""

    title: str
    circle: str | None = None
    voice_actors: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)


@dataclass
class Playlist:
    """A user playlist (track granularity)."""

    id: int
    name: str
    created_at: datetime = field(default_factory=_utc_now)
    track_count: int = 0


@dataclass
class PlaylistTrackEntry:
    """A track inside a playlist, with enough work context to render it."""

    playlist_id: int
    position: int
    added_at: datetime
    track: Track
    work_title: str
    cover_path: str | None = None


@dataclass
class PlayHistoryEntry:
    """One row of the append-only play log."""

    id: int
    work_id: int
    track_id: int
    work_title: str
    track_title: str
    played_at: datetime
    cover_path: str | None = None


__all__ = [
    "BackendKind",
    "PlayHistoryEntry",
    "PlayerState",
    "Playlist",
    "PlaylistTrackEntry",
    "RepeatMode",
    "TaxonomyCount",
    "TaxonomyKind",
    "Track",
    "TrackProgress",
    "Work",
    "WorkDetail",
    "WorkMetadata",
    "WorkSort",
]
