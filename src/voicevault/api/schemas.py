"""API schemas (request and response models).

Hey future me - responses are built straight from the domain dataclasses with
``Model.model_validate(entity)`` (from_attributes=True). Keep field names identical
to the dataclass fields or validation fails loudly.
"""

from dataclasses import asdict, is_dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from voicevault.application.events import ProgressChannel, TaskFailed, TaskFinished
from voicevault.domain.entities import (
    BackendKind,
    PlayerState,
    RepeatMode,
)


class _FromEntity(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# LIBRARY
# =============================================================================


class WorkResponse(_FromEntity):
    """One work in a listing."""

    id: int
    title: str
    dir_path: str
    external_code: str | None = None
    cover_path: str | None = None
    created_at: datetime
    enriched_at: datetime | None = None
    circles: list[str] = Field(default_factory=list)
    voice_actors: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class TrackProgressResponse(_FromEntity):
    work_id: int
    track_id: int
    position_sec: float
    updated_at: datetime


class WorkDetailResponse(WorkResponse):
    """Work plus favorite flag and resume point."""

    is_favorite: bool = False
    progress: TrackProgressResponse | None = None


class TrackResponse(_FromEntity):
    id: int
    work_id: int
    title: str
    path: str
    duration_sec: int = 0
    track_number: int | None = None
    is_visible: bool = True


class UpdateWorkMetadataRequest(BaseModel):
    """Manual metadata edit.

    Taxonomy fields take a list of names or one comma-separated string.
    ``None`` leaves the field untouched.
    """

    title: str | None = None
    circles: list[str] | str | None = None
    voice_actors: list[str] | str | None = None
    tags: list[str] | str | None = None


class SaveProgressRequest(BaseModel):
    track_id: int
    position_sec: float = Field(..., ge=0.0)


class ScanRequest(BaseModel):
    """Start a scan; ``root_path`` defaults to the configured library root."""

    root_path: str | None = None


class TaskStartedResponse(BaseModel):
    task: str
    status: str = "started"


class TaskStatusResponse(BaseModel):
    """Latest known state of a single-flight background task."""

    task: str
    running: bool
    finished: bool = False
    result: dict[str, int] | int | None = None
    error: str | None = None


class FavoriteToggleResponse(BaseModel):
    work_id: int
    is_favorite: bool


class FavoritesResponse(BaseModel):
    work_ids: list[int]


class CleanupResponse(BaseModel):
    removed: int


class PlayHistoryResponse(_FromEntity):
    id: int
    work_id: int
    track_id: int
    work_title: str
    track_title: str
    played_at: datetime
    cover_path: str | None = None


# =============================================================================
# ENRICHMENT
# =============================================================================


class WorkMetadataResponse(_FromEntity):
    title: str
    circle: str | None = None
    voice_actors: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class BatchEnrichmentRequest(BaseModel):
    only_unenriched: bool = False


# =============================================================================
# TAXONOMY
# =============================================================================


class TaxonomyCountResponse(_FromEntity):
    id: int
    name: str
    work_count: int


# =============================================================================
# PLAYLISTS
# =============================================================================


class PlaylistResponse(_FromEntity):
    id: int
    name: str
    created_at: datetime
    track_count: int = 0


class CreatePlaylistRequest(BaseModel):
    name: str


class PlaylistTrackResponse(_FromEntity):
    playlist_id: int
    position: int
    added_at: datetime
    track: TrackResponse
    work_title: str
    cover_path: str | None = None


class AddPlaylistTrackRequest(BaseModel):
    track_id: int


class PlaylistMembershipResponse(BaseModel):
    playlist_id: int
    track_id: int
    changed: bool


# =============================================================================
# PLAYBACK
# =============================================================================


class PlayWorkRequest(BaseModel):
    work_id: int
    start_track_id: int | None = None
    resume: bool = False


class PlayFileRequest(BaseModel):
    path: str


class SeekRequest(BaseModel):
    position_sec: float


class VolumeRequest(BaseModel):
    # Range is checked by the engine (ValidationException -> 422)
    volume: float


class VolumeResponse(BaseModel):
    volume: float


class SleepTimerRequest(BaseModel):
    minutes: int


class ShuffleResponse(BaseModel):
    shuffle: bool


class RepeatResponse(BaseModel):
    repeat: RepeatMode


class PlaybackStatusResponse(BaseModel):
    """Transport snapshot plus queue context."""

    state: PlayerState
    path: str | None = None
    backend: BackendKind | None = None
    position: float = 0.0
    duration: float | None = None
    volume: float
    sleep_timer_remaining: int | None = None
    track: TrackResponse | None = None
    queue_index: int | None = None
    queue_length: int = 0
    shuffle: bool = False
    repeat: RepeatMode = RepeatMode.OFF


def task_status(
    name: str, running: bool, channel: ProgressChannel | None
) -> TaskStatusResponse:
    """Status response for a background task from its latest channel."""
    response = TaskStatusResponse(task=name, running=running)
    outcome = channel.outcome if channel is not None else None
    if isinstance(outcome, TaskFinished):
        response.finished = True
        result = outcome.result
        response.result = asdict(result) if is_dataclass(result) else result
    elif isinstance(outcome, TaskFailed):
        response.finished = True
        response.error = str(outcome.error)
    return response
