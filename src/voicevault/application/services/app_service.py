"""Service boundary: the operations a presentation layer calls.

Hey future me - this is a thin facade. It exists so the HTTP routers (or any other
front end) have ONE object with the boundary vocabulary: scan_library,
batch_scrape_metadata, play_track, ... Real logic lives in the catalog, scanner,
enrichment services and the player session. The two long-running operations go
through BackgroundTaskRunner and hand back a ProgressChannel right away.
"""

import logging
from collections.abc import Sequence
from pathlib import Path

from voicevault.application.events import ProgressChannel
from voicevault.application.playback.session import PlayerSession
from voicevault.application.services.catalog_service import CatalogService, NameInput
from voicevault.application.services.enrichment_service import (
    MetadataEnrichmentService,
)
from voicevault.application.services.library_scanner_service import (
    LibraryScannerService,
    ScanSummary,
)
from voicevault.application.workers.background_tasks import (
    BackgroundTaskRunner,
    ProgressCallback,
)
from voicevault.domain.entities import (
    BackendKind,
    PlayHistoryEntry,
    Playlist,
    PlaylistTrackEntry,
    TaxonomyCount,
    Track,
    Work,
    WorkDetail,
    WorkMetadata,
)
from voicevault.domain.exceptions import ValidationException

logger = logging.getLogger(__name__)

SCAN_TASK = "library-scan"
ENRICHMENT_TASK = "batch-enrichment"


class AppService:
    """One object exposing every boundary operation."""

    def __init__(
        self,
        catalog: CatalogService,
        scanner: LibraryScannerService,
        enrichment: MetadataEnrichmentService,
        player: PlayerSession,
        runner: BackgroundTaskRunner,
        default_root: Path | None = None,
    ) -> None:
        self.catalog = catalog
        self.scanner = scanner
        self.enrichment = enrichment
        self.player = player
        self.runner = runner
        self.default_root = default_root
        # Latest channel per background task, for status polling
        self.channels: dict[str, ProgressChannel] = {}

    # =========================================================================
    # LIBRARY
    # =========================================================================

    def scan_library(self, root_path: str | Path | None = None) -> ProgressChannel:
        """Start a background scan; progress ticks arrive on the returned channel.

        Raises:
            TaskAlreadyRunningError: If a scan is already running
            ValidationException: If no root is given and none is configured
        """
        root = root_path or self.default_root
        if root is None:
            raise ValidationException("No library root given and none configured")

        async def body(progress: ProgressCallback) -> ScanSummary:
            return await self.scanner.scan(root, progress)

        channel = self.runner.start(SCAN_TASK, body)
        self.channels[SCAN_TASK] = channel
        return channel

    async def cleanup_orphaned_works(self) -> int:
        return await self.scanner.cleanup_orphaned_works()

    async def get_favorites(self) -> set[int]:
        return await self.catalog.get_favorites()

    async def toggle_favorite(self, work_id: int) -> bool:
        return await self.catalog.toggle_favorite(work_id)

    async def update_work_metadata(
        self,
        work_id: int,
        title: str | None = None,
        circles: NameInput = None,
        voice_actors: NameInput = None,
        tags: NameInput = None,
    ) -> WorkDetail:
        return await self.catalog.update_work_metadata(
            work_id, title, circles, voice_actors, tags
        )

    async def delete_work(self, work_id: int, delete_files: bool = False) -> None:
        current = self.player.current_track
        if current is not None and current.work_id == work_id:
            # Release the files before they (and their rows) disappear
            await self.player.stop()
            self.player.queue.clear()
        await self.catalog.delete_work(work_id, delete_files)

    async def get_work_tracks(self, work_id: int) -> list[Track]:
        return await self.catalog.get_work_tracks(work_id)

    # =========================================================================
    # ENRICHMENT
    # =========================================================================

    async def scrape_work_metadata(self, work_id: int) -> WorkMetadata:
        return await self.enrichment.enrich_work(work_id)

    def batch_scrape_metadata(self, only_unenriched: bool = False) -> ProgressChannel:
        """Start a background batch enrichment; the channel's result is the success count.

        Raises:
            TaskAlreadyRunningError: If a batch enrichment is already running
        """

        async def body(progress: ProgressCallback) -> int:
            return await self.enrichment.enrich_all(progress, only_unenriched)

        channel = self.runner.start(ENRICHMENT_TASK, body)
        self.channels[ENRICHMENT_TASK] = channel
        return channel

    # =========================================================================
    # PLAYBACK
    # =========================================================================

    async def play_track(self, path: str) -> BackendKind:
        return await self.player.play_track(path)

    async def play_work(
        self, work_id: int, start_track_id: int | None = None, resume: bool = False
    ) -> Track:
        return await self.player.play_work(work_id, start_track_id, resume)

    async def pause_track(self) -> None:
        await self.player.pause()

    async def resume_track(self) -> None:
        await self.player.resume()

    async def seek_track(self, seconds: float) -> None:
        await self.player.seek(seconds)

    async def set_volume(self, volume: float) -> None:
        await self.player.set_volume(volume)

    def get_volume(self) -> float:
        return self.player.get_volume()

    # =========================================================================
    # HISTORY & PLAYLISTS
    # =========================================================================

    async def add_to_history(self, work_id: int, track_id: int) -> None:
        await self.catalog.add_to_history(work_id, track_id)

    async def get_play_history(self, limit: int = 20) -> list[PlayHistoryEntry]:
        return await self.catalog.get_play_history(limit)

    async def get_all_playlists(self) -> list[Playlist]:
        return await self.catalog.get_all_playlists()

    async def create_playlist(self, name: str) -> Playlist:
        return await self.catalog.create_playlist(name)

    async def delete_playlist(self, playlist_id: int) -> None:
        await self.catalog.delete_playlist(playlist_id)

    async def get_playlist_tracks(self, playlist_id: int) -> list[PlaylistTrackEntry]:
        return await self.catalog.get_playlist_tracks(playlist_id)

    async def add_track_to_playlist(self, playlist_id: int, track_id: int) -> bool:
        return await self.catalog.add_track_to_playlist(playlist_id, track_id)

    async def remove_track_from_playlist(self, playlist_id: int, track_id: int) -> bool:
        return await self.catalog.remove_track_from_playlist(playlist_id, track_id)

    # =========================================================================
    # TAXONOMY
    # =========================================================================

    async def get_tags_with_count(self) -> list[TaxonomyCount]:
        return await self.catalog.get_tags_with_count()

    async def get_circles_with_count(self) -> list[TaxonomyCount]:
        return await self.catalog.get_circles_with_count()

    async def get_voice_actors_with_count(self) -> list[TaxonomyCount]:
        return await self.catalog.get_voice_actors_with_count()

    async def get_works_by_tags(self, tag_ids: Sequence[int]) -> list[Work]:
        return await self.catalog.get_works_by_tags(tag_ids)

    async def get_works_by_circle(self, circle_id: int) -> list[Work]:
        return await self.catalog.get_works_by_circle(circle_id)

    async def get_works_by_voice_actor(self, voice_actor_id: int) -> list[Work]:
        return await self.catalog.get_works_by_voice_actor(voice_actor_id)
