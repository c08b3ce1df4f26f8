"""Catalog service: the transactional query/mutation surface over the catalog.

Hey future me - every public method here opens exactly ONE session_scope, so every
multi-row change (replacing a work's tag set, deleting a work with its children)
is atomic and readers never see it half done. Mutations on a missing id raise
EntityNotFoundException; reads return None / [] instead.

Clean Architecture: Service → Repository → Domain
No direct Model access in this service.
"""

import asyncio
import logging
import shutil
from collections.abc import Iterable, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from voicevault.domain.entities import (
    PlayHistoryEntry,
    Playlist,
    PlaylistTrackEntry,
    TaxonomyCount,
    TaxonomyKind,
    Track,
    TrackProgress,
    Work,
    WorkDetail,
    WorkSort,
)
from voicevault.domain.exceptions import (
    EntityNotFoundException,
    LibraryIOError,
    ValidationException,
)
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

logger = logging.getLogger(__name__)

NameInput = str | Iterable[str] | None


def normalize_names(value: NameInput) -> list[str]:
    """Turn a list or a comma-separated string into clean taxonomy names.

    Trims every entry, drops blanks and collapses duplicates keeping the first
    occurrence. Matching stays case-sensitive ("ASMR" and "asmr" are distinct).

    Examples:
        "ASMR, Binaural,, ASMR" -> ["ASMR", "Binaural"]
        [" Sleep ", "sleep"] -> ["Sleep", "sleep"]
    """
    if value is None:
        return []
    parts = value.split(",") if isinstance(value, str) else list(value)
    names: list[str] = []
    seen: set[str] = set()
    for part in parts:
        name = str(part).strip()
        if not name or name in seen:
            continue
        seen.add(name)
        names.append(name)
    return names


def _names_or_none(value: NameInput) -> list[str] | None:
    return None if value is None else normalize_names(value)


async def replace_work_metadata(
    session: AsyncSession,
    work_id: int,
    title: str | None,
    circles: Sequence[str] | None,
    voice_actors: Sequence[str] | None,
    tags: Sequence[str] | None,
) -> None:
    """Set title and fully replace the given taxonomy sets of one work.

    A ``None`` set is left as it is. Runs inside the caller's transaction;
    shared by manual edits and enrichment.
    """
    if title is not None:
        await WorkRepository(session).update_title(work_id, title)
    for kind, names in (
        (TaxonomyKind.CIRCLE, circles),
        (TaxonomyKind.VOICE_ACTOR, voice_actors),
        (TaxonomyKind.TAG, tags),
    ):
        if names is not None:
            await TaxonomyRepository(session, kind).replace_for_work(work_id, names)


class CatalogService:
    """Read/write operations over works, tracks, taxonomy, playlists and history."""

    def __init__(self, db: Database) -> None:
        """Initialize catalog service.

        Args:
            db: Database providing one session_scope per operation
        """
        self.db = db

    # =========================================================================
    # WORKS
    # =========================================================================

    async def get_all_works(self, sort: WorkSort = WorkSort.NEWEST) -> list[Work]:
        """All works in the requested order."""
        async with self.db.session_scope() as session:
            return await WorkRepository(session).list_all(sort)

    async def get_work(self, work_id: int) -> WorkDetail | None:
        """One work with taxonomy names, favorite flag and resume point."""
        async with self.db.session_scope() as session:
            work = await WorkRepository(session).get_by_id(work_id)
            if work is None:
                return None
            is_favorite = await FavoriteRepository(session).is_favorite(work_id)
            progress = await ProgressRepository(session).get(work_id)
        return WorkDetail(
            **vars(work),
            is_favorite=is_favorite,
            progress=progress,
        )

    async def search_works(
        self, query: str, sort: WorkSort = WorkSort.NEWEST
    ) -> list[Work]:
        """Case-insensitive substring search over title, code and taxonomy names."""
        async with self.db.session_scope() as session:
            return await WorkRepository(session).search(query, sort)

    # Listen up, DB rows go FIRST (one transaction, cascade does the children), files second.
    # If rmtree then fails the catalog is still consistent; the caller gets LibraryIOError and
    # the leftover folder simply reappears as a new work on the next scan.
    async def delete_work(self, work_id: int, delete_files: bool = False) -> None:
        """Delete a work (and optionally its folder on disk).

        Raises:
            EntityNotFoundException: If the work doesn't exist
            LibraryIOError: If delete_files=True and the folder couldn't be removed
        """
        async with self.db.session_scope() as session:
            repo = WorkRepository(session)
            work = await repo.get_by_id(work_id)
            if work is None:
                raise EntityNotFoundException("Work", work_id)
            await repo.delete(work_id)
        logger.info(f"Deleted work {work_id} ({work.title})")

        if delete_files:
            try:
                await asyncio.to_thread(shutil.rmtree, work.dir_path)
            except FileNotFoundError:
                logger.info(f"Folder of work {work_id} was already gone: {work.dir_path}")
            except OSError as e:
                raise LibraryIOError(
                    f"Work {work_id} removed from catalog but its folder could not be "
                    f"deleted: {e}",
                    work.dir_path,
                ) from e
            else:
                logger.info(f"Deleted folder {work.dir_path}")

    async def update_work_metadata(
        self,
        work_id: int,
        title: str | None = None,
        circles: NameInput = None,
        voice_actors: NameInput = None,
        tags: NameInput = None,
    ) -> WorkDetail:
        """Replace title and taxonomy of a work (user edit).

        Each taxonomy argument is a list of names or a comma-separated string.
        A given set REPLACES the old one; None leaves it untouched, an empty
        value clears it.

        Raises:
            EntityNotFoundException: If the work doesn't exist
            ValidationException: If title is given but blank
        """
        if title is not None:
            title = title.strip()
            if not title:
                raise ValidationException("Title must not be blank")

        async with self.db.session_scope() as session:
            if not await WorkRepository(session).exists(work_id):
                raise EntityNotFoundException("Work", work_id)
            await replace_work_metadata(
                session,
                work_id,
                title,
                _names_or_none(circles),
                _names_or_none(voice_actors),
                _names_or_none(tags),
            )

        detail = await self.get_work(work_id)
        assert detail is not None
        return detail

    # =========================================================================
    # TRACKS & PROGRESS
    # =========================================================================

    async def get_track(self, track_id: int) -> Track | None:
        """One track by id."""
        async with self.db.session_scope() as session:
            return await TrackRepository(session).get_by_id(track_id)

    async def get_work_tracks(self, work_id: int) -> list[Track]:
        """Visible tracks in playback order (numbered first, then natural order)."""
        async with self.db.session_scope() as session:
            return await TrackRepository(session).list_for_work(work_id)

    async def get_all_work_tracks(self, work_id: int) -> list[Track]:
        """Every track row, hidden duplicate formats included."""
        async with self.db.session_scope() as session:
            return await TrackRepository(session).list_for_work(
                work_id, visible_only=False
            )

    async def save_track_progress(
        self, work_id: int, track_id: int, position_sec: float
    ) -> None:
        """Upsert the resume point of a work."""
        async with self.db.session_scope() as session:
            track = await TrackRepository(session).get_by_id(track_id)
            if track is None or track.work_id != work_id:
                raise EntityNotFoundException("Track", track_id)
            await ProgressRepository(session).upsert(
                work_id, track_id, max(0.0, float(position_sec))
            )

    async def get_track_progress(self, work_id: int) -> TrackProgress | None:
        """Resume point of a work, if any."""
        async with self.db.session_scope() as session:
            return await ProgressRepository(session).get(work_id)

    # =========================================================================
    # TAXONOMY
    # =========================================================================

    async def _counts(self, kind: TaxonomyKind) -> list[TaxonomyCount]:
        async with self.db.session_scope() as session:
            return await TaxonomyRepository(session, kind).list_with_counts()

    async def get_tags_with_count(self) -> list[TaxonomyCount]:
        """Tags with work counts, most used first."""
        return await self._counts(TaxonomyKind.TAG)

    async def get_circles_with_count(self) -> list[TaxonomyCount]:
        """Circles with work counts, most used first."""
        return await self._counts(TaxonomyKind.CIRCLE)

    async def get_voice_actors_with_count(self) -> list[TaxonomyCount]:
        """Voice actors with work counts, most used first."""
        return await self._counts(TaxonomyKind.VOICE_ACTOR)

    async def get_works_by_tags(self, tag_ids: Sequence[int]) -> list[Work]:
        """Works carrying ALL of the given tags."""
        async with self.db.session_scope() as session:
            return await WorkRepository(session).list_by_taxonomy(
                TaxonomyKind.TAG, tag_ids
            )

    async def get_works_by_circle(self, circle_id: int) -> list[Work]:
        """Works of one circle."""
        async with self.db.session_scope() as session:
            return await WorkRepository(session).list_by_taxonomy(
                TaxonomyKind.CIRCLE, [circle_id]
            )

    async def get_works_by_voice_actor(self, voice_actor_id: int) -> list[Work]:
        """Works featuring one voice actor."""
        async with self.db.session_scope() as session:
            return await WorkRepository(session).list_by_taxonomy(
                TaxonomyKind.VOICE_ACTOR, [voice_actor_id]
            )

    # =========================================================================
    # FAVORITES & HISTORY
    # =========================================================================

    async def get_favorites(self) -> set[int]:
        """Ids of all favorited works."""
        async with self.db.session_scope() as session:
            return await FavoriteRepository(session).list_work_ids()

    async def toggle_favorite(self, work_id: int) -> bool:
        """Flip favorite membership; returns the new membership."""
        async with self.db.session_scope() as session:
            if not await WorkRepository(session).exists(work_id):
                raise EntityNotFoundException("Work", work_id)
            return await FavoriteRepository(session).toggle(work_id)

    async def add_to_history(self, work_id: int, track_id: int) -> None:
        """Append one play to the history log."""
        async with self.db.session_scope() as session:
            track = await TrackRepository(session).get_by_id(track_id)
            if track is None or track.work_id != work_id:
                raise EntityNotFoundException("Track", track_id)
            await HistoryRepository(session).add(work_id, track_id)

    async def get_play_history(self, limit: int = 20) -> list[PlayHistoryEntry]:
        """Most recent plays first."""
        if limit <= 0:
            return []
        async with self.db.session_scope() as session:
            return await HistoryRepository(session).list_recent(limit)

    # =========================================================================
    # PLAYLISTS
    # =========================================================================

    async def get_all_playlists(self) -> list[Playlist]:
        """Playlists newest first, with track counts."""
        async with self.db.session_scope() as session:
            return await PlaylistRepository(session).list_all()

    async def create_playlist(self, name: str) -> Playlist:
        """Create an empty playlist."""
        name = name.strip()
        if not name:
            raise ValidationException("Playlist name must not be blank")
        async with self.db.session_scope() as session:
            playlist = await PlaylistRepository(session).add(name)
        logger.info(f"Created playlist {playlist.id} ({name})")
        return playlist

    async def delete_playlist(self, playlist_id: int) -> None:
        """Delete a playlist (membership rows cascade)."""
        async with self.db.session_scope() as session:
            await PlaylistRepository(session).delete(playlist_id)

    async def get_playlist_tracks(self, playlist_id: int) -> list[PlaylistTrackEntry]:
        """Members of a playlist in position order."""
        async with self.db.session_scope() as session:
            return await PlaylistRepository(session).list_tracks(playlist_id)

    async def add_track_to_playlist(self, playlist_id: int, track_id: int) -> bool:
        """Append a track; False when it is already in the playlist."""
        async with self.db.session_scope() as session:
            repo = PlaylistRepository(session)
            if not await repo.exists(playlist_id):
                raise EntityNotFoundException("Playlist", playlist_id)
            if await TrackRepository(session).get_by_id(track_id) is None:
                raise EntityNotFoundException("Track", track_id)
            return await repo.add_track(playlist_id, track_id)

    async def remove_track_from_playlist(self, playlist_id: int, track_id: int) -> bool:
        """Remove a track; False when it wasn't in the playlist."""
        async with self.db.session_scope() as session:
            repo = PlaylistRepository(session)
            if not await repo.exists(playlist_id):
                raise EntityNotFoundException("Playlist", playlist_id)
            return await repo.remove_track(playlist_id, track_id)

    # =========================================================================
    # PREFERENCES
    # =========================================================================

    async def get_setting(self, key: str) -> str | None:
        """Read a persisted preference."""
        async with self.db.session_scope() as session:
            return await SettingsRepository(session).get(key)

    async def set_setting(self, key: str, value: str) -> None:
        """Persist a preference."""
        async with self.db.session_scope() as session:
            await SettingsRepository(session).set(key, value)
