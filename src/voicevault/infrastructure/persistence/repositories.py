"""Repository implementations for data access."""

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from sqlalchemy import and_, delete, exists, func, or_, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
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
    WorkSort,
)
from voicevault.domain.exceptions import EntityNotFoundException
from voicevault.domain.value_objects.folder_parsing import natural_sort_key
from voicevault.infrastructure.persistence.models import (
    AppSettingModel,
    CircleModel,
    FavoriteModel,
    PlayHistoryModel,
    PlaylistModel,
    PlaylistTrackModel,
    TagModel,
    TrackModel,
    TrackProgressModel,
    VoiceActorModel,
    WorkCircleModel,
    WorkModel,
    WorkTagModel,
    WorkVoiceActorModel,
    ensure_utc_aware,
    utc_now,
)

logger = logging.getLogger(__name__)


# Hey future me - ONE table per taxonomy kind, but the code is identical. This table maps the
# kind to (entity model, join model, join FK column). Adding a fourth taxonomy = one more row.
_TAXONOMY_TABLES: dict[TaxonomyKind, tuple[Any, Any, str]] = {
    TaxonomyKind.TAG: (TagModel, WorkTagModel, "tag_id"),
    TaxonomyKind.CIRCLE: (CircleModel, WorkCircleModel, "circle_id"),
    TaxonomyKind.VOICE_ACTOR: (VoiceActorModel, WorkVoiceActorModel, "voice_actor_id"),
}


def _work_from_model(model: WorkModel) -> Work:
    return Work(
        id=model.id,
        title=model.title,
        dir_path=model.dir_path,
        external_code=model.external_code,
        cover_path=model.cover_path,
        created_at=ensure_utc_aware(model.created_at),
        enriched_at=ensure_utc_aware(model.enriched_at) if model.enriched_at else None,
    )


def _track_from_model(model: TrackModel) -> Track:
    return Track(
        id=model.id,
        work_id=model.work_id,
        title=model.title,
        path=model.path,
        duration_sec=model.duration_sec,
        track_number=model.track_number,
        is_visible=model.is_visible,
    )


def track_order_key(track: Track) -> tuple[Any, ...]:
    """Numbered tracks first (by number), then natural filename order."""
    return (
        track.track_number is None,
        track.track_number or 0,
        natural_sort_key(Path(track.path).name),
        track.id,
    )


def _order_works(stmt: Any, sort: WorkSort) -> Any:
    if sort == WorkSort.TITLE:
        return stmt.order_by(WorkModel.title.collate("NOCASE"), WorkModel.id)
    if sort == WorkSort.EXTERNAL_CODE:
        # Works without a code go last; codes themselves newest-first
        return stmt.order_by(
            WorkModel.external_code.is_(None),
            WorkModel.external_code.desc(),
            WorkModel.id.desc(),
        )
    return stmt.order_by(WorkModel.created_at.desc(), WorkModel.id.desc())


class WorkRepository:
    """Repository for Work entities."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(
        self,
        title: str,
        dir_path: str,
        external_code: str | None = None,
        cover_path: str | None = None,
    ) -> Work:
        """Insert a new work and return it with its generated id."""
        model = WorkModel(
            title=title,
            dir_path=dir_path,
            external_code=external_code,
            cover_path=cover_path,
        )
        self.session.add(model)
        await self.session.flush()
        return _work_from_model(model)

    async def get_by_id(self, work_id: int) -> Work | None:
        """Get a work by id, taxonomy names included."""
        model = await self.session.get(WorkModel, work_id)
        if model is None:
            return None
        work = _work_from_model(model)
        await self.attach_taxonomy([work])
        return work

    async def get_by_dir_path(self, dir_path: str) -> Work | None:
        """Get a work by its directory path."""
        stmt = select(WorkModel).where(WorkModel.dir_path == dir_path).limit(1)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return _work_from_model(model) if model else None

    async def get_by_external_code(self, external_code: str) -> Work | None:
        """Get a work by its (upper-cased) external code."""
        stmt = select(WorkModel).where(WorkModel.external_code == external_code)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return _work_from_model(model) if model else None

    async def exists(self, work_id: int) -> bool:
        """Check whether a work row exists."""
        stmt = select(exists().where(WorkModel.id == work_id))
        return bool(await self.session.scalar(stmt))

    # Hey future me - this is the ONLY update the scanner does on an existing work. Title and
    # taxonomy are deliberately NOT parameters here, so a rescan can't clobber user edits.
    async def update_location(
        self, work_id: int, dir_path: str, cover_path: str | None
    ) -> None:
        """Refresh the scanner-owned columns of a work."""
        stmt = (
            update(WorkModel)
            .where(WorkModel.id == work_id)
            .values(dir_path=dir_path, cover_path=cover_path)
        )
        await self.session.execute(stmt)

    async def update_title(self, work_id: int, title: str) -> None:
        """Set a work's title."""
        result = await self.session.execute(
            update(WorkModel).where(WorkModel.id == work_id).values(title=title)
        )
        if result.rowcount == 0:
            raise EntityNotFoundException("Work", work_id)

    async def mark_enriched(self, work_id: int) -> None:
        """Stamp enriched_at with the current time."""
        await self.session.execute(
            update(WorkModel)
            .where(WorkModel.id == work_id)
            .values(enriched_at=utc_now())
        )

    async def delete(self, work_id: int) -> None:
        """Delete a work; children go with it via ON DELETE CASCADE."""
        result = await self.session.execute(
            delete(WorkModel).where(WorkModel.id == work_id)
        )
        if result.rowcount == 0:
            raise EntityNotFoundException("Work", work_id)

    async def list_all(self, sort: WorkSort = WorkSort.NEWEST) -> list[Work]:
        """List every work in the requested order, taxonomy names included."""
        result = await self.session.execute(_order_works(select(WorkModel), sort))
        works = [_work_from_model(m) for m in result.scalars().all()]
        await self.attach_taxonomy(works)
        return works

    async def list_dir_paths(self) -> list[tuple[int, str]]:
        """(id, dir_path) of every work, for orphan cleanup."""
        result = await self.session.execute(
            select(WorkModel.id, WorkModel.dir_path).order_by(WorkModel.id)
        )
        return [(row.id, row.dir_path) for row in result.all()]

    async def list_with_external_code(self, only_unenriched: bool = False) -> list[Work]:
        """Works eligible for enrichment, oldest id first."""
        stmt = select(WorkModel).where(WorkModel.external_code.is_not(None))
        if only_unenriched:
            stmt = stmt.where(WorkModel.enriched_at.is_(None))
        result = await self.session.execute(stmt.order_by(WorkModel.id))
        return [_work_from_model(m) for m in result.scalars().all()]

    # Yo, search matches title, external code AND any taxonomy name. Each taxonomy is an
    # EXISTS subquery so a work with three matching tags still appears exactly once.
    async def search(self, query: str, sort: WorkSort = WorkSort.NEWEST) -> list[Work]:
        """Case-insensitive substring search."""
        needle = query.strip().lower()
        if not needle:
            return await self.list_all(sort)

        conditions = [
            func.lower(WorkModel.title).contains(needle, autoescape=True),
            func.lower(WorkModel.external_code).contains(needle, autoescape=True),
        ]
        for entity_model, join_model, fk in _TAXONOMY_TABLES.values():
            conditions.append(
                exists()
                .where(join_model.work_id == WorkModel.id)
                .where(getattr(join_model, fk) == entity_model.id)
                .where(func.lower(entity_model.name).contains(needle, autoescape=True))
            )

        stmt = _order_works(select(WorkModel).where(or_(*conditions)), sort)
        result = await self.session.execute(stmt)
        works = [_work_from_model(m) for m in result.scalars().all()]
        await self.attach_taxonomy(works)
        return works

    async def list_by_taxonomy(
        self, kind: TaxonomyKind, entity_ids: Sequence[int]
    ) -> list[Work]:
        """Works associated with ALL of the given taxonomy entities, newest first."""
        if not entity_ids:
            return []
        _entity_model, join_model, fk = _TAXONOMY_TABLES[kind]
        wanted = set(entity_ids)
        matching = (
            select(join_model.work_id)
            .where(getattr(join_model, fk).in_(wanted))
            .group_by(join_model.work_id)
            .having(func.count(func.distinct(getattr(join_model, fk))) == len(wanted))
        )
        stmt = _order_works(
            select(WorkModel).where(WorkModel.id.in_(matching)), WorkSort.NEWEST
        )
        result = await self.session.execute(stmt)
        works = [_work_from_model(m) for m in result.scalars().all()]
        await self.attach_taxonomy(works)
        return works

    async def count(self) -> int:
        """Count works."""
        return int(await self.session.scalar(select(func.count(WorkModel.id))) or 0)

    async def attach_taxonomy(self, works: list[Work]) -> None:
        """Fill circles/voice_actors/tags on the given works (3 queries total)."""
        if not works:
            return
        by_id = {w.id: w for w in works}
        for kind, (entity_model, join_model, fk) in _TAXONOMY_TABLES.items():
            stmt = (
                select(join_model.work_id, entity_model.name)
                .join(entity_model, getattr(join_model, fk) == entity_model.id)
                .where(join_model.work_id.in_(by_id.keys()))
                .order_by(entity_model.name)
            )
            result = await self.session.execute(stmt)
            for work_id, name in result.all():
                work = by_id[work_id]
                if kind == TaxonomyKind.TAG:
                    work.tags.append(name)
                elif kind == TaxonomyKind.CIRCLE:
                    work.circles.append(name)
                else:
                    work.voice_actors.append(name)


class TrackRepository:
    """Repository for Track entities."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(
        self,
        work_id: int,
        title: str,
        path: str,
        duration_sec: int = 0,
        track_number: int | None = None,
        is_visible: bool = True,
    ) -> Track:
        """Insert a track row."""
        model = TrackModel(
            work_id=work_id,
            title=title,
            path=path,
            duration_sec=duration_sec,
            track_number=track_number,
            is_visible=is_visible,
        )
        self.session.add(model)
        await self.session.flush()
        return _track_from_model(model)

    async def get_by_id(self, track_id: int) -> Track | None:
        """Get a track by id."""
        model = await self.session.get(TrackModel, track_id)
        return _track_from_model(model) if model else None

    async def get_by_path(self, path: str) -> Track | None:
        """Get a track by file path."""
        stmt = select(TrackModel).where(TrackModel.path == path).limit(1)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return _track_from_model(model) if model else None

    async def get_by_paths(self, paths: Iterable[str]) -> dict[str, Track]:
        """Existing tracks keyed by path (one query, used by the scanner)."""
        path_list = list(paths)
        if not path_list:
            return {}
        stmt = select(TrackModel).where(TrackModel.path.in_(path_list))
        result = await self.session.execute(stmt)
        return {m.path: _track_from_model(m) for m in result.scalars().all()}

    async def update_scan_fields(
        self,
        track_id: int,
        duration_sec: int,
        track_number: int | None,
        is_visible: bool,
    ) -> None:
        """Update the columns a rescan is allowed to touch."""
        await self.session.execute(
            update(TrackModel)
            .where(TrackModel.id == track_id)
            .values(
                duration_sec=duration_sec,
                track_number=track_number,
                is_visible=is_visible,
            )
        )

    async def list_for_work(self, work_id: int, visible_only: bool = True) -> list[Track]:
        """Tracks of a work in playback order."""
        stmt = select(TrackModel).where(TrackModel.work_id == work_id)
        if visible_only:
            stmt = stmt.where(TrackModel.is_visible.is_(True))
        result = await self.session.execute(stmt)
        tracks = [_track_from_model(m) for m in result.scalars().all()]
        return sorted(tracks, key=track_order_key)

    async def count(self) -> int:
        """Count tracks."""
        return int(await self.session.scalar(select(func.count(TrackModel.id))) or 0)


class TaxonomyRepository:
    """Repository for one taxonomy kind (tags, circles or voice actors)."""

    def __init__(self, session: AsyncSession, kind: TaxonomyKind) -> None:
        """Initialize repository with session and the taxonomy kind it serves."""
        self.session = session
        self.kind = kind
        self._entity_model, self._join_model, self._fk = _TAXONOMY_TABLES[kind]

    # Hey future me, get-or-create is race-safe inside ONE transaction: INSERT OR IGNORE then
    # SELECT. The UNIQUE(name) constraint is the arbiter, so "ASMR" and "asmr" stay separate.
    async def get_or_create(self, name: str) -> int:
        """Return the id for ``name``, creating the row if needed."""
        await self.session.execute(
            sqlite_insert(self._entity_model)
            .values(name=name)
            .on_conflict_do_nothing(index_elements=["name"])
        )
        entity_id = await self.session.scalar(
            select(self._entity_model.id).where(self._entity_model.name == name)
        )
        return int(entity_id)

    async def replace_for_work(self, work_id: int, names: Sequence[str]) -> None:
        """Make ``names`` the complete association set of the work.

        Stale associations are dropped, not kept. Must run inside the caller's
        transaction so readers never see the half-replaced set.
        """
        await self.session.execute(
            delete(self._join_model).where(self._join_model.work_id == work_id)
        )
        for name in names:
            entity_id = await self.get_or_create(name)
            await self.session.execute(
                sqlite_insert(self._join_model)
                .values(work_id=work_id, **{self._fk: entity_id})
                .on_conflict_do_nothing()
            )

    async def list_with_counts(self) -> list[TaxonomyCount]:
        """Every entity with its work count, most used first."""
        join_fk = getattr(self._join_model, self._fk)
        work_count = func.count(self._join_model.work_id)
        stmt = (
            select(self._entity_model.id, self._entity_model.name, work_count)
            .outerjoin(self._join_model, join_fk == self._entity_model.id)
            .group_by(self._entity_model.id, self._entity_model.name)
            .order_by(work_count.desc(), self._entity_model.name)
        )
        result = await self.session.execute(stmt)
        return [
            TaxonomyCount(id=row[0], name=row[1], work_count=int(row[2]))
            for row in result.all()
        ]


class ProgressRepository:
    """Repository for per-work resume positions."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def upsert(self, work_id: int, track_id: int, position_sec: float) -> None:
        """Insert or replace the resume point of a work."""
        now = utc_now()
        stmt = sqlite_insert(TrackProgressModel).values(
            work_id=work_id,
            track_id=track_id,
            position_sec=position_sec,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["work_id"],
            set_={
                "track_id": stmt.excluded.track_id,
                "position_sec": stmt.excluded.position_sec,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.session.execute(stmt)

    async def get(self, work_id: int) -> TrackProgress | None:
        """Get the resume point of a work."""
        model = await self.session.get(TrackProgressModel, work_id)
        if model is None:
            return None
        return TrackProgress(
            work_id=model.work_id,
            track_id=model.track_id,
            position_sec=model.position_sec,
            updated_at=ensure_utc_aware(model.updated_at),
        )


class FavoriteRepository:
    """Repository for favorite markers."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def list_work_ids(self) -> set[int]:
        """All favorited work ids."""
        result = await self.session.execute(select(FavoriteModel.work_id))
        return set(result.scalars().all())

    async def is_favorite(self, work_id: int) -> bool:
        """Check membership."""
        return bool(
            await self.session.scalar(
                select(exists().where(FavoriteModel.work_id == work_id))
            )
        )

    async def toggle(self, work_id: int) -> bool:
        """Flip membership; returns the NEW membership."""
        result = await self.session.execute(
            delete(FavoriteModel).where(FavoriteModel.work_id == work_id)
        )
        if result.rowcount:
            return False
        await self.session.execute(
            sqlite_insert(FavoriteModel)
            .values(work_id=work_id, created_at=utc_now())
            .on_conflict_do_nothing()
        )
        return True


class HistoryRepository:
    """Repository for the append-only play log."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(self, work_id: int, track_id: int) -> None:
        """Append one play."""
        self.session.add(
            PlayHistoryModel(work_id=work_id, track_id=track_id, played_at=utc_now())
        )
        await self.session.flush()

    async def list_recent(self, limit: int = 20) -> list[PlayHistoryEntry]:
        """Newest plays first, ties broken by insertion order."""
        stmt = (
            select(
                PlayHistoryModel,
                WorkModel.title,
                WorkModel.cover_path,
                TrackModel.title,
            )
            .join(WorkModel, PlayHistoryModel.work_id == WorkModel.id)
            .join(TrackModel, PlayHistoryModel.track_id == TrackModel.id)
            .order_by(PlayHistoryModel.played_at.desc(), PlayHistoryModel.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [
            PlayHistoryEntry(
                id=row[0].id,
                work_id=row[0].work_id,
                track_id=row[0].track_id,
                work_title=row[1],
                track_title=row[3],
                played_at=ensure_utc_aware(row[0].played_at),
                cover_path=row[2],
            )
            for row in result.all()
        ]


class PlaylistRepository:
    """Repository for playlists and their track membership."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(self, name: str) -> Playlist:
        """Create a playlist."""
        model = PlaylistModel(name=name, created_at=utc_now())
        self.session.add(model)
        await self.session.flush()
        return Playlist(
            id=model.id, name=model.name, created_at=ensure_utc_aware(model.created_at)
        )

    async def exists(self, playlist_id: int) -> bool:
        """Check whether a playlist exists."""
        stmt = select(exists().where(PlaylistModel.id == playlist_id))
        return bool(await self.session.scalar(stmt))

    async def delete(self, playlist_id: int) -> None:
        """Delete a playlist and its membership rows."""
        result = await self.session.execute(
            delete(PlaylistModel).where(PlaylistModel.id == playlist_id)
        )
        if result.rowcount == 0:
            raise EntityNotFoundException("Playlist", playlist_id)

    async def list_all(self) -> list[Playlist]:
        """Playlists newest first with their track counts."""
        track_count = func.count(PlaylistTrackModel.track_id)
        stmt = (
            select(PlaylistModel, track_count)
            .outerjoin(
                PlaylistTrackModel, PlaylistTrackModel.playlist_id == PlaylistModel.id
            )
            .group_by(PlaylistModel.id)
            .order_by(PlaylistModel.created_at.desc(), PlaylistModel.id.desc())
        )
        result = await self.session.execute(stmt)
        return [
            Playlist(
                id=model.id,
                name=model.name,
                created_at=ensure_utc_aware(model.created_at),
                track_count=int(count),
            )
            for model, count in result.all()
        ]

    async def list_tracks(self, playlist_id: int) -> list[PlaylistTrackEntry]:
        """Members of a playlist ordered by position."""
        stmt = (
            select(PlaylistTrackModel, TrackModel, WorkModel.title, WorkModel.cover_path)
            .join(TrackModel, PlaylistTrackModel.track_id == TrackModel.id)
            .join(WorkModel, TrackModel.work_id == WorkModel.id)
            .where(PlaylistTrackModel.playlist_id == playlist_id)
            .order_by(PlaylistTrackModel.position, PlaylistTrackModel.added_at)
        )
        result = await self.session.execute(stmt)
        return [
            PlaylistTrackEntry(
                playlist_id=entry.playlist_id,
                position=entry.position,
                added_at=ensure_utc_aware(entry.added_at),
                track=_track_from_model(track),
                work_title=work_title,
                cover_path=cover_path,
            )
            for entry, track, work_title, cover_path in result.all()
        ]

    # Listen up, appending = max(position) + 1 and INSERT OR IGNORE on the composite PK.
    # rowcount tells us whether the track was new; a duplicate add is a quiet False.
    async def add_track(self, playlist_id: int, track_id: int) -> bool:
        """Append a track; False when it is already a member."""
        max_position = await self.session.scalar(
            select(func.max(PlaylistTrackModel.position)).where(
                PlaylistTrackModel.playlist_id == playlist_id
            )
        )
        next_position = 0 if max_position is None else int(max_position) + 1
        result = await self.session.execute(
            sqlite_insert(PlaylistTrackModel)
            .values(
                playlist_id=playlist_id,
                track_id=track_id,
                position=next_position,
                added_at=utc_now(),
            )
            .on_conflict_do_nothing()
        )
        return bool(result.rowcount)

    async def remove_track(self, playlist_id: int, track_id: int) -> bool:
        """Remove a member; False when it wasn't there."""
        result = await self.session.execute(
            delete(PlaylistTrackModel).where(
                and_(
                    PlaylistTrackModel.playlist_id == playlist_id,
                    PlaylistTrackModel.track_id == track_id,
                )
            )
        )
        return bool(result.rowcount)


class SettingsRepository:
    """Key/value preferences stored in app_settings."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def get(self, key: str) -> str | None:
        """Read one value."""
        model = await self.session.get(AppSettingModel, key)
        return model.value if model else None

    async def set(self, key: str, value: str) -> None:
        """Write one value (upsert)."""
        stmt = sqlite_insert(AppSettingModel).values(key=key, value=value)
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"], set_={"value": stmt.excluded.value}
        )
        await self.session.execute(stmt)
