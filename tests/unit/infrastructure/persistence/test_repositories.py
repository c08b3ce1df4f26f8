"""Tests for the SQLAlchemy repositories."""

from typing import Any

import pytest

from voicevault.domain.entities import TaxonomyKind, Track
from voicevault.domain.exceptions import EntityNotFoundException
from voicevault.infrastructure.persistence.database import Database
from voicevault.infrastructure.persistence.repositories import (
    PlaylistRepository,
    ProgressRepository,
    SettingsRepository,
    TaxonomyRepository,
    TrackRepository,
    WorkRepository,
    track_order_key,
)


def make_track(track_id: int, path: str, number: int | None = None) -> Track:
    return Track(
        id=track_id, work_id=1, title=path, path=path, track_number=number
    )


class TestTrackOrder:
    def test_numbered_first_then_natural_filename_order(self) -> None:
        tracks = [
            make_track(1, "/w/track10.mp3"),
            make_track(2, "/w/track2.mp3"),
            make_track(3, "/w/zz.mp3", number=2),
            make_track(4, "/w/aa.mp3", number=1),
        ]

        ordered = sorted(tracks, key=track_order_key)

        assert [t.id for t in ordered] == [4, 3, 2, 1]


class TestWorkRepository:
    async def test_update_and_delete_missing_work_raise(self, db: Database) -> None:
        async with db.session_scope() as session:
            repo = WorkRepository(session)
            with pytest.raises(EntityNotFoundException):
                await repo.update_title(42, "x")
            with pytest.raises(EntityNotFoundException):
                await repo.delete(42)

    async def test_enrichment_candidates(self, db: Database, add_work: Any) -> None:
        first, _ = await add_work("A", external_code="RJ100")
        second, _ = await add_work("B", external_code="RJ200")
        await add_work("No code")

        async with db.session_scope() as session:
            repo = WorkRepository(session)
            await repo.mark_enriched(first.id)
            everything = await repo.list_with_external_code()
            pending = await repo.list_with_external_code(only_unenriched=True)

        assert [w.id for w in everything] == [first.id, second.id]
        assert [w.id for w in pending] == [second.id]

    async def test_lookup_by_path_and_code(self, db: Database, add_work: Any) -> None:
        work, _ = await add_work(external_code="RJ01234567")

        async with db.session_scope() as session:
            repo = WorkRepository(session)
            by_path = await repo.get_by_dir_path(work.dir_path)
            by_code = await repo.get_by_external_code("RJ01234567")
            assert await repo.exists(work.id)
            assert not await repo.exists(work.id + 100)

        assert by_path is not None and by_code is not None
        assert by_path.id == by_code.id == work.id


class TestTaxonomyRepository:
    async def test_names_are_case_sensitive(self, db: Database) -> None:
        async with db.session_scope() as session:
            tags = TaxonomyRepository(session, TaxonomyKind.TAG)
            upper = await tags.get_or_create("ASMR")
            again = await tags.get_or_create("ASMR")
            lower = await tags.get_or_create("asmr")

        assert upper == again
        assert upper != lower

    async def test_replace_drops_stale_associations(
        self, db: Database, add_work: Any
    ) -> None:
        work, _ = await add_work()

        async with db.session_scope() as session:
            circles = TaxonomyRepository(session, TaxonomyKind.CIRCLE)
            await circles.replace_for_work(work.id, ["Old Circle", "Kept"])
            await circles.replace_for_work(work.id, ["Kept"])
            counts = await circles.list_with_counts()
            stored = await WorkRepository(session).get_by_id(work.id)

        assert [(c.name, c.work_count) for c in counts] == [
            ("Kept", 1),
            ("Old Circle", 0),
        ]
        assert stored is not None and stored.circles == ["Kept"]


class TestSmallRepositories:
    async def test_progress_upsert(self, db: Database, add_work: Any) -> None:
        work, tracks = await add_work(tracks=2)

        async with db.session_scope() as session:
            progress = ProgressRepository(session)
            await progress.upsert(work.id, tracks[0].id, 3.5)
            await progress.upsert(work.id, tracks[1].id, 9.0)
            stored = await progress.get(work.id)

        assert stored is not None
        assert (stored.track_id, stored.position_sec) == (tracks[1].id, 9.0)
        assert stored.updated_at.tzinfo is not None

    async def test_settings_upsert(self, db: Database) -> None:
        async with db.session_scope() as session:
            prefs = SettingsRepository(session)
            assert await prefs.get("volume") is None
            await prefs.set("volume", "0.5")
            await prefs.set("volume", "0.8")
            assert await prefs.get("volume") == "0.8"

    async def test_playlist_positions_append(self, db: Database, add_work: Any) -> None:
        _, tracks = await add_work(tracks=3)

        async with db.session_scope() as session:
            playlists = PlaylistRepository(session)
            playlist = await playlists.add("Mix")
            for track in reversed(tracks):
                await playlists.add_track(playlist.id, track.id)
            await playlists.remove_track(playlist.id, tracks[1].id)
            await playlists.add_track(playlist.id, tracks[1].id)
            entries = await playlists.list_tracks(playlist.id)

        assert [e.track.id for e in entries] == [tracks[2].id, tracks[0].id, tracks[1].id]
        assert [e.position for e in entries] == [0, 2, 3]

    async def test_track_visibility_filter(self, db: Database, add_work: Any) -> None:
        work, tracks = await add_work(tracks=2)

        async with db.session_scope() as session:
            repo = TrackRepository(session)
            await repo.update_scan_fields(tracks[0].id, 60, 1, is_visible=False)
            visible = await repo.list_for_work(work.id)
            every = await repo.list_for_work(work.id, visible_only=False)

        assert [t.id for t in visible] == [tracks[1].id]
        assert len(every) == 2
