"""Tests for CatalogService."""

from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import func, select

from voicevault.application.services.catalog_service import (
    CatalogService,
    normalize_names,
)
from voicevault.domain.entities import WorkSort
from voicevault.domain.exceptions import (
    EntityNotFoundException,
    LibraryIOError,
    ValidationException,
)
from voicevault.infrastructure.persistence.database import Database
from voicevault.infrastructure.persistence.models import (
    FavoriteModel,
    PlayHistoryModel,
    PlaylistTrackModel,
    TrackModel,
    TrackProgressModel,
    WorkCircleModel,
    WorkTagModel,
    WorkVoiceActorModel,
)


@pytest.fixture
def catalog(db: Database) -> CatalogService:
    return CatalogService(db)


async def count_rows(db: Database, model: Any) -> int:
    async with db.session_scope() as session:
        return int(await session.scalar(select(func.count()).select_from(model)) or 0)


class TestNormalizeNames:
    """Taxonomy input normalization."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("ASMR, Binaural,, ASMR", ["ASMR", "Binaural"]),
            ([" Sleep ", "sleep", ""], ["Sleep", "sleep"]),
            ("", []),
            (None, []),
        ],
    )
    def test_normalize(self, value: Any, expected: list[str]) -> None:
        assert normalize_names(value) == expected


class TestWorkMetadata:
    """Manual edits of title and taxonomy."""

    async def test_update_replaces_taxonomy_sets(
        self, catalog: CatalogService, add_work: Any
    ) -> None:
        work, _ = await add_work("Old Title")
        await catalog.update_work_metadata(
            work.id, tags="ASMR, Sleep", circles=["Circle A"], voice_actors="Alice"
        )

        detail = await catalog.update_work_metadata(
            work.id, title="  New Title ", tags=["Sleep"], circles="", voice_actors="Bob"
        )

        assert detail.title == "New Title"
        assert detail.tags == ["Sleep"]
        assert detail.circles == []
        assert detail.voice_actors == ["Bob"]

    async def test_omitted_sets_are_left_alone(
        self, catalog: CatalogService, add_work: Any
    ) -> None:
        work, _ = await add_work()
        await catalog.update_work_metadata(work.id, tags="ASMR", circles="Circle A")

        detail = await catalog.update_work_metadata(work.id, title="Renamed")

        assert detail.tags == ["ASMR"]
        assert detail.circles == ["Circle A"]

    async def test_blank_title_rejected(
        self, catalog: CatalogService, add_work: Any
    ) -> None:
        work, _ = await add_work()
        with pytest.raises(ValidationException):
            await catalog.update_work_metadata(work.id, title="   ")

    async def test_missing_work(self, catalog: CatalogService) -> None:
        with pytest.raises(EntityNotFoundException):
            await catalog.update_work_metadata(404, tags="x")

    async def test_taxonomy_counts(self, catalog: CatalogService, add_work: Any) -> None:
        first, _ = await add_work("One")
        second, _ = await add_work("Two")
        await catalog.update_work_metadata(first.id, tags="ASMR, Sleep")
        await catalog.update_work_metadata(second.id, tags="ASMR")

        counts = await catalog.get_tags_with_count()

        assert [(c.name, c.work_count) for c in counts] == [("ASMR", 2), ("Sleep", 1)]


class TestQueries:
    """Listing, sorting, search and taxonomy filters."""

    async def test_sort_orders(self, catalog: CatalogService, add_work: Any) -> None:
        await add_work("beta", external_code="RJ100")
        await add_work("Alpha")
        await add_work("gamma", external_code="RJ200")

        newest = await catalog.get_all_works()
        by_title = await catalog.get_all_works(WorkSort.TITLE)
        by_code = await catalog.get_all_works(WorkSort.EXTERNAL_CODE)

        assert [w.title for w in newest] == ["gamma", "Alpha", "beta"]
        assert [w.title for w in by_title] == ["Alpha", "beta", "gamma"]
        assert [w.external_code for w in by_code] == ["RJ200", "RJ100", None]

    async def test_search_matches_title_code_and_taxonomy(
        self, catalog: CatalogService, add_work: Any
    ) -> None:
        rain, _ = await add_work("Rainy Night", external_code="RJ01000001")
        ear, _ = await add_work("Ear Cleaning")
        await catalog.update_work_metadata(ear.id, voice_actors="Rain Voice")
        await add_work("Unrelated")

        hits = await catalog.search_works("rain")
        by_code = await catalog.search_works("rj0100")

        assert {w.id for w in hits} == {rain.id, ear.id}
        assert [w.id for w in by_code] == [rain.id]

    async def test_search_treats_wildcards_literally(
        self, catalog: CatalogService, add_work: Any
    ) -> None:
        await add_work("100% Relax")
        await add_work("Plain")

        hits = await catalog.search_works("%")

        assert [w.title for w in hits] == ["100% Relax"]

    async def test_works_by_tags_requires_all(
        self, catalog: CatalogService, add_work: Any
    ) -> None:
        both, _ = await add_work("Both")
        only_one, _ = await add_work("One")
        await catalog.update_work_metadata(both.id, tags="ASMR, Sleep")
        await catalog.update_work_metadata(only_one.id, tags="ASMR")
        tag_ids = {c.name: c.id for c in await catalog.get_tags_with_count()}

        works = await catalog.get_works_by_tags([tag_ids["ASMR"], tag_ids["Sleep"]])
        asmr = await catalog.get_works_by_tags([tag_ids["ASMR"]])

        assert [w.id for w in works] == [both.id]
        assert {w.id for w in asmr} == {both.id, only_one.id}
        assert await catalog.get_works_by_tags([]) == []

    async def test_works_by_circle(self, catalog: CatalogService, add_work: Any) -> None:
        work, _ = await add_work("Circle Work")
        await catalog.update_work_metadata(work.id, circles="Night Owls")
        circle = (await catalog.get_circles_with_count())[0]

        works = await catalog.get_works_by_circle(circle.id)

        assert [w.circles for w in works] == [["Night Owls"]]


class TestDeleteWork:
    """Cascading delete and optional folder removal."""

    async def test_cascade_leaves_no_orphans(
        self, catalog: CatalogService, db: Database, add_work: Any
    ) -> None:
        work, tracks = await add_work(tracks=2)
        await catalog.update_work_metadata(
            work.id, tags="ASMR", circles="C", voice_actors="V"
        )
        await catalog.save_track_progress(work.id, tracks[0].id, 12.0)
        await catalog.add_to_history(work.id, tracks[0].id)
        await catalog.toggle_favorite(work.id)
        playlist = await catalog.create_playlist("Mix")
        await catalog.add_track_to_playlist(playlist.id, tracks[1].id)

        await catalog.delete_work(work.id)

        assert await catalog.get_work(work.id) is None
        for model in (
            TrackModel,
            TrackProgressModel,
            PlayHistoryModel,
            FavoriteModel,
            PlaylistTrackModel,
            WorkTagModel,
            WorkCircleModel,
            WorkVoiceActorModel,
        ):
            assert await count_rows(db, model) == 0, model.__tablename__
        # Playlist itself survives, just empty
        assert (await catalog.get_all_playlists())[0].track_count == 0

    async def test_delete_files_removes_folder(
        self, catalog: CatalogService, add_work: Any
    ) -> None:
        work, _ = await add_work()
        (Path(work.dir_path) / "01.wav").write_bytes(b"x")

        await catalog.delete_work(work.id, delete_files=True)

        assert not Path(work.dir_path).exists()

    async def test_rmtree_failure_raises_after_rows_are_gone(
        self, catalog: CatalogService, add_work: Any, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        work, _ = await add_work()

        def refuse(path: str) -> None:
            raise PermissionError(13, "Permission denied", path)

        monkeypatch.setattr(
            "voicevault.application.services.catalog_service.shutil.rmtree", refuse
        )

        with pytest.raises(LibraryIOError):
            await catalog.delete_work(work.id, delete_files=True)
        assert await catalog.get_work(work.id) is None

    async def test_missing_work(self, catalog: CatalogService) -> None:
        with pytest.raises(EntityNotFoundException):
            await catalog.delete_work(999)


class TestUserState:
    """Favorites, progress, history and playlists."""

    async def test_toggle_favorite_round_trip(
        self, catalog: CatalogService, add_work: Any
    ) -> None:
        work, _ = await add_work()

        assert await catalog.toggle_favorite(work.id) is True
        assert await catalog.get_favorites() == {work.id}
        assert (await catalog.get_work(work.id)).is_favorite  # type: ignore[union-attr]
        assert await catalog.toggle_favorite(work.id) is False
        assert await catalog.get_favorites() == set()

    async def test_toggle_favorite_missing_work(self, catalog: CatalogService) -> None:
        with pytest.raises(EntityNotFoundException):
            await catalog.toggle_favorite(77)

    async def test_progress_is_one_row_per_work(
        self, catalog: CatalogService, add_work: Any
    ) -> None:
        work, tracks = await add_work(tracks=2)

        await catalog.save_track_progress(work.id, tracks[0].id, 10.0)
        await catalog.save_track_progress(work.id, tracks[1].id, 5.0)

        progress = await catalog.get_track_progress(work.id)
        assert progress is not None
        assert (progress.track_id, progress.position_sec) == (tracks[1].id, 5.0)

    async def test_progress_rejects_track_of_other_work(
        self, catalog: CatalogService, add_work: Any
    ) -> None:
        work, _ = await add_work()
        _, other_tracks = await add_work()
        with pytest.raises(EntityNotFoundException):
            await catalog.save_track_progress(work.id, other_tracks[0].id, 1.0)

    async def test_history_newest_first_with_limit(
        self, catalog: CatalogService, add_work: Any
    ) -> None:
        work, tracks = await add_work(tracks=3)
        for track in tracks:
            await catalog.add_to_history(work.id, track.id)

        history = await catalog.get_play_history(limit=2)

        assert [h.track_id for h in history] == [tracks[2].id, tracks[1].id]
        assert history[0].work_title == work.title
        assert await catalog.get_play_history(limit=0) == []

    async def test_playlist_membership(
        self, catalog: CatalogService, add_work: Any
    ) -> None:
        work, tracks = await add_work(tracks=2)
        playlist = await catalog.create_playlist("  Night Mix ")

        assert playlist.name == "Night Mix"
        assert await catalog.add_track_to_playlist(playlist.id, tracks[1].id) is True
        assert await catalog.add_track_to_playlist(playlist.id, tracks[0].id) is True
        assert await catalog.add_track_to_playlist(playlist.id, tracks[1].id) is False

        entries = await catalog.get_playlist_tracks(playlist.id)
        assert [e.track.id for e in entries] == [tracks[1].id, tracks[0].id]
        assert [e.position for e in entries] == [0, 1]
        assert entries[0].work_title == work.title

        assert await catalog.remove_track_from_playlist(playlist.id, tracks[1].id)
        assert not await catalog.remove_track_from_playlist(playlist.id, tracks[1].id)

    async def test_playlist_validation(self, catalog: CatalogService) -> None:
        with pytest.raises(ValidationException):
            await catalog.create_playlist("   ")
        with pytest.raises(EntityNotFoundException):
            await catalog.add_track_to_playlist(1, 1)
        with pytest.raises(EntityNotFoundException):
            await catalog.delete_playlist(1)
