"""Tests for PlayerSession: queue-driven playback and its catalog side effects."""

import asyncio
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest

from voicevault.application.events import EventBus
from voicevault.application.playback.engine import PlaybackEngine
from voicevault.application.playback.session import VOLUME_SETTING_KEY, PlayerSession
from voicevault.application.services.catalog_service import CatalogService
from voicevault.config.settings import PlaybackSettings
from voicevault.domain.entities import PlayerState, RepeatMode
from voicevault.domain.exceptions import EntityNotFoundException
from voicevault.infrastructure.persistence.database import Database


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(0.005)


def make_session(
    db: Database, event_bus: EventBus, backend_factory: Any
) -> PlayerSession:
    engine = PlaybackEngine(
        PlaybackSettings(spectrum_interval=0.01),
        event_bus,
        backend_factory,
        tick_interval=0.01,
    )
    return PlayerSession(engine, CatalogService(db))


@pytest.fixture
async def session(
    db: Database, event_bus: EventBus, backend_factory: Any
) -> AsyncGenerator[PlayerSession, None]:
    player = make_session(db, event_bus, backend_factory)
    yield player
    await player.close()


class TestPlayWork:
    """Starting a work from the catalog."""

    async def test_plays_first_track_and_logs_history(
        self, session: PlayerSession, add_work: Any, backend_factory: Any
    ) -> None:
        work, tracks = await add_work("Rain Sounds", tracks=3)

        track = await session.play_work(work.id)

        assert track.id == tracks[0].id
        assert backend_factory.active.path == tracks[0].path
        assert session.status().queue_length == 3
        history = await session.catalog.get_play_history()
        assert [(h.work_id, h.track_id) for h in history] == [(work.id, tracks[0].id)]

    async def test_resume_continues_from_stored_progress(
        self, session: PlayerSession, add_work: Any, backend_factory: Any
    ) -> None:
        work, tracks = await add_work(tracks=3)
        await session.catalog.save_track_progress(work.id, tracks[1].id, 42.5)

        track = await session.play_work(work.id, resume=True)

        assert track.id == tracks[1].id
        backend = backend_factory.active
        assert backend.pos == 42.5
        assert backend.playing
        assert session.engine.state == PlayerState.PLAYING

    async def test_unknown_start_track_rejected(
        self, session: PlayerSession, add_work: Any
    ) -> None:
        work, _ = await add_work()
        with pytest.raises(EntityNotFoundException):
            await session.play_work(work.id, start_track_id=9999)

    async def test_work_without_tracks_rejected(self, session: PlayerSession) -> None:
        with pytest.raises(EntityNotFoundException):
            await session.play_work(12345)


class TestProgressAndAdvance:
    """Progress persistence and auto-advance."""

    async def test_pause_saves_progress(
        self, session: PlayerSession, add_work: Any, backend_factory: Any
    ) -> None:
        work, tracks = await add_work()
        await session.play_work(work.id)
        backend_factory.active.pos = 17.0

        await session.pause()

        progress = await session.catalog.get_track_progress(work.id)
        assert progress is not None
        assert progress.track_id == tracks[0].id
        assert progress.position_sec == 17.0

    async def test_track_end_advances_to_next(
        self, session: PlayerSession, add_work: Any, backend_factory: Any
    ) -> None:
        work, tracks = await add_work(tracks=2)
        await session.play_work(work.id)

        backend_factory.active.done = True

        await wait_until(lambda: session.engine.current_path == tracks[1].path)
        assert session.current_track == tracks[1]
        assert session.engine.state == PlayerState.PLAYING
        history = await session.catalog.get_play_history()
        assert [h.track_id for h in history] == [tracks[1].id, tracks[0].id]

    async def test_end_of_queue_stops(
        self, session: PlayerSession, add_work: Any, backend_factory: Any
    ) -> None:
        work, tracks = await add_work(tracks=1)
        await session.play_work(work.id)

        backend_factory.active.done = True

        await wait_until(lambda: session.engine.state == PlayerState.IDLE)
        await asyncio.sleep(0.05)
        assert session.engine.state == PlayerState.IDLE
        assert len(backend_factory.created) == 1

    async def test_repeat_one_replays_same_track(
        self, session: PlayerSession, add_work: Any, backend_factory: Any
    ) -> None:
        work, tracks = await add_work(tracks=2)
        await session.play_work(work.id)
        session.cycle_repeat()
        assert session.cycle_repeat() == RepeatMode.ONE

        backend_factory.active.done = True

        await wait_until(lambda: len(backend_factory.created) == 2)
        await wait_until(lambda: session.engine.state == PlayerState.PLAYING)
        assert backend_factory.active.path == tracks[0].path

    async def test_previous_restarts_after_three_seconds(
        self, session: PlayerSession, add_work: Any, backend_factory: Any
    ) -> None:
        work, tracks = await add_work(tracks=2)
        await session.play_work(work.id, start_track_id=tracks[1].id)
        backend_factory.active.pos = 10.0

        track = await session.previous()

        assert track == tracks[1]
        assert backend_factory.active.pos == 0.0

    async def test_previous_early_goes_back(
        self, session: PlayerSession, add_work: Any, backend_factory: Any
    ) -> None:
        work, tracks = await add_work(tracks=2)
        await session.play_work(work.id, start_track_id=tracks[1].id)
        backend_factory.active.pos = 1.0

        track = await session.previous()

        assert track == tracks[0]
        assert backend_factory.active.path == tracks[0].path


class TestPreferences:
    """Volume persistence across sessions."""

    async def test_volume_persisted_and_restored(
        self,
        session: PlayerSession,
        db: Database,
        event_bus: EventBus,
        backend_factory: Any,
    ) -> None:
        await session.set_volume(0.4)
        assert await session.catalog.get_setting(VOLUME_SETTING_KEY) == "0.4"

        restarted = make_session(db, event_bus, backend_factory)
        await restarted.restore_preferences()

        assert restarted.get_volume() == 0.4

    async def test_invalid_stored_volume_ignored(
        self,
        db: Database,
        event_bus: EventBus,
        backend_factory: Any,
    ) -> None:
        player = make_session(db, event_bus, backend_factory)
        await player.catalog.set_setting(VOLUME_SETTING_KEY, "loud")

        await player.restore_preferences()

        assert player.get_volume() == 1.0
