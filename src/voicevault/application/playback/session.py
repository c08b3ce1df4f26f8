"""Player session: the explicit owner of "now playing".

Hey future me - there is NO global now-playing state anywhere. This object owns the
QueueManager and the PlaybackEngine, knows which work/track is current, and writes
the catalog side effects of playing:

- a PlayHistory row on every successful load
- TrackProgress on pause, stop and track change
- auto-advance on track-ended (QueueManager.next decides where to)
- the volume preference (persisted in app_settings, restored on start)

Observers never poke at this object's fields; they subscribe to the EventBus.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from voicevault.application.playback.engine import PlaybackEngine, PlaybackStatus
from voicevault.application.playback.queue import QueueManager, QueueMove
from voicevault.application.services.catalog_service import CatalogService
from voicevault.domain.entities import BackendKind, RepeatMode, Track
from voicevault.domain.exceptions import (
    EntityNotFoundException,
    PlaybackError,
    ValidationException,
)

logger = logging.getLogger(__name__)

VOLUME_SETTING_KEY = "playback.volume"


@dataclass
class SessionStatus:
    """Transport snapshot plus queue context."""

    playback: PlaybackStatus
    track: Track | None
    queue_index: int | None
    queue_length: int
    shuffle: bool
    repeat: RepeatMode


class PlayerSession:
    """Queue + engine + catalog side effects for one listener."""

    def __init__(
        self,
        engine: PlaybackEngine,
        catalog: CatalogService,
        queue: QueueManager | None = None,
    ) -> None:
        self.engine = engine
        self.catalog = catalog
        self.queue = queue or QueueManager()
        self.engine.on_track_ended = self._on_track_ended
        self.engine.on_sleep_expired = self.stop

    async def restore_preferences(self) -> None:
        """Apply the persisted volume (called once at startup)."""
        stored = await self.catalog.get_setting(VOLUME_SETTING_KEY)
        if stored is None:
            return
        try:
            volume = float(stored)
            await self.engine.set_volume(volume)
        except (ValueError, ValidationException):
            logger.warning(f"Ignoring invalid stored volume {stored!r}")

    @property
    def current_track(self) -> Track | None:
        return self.queue.current

    def status(self) -> SessionStatus:
        """Snapshot for status queries."""
        return SessionStatus(
            playback=self.engine.status(),
            track=self.queue.current,
            queue_index=self.queue.index,
            queue_length=len(self.queue.tracks),
            shuffle=self.queue.shuffle,
            repeat=self.queue.repeat,
        )

    # =========================================================================
    # STARTING PLAYBACK
    # =========================================================================

    async def play_work(
        self, work_id: int, start_track_id: int | None = None, resume: bool = False
    ) -> Track:
        """Queue a work's visible tracks and start playing.

        Args:
            work_id: Work to play
            start_track_id: Track to start with (default: first, or the resume track)
            resume: Continue from the stored TrackProgress when there is one
        """
        tracks = await self.catalog.get_work_tracks(work_id)
        if not tracks:
            raise EntityNotFoundException("Work", work_id)

        progress = await self.catalog.get_track_progress(work_id) if resume else None
        wanted = start_track_id
        if wanted is None and progress is not None:
            wanted = progress.track_id

        start_index = 0
        if wanted is not None:
            ids = [t.id for t in tracks]
            if wanted not in ids:
                raise EntityNotFoundException("Track", wanted)
            start_index = ids.index(wanted)

        position = 0.0
        if progress is not None and progress.track_id == tracks[start_index].id:
            position = progress.position_sec
        return await self.play_queue(tracks, start_index, position)

    async def play_queue(
        self, tracks: Sequence[Track], start_index: int = 0, position: float = 0.0
    ) -> Track:
        """Replace the queue and play ``tracks[start_index]``."""
        await self._save_progress()
        track = self.queue.set_queue(tracks, start_index)
        if track is None:
            raise ValidationException("Cannot play an empty queue")
        await self._load(track, position)
        return track

    async def play_track(self, path: str) -> BackendKind:
        """Play a single file outside of any queue (no history, no progress)."""
        await self._save_progress()
        self.queue.clear()
        return await self.engine.play_track(path)

    async def _load(self, track: Track, position: float = 0.0) -> None:
        if position > 0:
            await self.engine.load(track.path, autoplay=False)
            await self.engine.seek(position)
            await self.engine.play()
        else:
            await self.engine.load(track.path)
        await self.catalog.add_to_history(track.work_id, track.id)

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    async def pause(self) -> None:
        await self.engine.pause()
        await self._save_progress()

    async def resume(self) -> None:
        await self.engine.resume()

    async def seek(self, seconds: float) -> None:
        await self.engine.seek(seconds)

    async def set_volume(self, volume: float) -> None:
        """Set and persist the volume."""
        await self.engine.set_volume(volume)
        await self.catalog.set_setting(VOLUME_SETTING_KEY, repr(volume))

    def get_volume(self) -> float:
        return self.engine.volume

    async def stop(self) -> None:
        await self._save_progress()
        await self.engine.stop()

    async def next(self) -> Track | None:
        """Skip forward per queue policy; None when the queue is exhausted."""
        await self._save_progress()
        move = self.queue.next()
        return await self._apply_move(move)

    async def previous(self) -> Track | None:
        """Restart after 3 s of play, else go back one track."""
        move = self.queue.previous(self.engine.position())
        if move == QueueMove.RESTART:
            await self.engine.seek(0.0)
            return self.queue.current
        if move == QueueMove.BACK:
            await self._save_progress_for(self._track_before_move(), self.engine.position())
        return await self._apply_move(move)

    def toggle_shuffle(self) -> bool:
        return self.queue.toggle_shuffle()

    def cycle_repeat(self) -> RepeatMode:
        return self.queue.cycle_repeat()

    def start_sleep_timer(self, minutes: int) -> None:
        self.engine.start_sleep_timer(minutes)

    def cancel_sleep_timer(self) -> bool:
        return self.engine.cancel_sleep_timer()

    async def close(self) -> None:
        await self._save_progress()
        await self.engine.close()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _apply_move(self, move: QueueMove) -> Track | None:
        track = self.queue.current
        if move in (QueueMove.ADVANCE, QueueMove.BACK, QueueMove.REPLAY) and track:
            try:
                await self._load(track)
            except PlaybackError as e:
                logger.error(f"Cannot play {track.path}: {e.message}")
                raise
            return track
        if move == QueueMove.STOP:
            await self.engine.stop()
        return None

    def _track_before_move(self) -> Track | None:
        # previous() already decremented the index
        if self.queue.index is None:
            return None
        following = self.queue.index + 1
        if following < len(self.queue.tracks):
            return self.queue.tracks[following]
        return None

    async def _save_progress(self) -> None:
        track = self.queue.current
        if track is None or self.engine.current_path != track.path:
            return
        await self._save_progress_for(track, self.engine.position())

    async def _save_progress_for(self, track: Track | None, position: float) -> None:
        if track is None:
            return
        try:
            await self.catalog.save_track_progress(track.work_id, track.id, position)
        except EntityNotFoundException:
            # Work deleted while playing; nothing to resume anyway
            logger.debug(f"Not saving progress for vanished track {track.id}")

    async def _on_track_ended(self) -> None:
        """Auto-advance when the engine reports a natural end."""
        finished = self.queue.current
        if finished is not None:
            # Finished tracks resume from the start next time
            await self._save_progress_for(finished, 0.0)
        move = self.queue.next()
        try:
            await self._apply_move(move)
        except PlaybackError:
            # Already logged; playback halts on an unplayable track
            return
