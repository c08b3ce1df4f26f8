# Hey future me - this is the transport state machine. Read this before touching it!
#
#   Idle -> Loading -> Playing <-> Paused
#   Playing/Paused -> Idle  (stop, natural end)
#   Loading -> Idle         (every backend refused the file)
#
# RULES:
# 1. ONE active backend. load() awaits close() of the old one (in a thread, so device
#    teardown and decode-thread joins really finished) BEFORE opening the next.
# 2. Native backends don't push position -> a 1 s tick polls position() and finished.
#    Fallback backends push position + end from their own thread -> call_soon_threadsafe.
#    Both paths end up in _schedule_end(), which is the ONE "track ended" signal.
# 3. Every callback carries the load generation. A late callback from a backend we already
#    closed sees a stale generation and is dropped (no timer firing against dead state).
# 4. Tick and spectrum tasks live only while Playing; the sleep timer belongs to the
#    session and survives track changes, but stop() kills it.
"""Playback engine: backend selection, transport controls and live events."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from voicevault.application.events import (
    PLAYBACK_PROGRESS,
    PLAYBACK_STATE,
    SLEEP_TIMER,
    SPECTRUM_UPDATE,
    TRACK_DURATION,
    TRACK_ENDED,
    EventBus,
)
from voicevault.application.playback.backend_selection import backend_attempt_order
from voicevault.config.settings import PlaybackSettings
from voicevault.domain.entities import BackendKind, PlayerState
from voicevault.domain.exceptions import (
    InvalidStateException,
    PlaybackError,
    ValidationException,
)
from voicevault.domain.ports import IAudioBackend

logger = logging.getLogger(__name__)

BackendFactory = Callable[[BackendKind], IAudioBackend]
EndHandler = Callable[[], Awaitable[None]]


@dataclass
class PlaybackStatus:
    """Snapshot of the transport for status queries."""

    state: PlayerState
    path: str | None
    backend: BackendKind | None
    position: float
    duration: float | None
    volume: float
    sleep_timer_remaining: int | None


class PlaybackEngine:
    """Single-active-track player routing every call to the active backend."""

    def __init__(
        self,
        settings: PlaybackSettings,
        event_bus: EventBus,
        backend_factory: BackendFactory,
        tick_interval: float = 1.0,
        sleep_tick: float = 1.0,
    ) -> None:
        """Initialize engine.

        Args:
            settings: Playback settings (fallback extensions, spectrum interval, presets)
            event_bus: Receives state/progress/spectrum/end/sleep-timer events
            backend_factory: Builds a fresh backend for a BackendKind
            tick_interval: Position poll period for non-pushing backends
            sleep_tick: Sleep timer decrement period (one second in production)
        """
        self.settings = settings
        self.event_bus = event_bus
        self._backend_factory = backend_factory
        self._tick_interval = tick_interval
        self._sleep_tick = sleep_tick

        self._lock = asyncio.Lock()
        self._backend: IAudioBackend | None = None
        self._generation = 0
        self._path: str | None = None
        self._volume = settings.default_volume
        self._state = PlayerState.IDLE

        self._tick_task: asyncio.Task[None] | None = None
        self._spectrum_task: asyncio.Task[None] | None = None
        self._sleep_task: asyncio.Task[None] | None = None
        self._sleep_remaining: int | None = None
        self._end_tasks: set[asyncio.Task[None]] = set()

        # Session hooks
        self.on_track_ended: EndHandler | None = None
        self.on_sleep_expired: EndHandler | None = None

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> PlayerState:
        return self._state

    @property
    def active_backend(self) -> BackendKind | None:
        """Kind of the backend currently holding the device."""
        return self._backend.kind if self._backend is not None else None

    @property
    def current_path(self) -> str | None:
        return self._path

    @property
    def volume(self) -> float:
        return self._volume

    def position(self) -> float:
        """Current position in seconds (0 when nothing is loaded)."""
        if self._backend is None:
            return 0.0
        return self._backend.position()

    def status(self) -> PlaybackStatus:
        """Transport snapshot."""
        return PlaybackStatus(
            state=self._state,
            path=self._path,
            backend=self.active_backend,
            position=self.position(),
            duration=self._backend.duration if self._backend is not None else None,
            volume=self._volume,
            sleep_timer_remaining=self._sleep_remaining,
        )

    def _set_state(self, state: PlayerState) -> None:
        if state == self._state:
            return
        self._state = state
        self.event_bus.publish(PLAYBACK_STATE, state=state.value, path=self._path)

    # =========================================================================
    # LOAD / TRANSPORT
    # =========================================================================

    async def load(self, path: str, autoplay: bool = True) -> BackendKind:
        """Release the current backend, then open ``path`` on the right one.

        Native failures retry the same file on the fallback backend. With
        ``autoplay=False`` the track is left Paused at 0 (e.g. to seek to a
        resume point before playing).

        Returns:
            The backend kind that accepted the file

        Raises:
            PlaybackError: If every backend refused the file (state ends Idle)
        """
        async with self._lock:
            await self._release_backend()
            self._path = path
            self._set_state(PlayerState.LOADING)

            self._generation += 1
            generation = self._generation
            attempts: list[tuple[BackendKind, str]] = []
            for kind in backend_attempt_order(path, self.settings.fallback_extensions):
                backend = self._backend_factory(kind)
                try:
                    await asyncio.to_thread(
                        backend.open,
                        path,
                        self._volume,
                        self._position_callback(generation),
                        self._end_callback(generation),
                    )
                except PlaybackError as e:
                    reason = e.attempts[-1][1] if e.attempts else e.message
                    attempts.append((kind, reason))
                    logger.warning(f"{kind.value} backend refused {path}: {reason}")
                    await self._close_quietly(backend)
                    continue
                self._backend = backend
                break

            if self._backend is None:
                self._path = None
                self._set_state(PlayerState.IDLE)
                raise PlaybackError(path, attempts)

            backend = self._backend
            logger.info(f"Loaded {path} on {backend.kind.value} backend")
            self.event_bus.publish(
                TRACK_DURATION, duration=backend.duration or 0.0, path=path
            )
            self.event_bus.publish(
                PLAYBACK_PROGRESS, position=0.0, duration=backend.duration or 0.0
            )
            if autoplay:
                backend.play()
                self._set_state(PlayerState.PLAYING)
                self._start_loops()
            else:
                self._set_state(PlayerState.PAUSED)
            return backend.kind

    async def play_track(self, path: str) -> BackendKind:
        """Load ``path`` and start playing it."""
        return await self.load(path)

    async def play(self) -> None:
        """Start or resume the loaded track."""
        async with self._lock:
            backend = self._require_backend("play")
            if self._state == PlayerState.PLAYING:
                return
            backend.play()
            self._set_state(PlayerState.PLAYING)
            self._start_loops()

    async def resume(self) -> None:
        """Alias of play() for the transport API."""
        await self.play()

    async def pause(self) -> None:
        """Pause the loaded track, keeping its position."""
        async with self._lock:
            backend = self._require_backend("pause")
            if self._state != PlayerState.PLAYING:
                return
            backend.pause()
            self._stop_loops()
            self._set_state(PlayerState.PAUSED)
            self._publish_progress(backend)

    async def seek(self, seconds: float) -> None:
        """Jump to an absolute position."""
        if seconds < 0:
            raise ValidationException("Seek position must not be negative")
        async with self._lock:
            backend = self._require_backend("seek")
            duration = backend.duration
            if duration:
                seconds = min(seconds, duration)
            await asyncio.to_thread(backend.seek, seconds)
            self._publish_progress(backend)

    async def set_volume(self, volume: float) -> None:
        """Set normalized volume; it carries over to every later load."""
        if not 0.0 <= volume <= 1.0:
            raise ValidationException("Volume must be between 0.0 and 1.0")
        # Under the lock so a change made while load() is opening a backend lands on it
        async with self._lock:
            self._volume = volume
            if self._backend is not None:
                self._backend.set_volume(volume)

    async def stop(self) -> None:
        """Stop playback, release the backend and cancel every timer."""
        self.cancel_sleep_timer()
        async with self._lock:
            await self._release_backend()
            self._path = None
            self._set_state(PlayerState.IDLE)

    async def close(self) -> None:
        """Shutdown: stop and wait for pending end handlers."""
        await self.stop()
        for task in list(self._end_tasks):
            task.cancel()
        self._end_tasks.clear()

    def _require_backend(self, action: str) -> IAudioBackend:
        if self._backend is None:
            raise InvalidStateException(f"Cannot {action}: no track loaded")
        return self._backend

    async def _release_backend(self) -> None:
        """Cancel loops and fully close the active backend. Caller holds the lock."""
        self._stop_loops()
        backend, self._backend = self._backend, None
        # Invalidate callbacks still in flight from the old backend's threads
        self._generation += 1
        if backend is not None:
            await self._close_quietly(backend)

    async def _close_quietly(self, backend: IAudioBackend) -> None:
        try:
            await asyncio.to_thread(backend.close)
        except Exception as e:
            # A broken close must not wedge the player; the next open still gets a chance
            logger.warning(
                f"Error closing {backend.kind.value} backend: {e}", exc_info=True
            )

    # =========================================================================
    # POSITION / END / SPECTRUM LOOPS
    # =========================================================================

    def _start_loops(self) -> None:
        backend = self._backend
        if backend is None:
            return
        generation = self._generation
        if not backend.pushes_position and self._tick_task is None:
            self._tick_task = asyncio.create_task(
                self._tick_loop(backend, generation), name="voicevault-position-tick"
            )
        if self._spectrum_task is None:
            self._spectrum_task = asyncio.create_task(
                self._spectrum_loop(backend), name="voicevault-spectrum"
            )

    def _stop_loops(self) -> None:
        for task in (self._tick_task, self._spectrum_task):
            if task is not None and task is not asyncio.current_task():
                task.cancel()
        self._tick_task = None
        self._spectrum_task = None

    def _publish_progress(self, backend: IAudioBackend) -> None:
        self.event_bus.publish(
            PLAYBACK_PROGRESS,
            position=backend.position(),
            duration=backend.duration or 0.0,
        )

    async def _tick_loop(self, backend: IAudioBackend, generation: int) -> None:
        """Once-per-tick position poll for backends that don't push."""
        while True:
            await asyncio.sleep(self._tick_interval)
            if generation != self._generation:
                return
            self._publish_progress(backend)
            if backend.finished:
                self._schedule_end(generation)
                return

    async def _spectrum_loop(self, backend: IAudioBackend) -> None:
        interval = self.settings.spectrum_interval
        while True:
            bins = backend.spectrum()
            self.event_bus.publish(
                SPECTRUM_UPDATE, bins=bins, backend=backend.kind.value
            )
            await asyncio.sleep(interval)

    def _position_callback(self, generation: int) -> Callable[[float], None]:
        loop = asyncio.get_running_loop()

        def on_position(position: float) -> None:
            loop.call_soon_threadsafe(self._on_pushed_position, generation, position)

        return on_position

    def _end_callback(self, generation: int) -> Callable[[], None]:
        loop = asyncio.get_running_loop()

        def on_end() -> None:
            loop.call_soon_threadsafe(self._schedule_end, generation)

        return on_end

    def _on_pushed_position(self, generation: int, position: float) -> None:
        backend = self._backend
        if generation != self._generation or backend is None:
            return
        if self._state != PlayerState.PLAYING:
            return
        self.event_bus.publish(
            PLAYBACK_PROGRESS, position=position, duration=backend.duration or 0.0
        )

    def _schedule_end(self, generation: int) -> None:
        if generation != self._generation:
            return
        task = asyncio.create_task(
            self._handle_end(generation), name="voicevault-track-end"
        )
        self._end_tasks.add(task)
        task.add_done_callback(self._end_tasks.discard)

    async def _handle_end(self, generation: int) -> None:
        """Natural end: release, go Idle, announce, then let the session auto-advance."""
        async with self._lock:
            if generation != self._generation or self._backend is None:
                return
            path = self._path
            await self._release_backend()
            self._path = None
            self._set_state(PlayerState.IDLE)
            self.event_bus.publish(TRACK_ENDED, path=path)
        logger.debug(f"Track ended: {path}")
        if self.on_track_ended is not None:
            try:
                await self.on_track_ended()
            except Exception as e:
                # Nobody awaits this task; log instead of losing the error
                logger.error(f"Auto-advance after {path} failed: {e}", exc_info=True)

    # =========================================================================
    # SLEEP TIMER
    # =========================================================================

    @property
    def sleep_timer_remaining(self) -> int | None:
        """Seconds left, or None when no timer runs."""
        return self._sleep_remaining

    def start_sleep_timer(self, minutes: int) -> None:
        """Start (or replace) the sleep timer with one of the configured presets."""
        if minutes not in self.settings.sleep_timer_presets:
            raise ValidationException(
                f"Sleep timer must be one of {self.settings.sleep_timer_presets} minutes"
            )
        self.cancel_sleep_timer()
        self._sleep_remaining = minutes * 60
        self._sleep_task = asyncio.create_task(
            self._sleep_loop(), name="voicevault-sleep-timer"
        )
        logger.info(f"Sleep timer set to {minutes} minutes")

    def cancel_sleep_timer(self) -> bool:
        """Cancel the sleep timer; True if one was running."""
        task, self._sleep_task = self._sleep_task, None
        was_running = self._sleep_remaining is not None
        self._sleep_remaining = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        if was_running:
            self.event_bus.publish(SLEEP_TIMER, remaining=None)
        return was_running

    async def _sleep_loop(self) -> None:
        while self._sleep_remaining is not None and self._sleep_remaining > 0:
            self.event_bus.publish(SLEEP_TIMER, remaining=self._sleep_remaining)
            await asyncio.sleep(self._sleep_tick)
            if self._sleep_remaining is None:
                return
            self._sleep_remaining -= 1

        # Expired: clear ourselves first so stop() doesn't cancel the running task
        self._sleep_task = None
        self._sleep_remaining = None
        self.event_bus.publish(SLEEP_TIMER, remaining=0)
        logger.info("Sleep timer expired, stopping playback")
        handler: Any = self.on_sleep_expired or self.stop
        await handler()
