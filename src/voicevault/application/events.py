"""Progress channels for background tasks and the live event bus.

Hey future me - two different shapes of notification live here:

1. ProgressChannel: ONE per background run (a scan, a batch enrichment). Ordered
   progress messages, then exactly one terminal message (TaskFinished/TaskFailed).
   The caller gets the channel back immediately and either iterates it or awaits
   ``result()``.
2. EventBus: ONE per app. Fan-out of live events (spectrum, position, state...) to
   any number of subscribers, e.g. the SSE endpoint.

Both are bounded. A slow consumer loses the OLDEST messages; the producer (the
audio engine, the scanner) is never blocked by a consumer.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import asdict, dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_SIZE = 256


# =============================================================================
# PROGRESS MESSAGES
# =============================================================================


@dataclass(frozen=True)
class ScanProgress:
    """Number of works processed so far."""

    count: int


@dataclass(frozen=True)
class EnrichmentProgress:
    """Position inside a batch enrichment."""

    current: int
    total: int


@dataclass(frozen=True)
class TaskFinished:
    """Terminal success message carrying the task's result."""

    result: Any


@dataclass(frozen=True)
class TaskFailed:
    """Terminal failure message carrying the exception that ended the task."""

    error: BaseException


ProgressMessage = ScanProgress | EnrichmentProgress
ChannelMessage = ScanProgress | EnrichmentProgress | TaskFinished | TaskFailed


class ChannelClosedError(RuntimeError):
    """Raised when publishing to a channel that already got its terminal message."""


class ProgressChannel:
    """Bounded, single-consumer stream of progress messages with a terminal result."""

    def __init__(self, name: str, maxsize: int = DEFAULT_CHANNEL_SIZE) -> None:
        self.name = name
        self._queue: asyncio.Queue[ChannelMessage] = asyncio.Queue(maxsize=maxsize)
        self._terminal: TaskFinished | TaskFailed | None = None
        # True once a consumer took the terminal message off the queue
        self._drained = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        """True once the terminal message was published."""
        return self._terminal is not None

    @property
    def outcome(self) -> "TaskFinished | TaskFailed | None":
        """The terminal message, once there is one."""
        return self._terminal

    def publish(self, message: ProgressMessage) -> None:
        """Queue a progress message, dropping the oldest one when full."""
        if self._terminal is not None:
            raise ChannelClosedError(f"{self.name} channel is closed")
        self._put(message)

    def finish(self, result: Any) -> None:
        """Publish the terminal success message."""
        self._close(TaskFinished(result))

    def fail(self, error: BaseException) -> None:
        """Publish the terminal failure message."""
        self._close(TaskFailed(error))

    def _close(self, message: TaskFinished | TaskFailed) -> None:
        if self._terminal is not None:
            raise ChannelClosedError(f"{self.name} channel is closed")
        self._terminal = message
        self._put(message)

    # Listen up, the terminal message is always the LAST thing put, so "drop oldest" can
    # never evict it. Everything in front of it is a progress message by construction.
    def _put(self, message: ChannelMessage) -> None:
        while True:
            try:
                self._queue.put_nowait(message)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()
                self.dropped += 1

    async def __aiter__(self) -> AsyncIterator[ProgressMessage]:
        """Yield progress messages until the terminal one arrives."""
        while not self._drained:
            message = await self._queue.get()
            if isinstance(message, TaskFinished | TaskFailed):
                self._drained = True
                return
            yield message

    async def result(self) -> Any:
        """Drain the channel and return the result, or raise the task's error."""
        async for _message in self:
            pass
        terminal = self._terminal
        if isinstance(terminal, TaskFailed):
            raise terminal.error
        assert terminal is not None
        return terminal.result


# =============================================================================
# EVENT BUS
# =============================================================================

# Event names (what the SSE endpoint sends as the "event:" field)
SPECTRUM_UPDATE = "spectrum-update"
PLAYBACK_PROGRESS = "playback-progress"
TRACK_DURATION = "track-duration"
PLAYBACK_STATE = "playback-state"
TRACK_ENDED = "track-ended"
SLEEP_TIMER = "sleep-timer"
SCAN_PROGRESS = "scan-progress"
ENRICHMENT_PROGRESS = "enrichment-progress"


@dataclass(frozen=True)
class Event:
    """One live event."""

    name: str
    data: dict[str, Any] = field(default_factory=dict)


class Subscription:
    """A subscriber's private bounded queue. Use as an async context manager."""

    def __init__(self, bus: "EventBus", maxsize: int) -> None:
        self._bus = bus
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def _offer(self, event: Event) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self.dropped += 1
            self._queue.put_nowait(event)

    async def get(self) -> Event:
        """Wait for the next event."""
        return await self._queue.get()

    def get_nowait(self) -> Event:
        """Next event or asyncio.QueueEmpty."""
        return self._queue.get_nowait()

    def close(self) -> None:
        """Stop receiving events."""
        self._bus.unsubscribe(self)

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Event:
        return await self._queue.get()


class EventBus:
    """Fan-out publish/subscribe for live events.

    ``publish`` is synchronous and must run on the event loop thread. Audio
    threads go through ``loop.call_soon_threadsafe(bus.publish, ...)``.
    """

    def __init__(self, subscriber_queue_size: int = DEFAULT_CHANNEL_SIZE) -> None:
        self._subscriber_queue_size = subscriber_queue_size
        self._subscribers: list[Subscription] = []

    def subscribe(self, maxsize: int | None = None) -> Subscription:
        """Register a new subscriber."""
        subscription = Subscription(self, maxsize or self._subscriber_queue_size)
        self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscriber (idempotent)."""
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, name: str, **data: Any) -> Event:
        """Deliver an event to every current subscriber."""
        event = Event(name=name, data=data)
        for subscription in list(self._subscribers):
            subscription._offer(event)
        return event


def progress_payload(message: ProgressMessage) -> dict[str, Any]:
    """Event payload for a progress message."""
    return asdict(message)
