"""Tests for BackgroundTaskRunner."""

import asyncio

import pytest

from voicevault.application.events import (
    ENRICHMENT_PROGRESS,
    EnrichmentProgress,
    EventBus,
    TaskFailed,
)
from voicevault.application.workers import BackgroundTaskRunner, ProgressCallback
from voicevault.domain.exceptions import TaskAlreadyRunningError


class TestBackgroundTaskRunner:
    """Single-flight start, progress forwarding, terminal messages."""

    async def test_result_and_progress(self) -> None:
        bus = EventBus()
        subscription = bus.subscribe()
        runner = BackgroundTaskRunner(bus)

        async def body(progress: ProgressCallback) -> str:
            for i in range(1, 4):
                progress(EnrichmentProgress(current=i, total=3))
            return "done"

        channel = runner.start("job", body)
        messages = [message async for message in channel]

        assert messages == [EnrichmentProgress(current=i, total=3) for i in (1, 2, 3)]
        assert await channel.result() == "done"
        event = subscription.get_nowait()
        assert event.name == ENRICHMENT_PROGRESS
        assert event.data == {"current": 1, "total": 3}

    async def test_single_flight_per_name(self) -> None:
        runner = BackgroundTaskRunner()
        gate = asyncio.Event()

        async def body(progress: ProgressCallback) -> None:
            await gate.wait()

        first = runner.start("job", body)
        with pytest.raises(TaskAlreadyRunningError):
            runner.start("job", body)
        # Different name, no conflict
        other = runner.start("other-job", body)
        assert runner.is_running("job")

        gate.set()
        await first.result()
        await other.result()
        assert not runner.is_running("job")

    async def test_failure_becomes_terminal_message(self) -> None:
        runner = BackgroundTaskRunner()

        async def body(progress: ProgressCallback) -> None:
            raise RuntimeError("disk on fire")

        channel = runner.start("job", body)

        with pytest.raises(RuntimeError, match="disk on fire"):
            await channel.result()
        assert isinstance(channel.outcome, TaskFailed)
        assert not runner.is_running("job")

    async def test_shutdown_cancels_running_tasks(self) -> None:
        runner = BackgroundTaskRunner()

        async def body(progress: ProgressCallback) -> None:
            await asyncio.sleep(60)

        channel = runner.start("job", body)
        await asyncio.sleep(0)

        await runner.shutdown()

        assert isinstance(channel.outcome, TaskFailed)
        assert isinstance(channel.outcome.error, asyncio.CancelledError)
        assert not runner.is_running("job")
