# Hey future me - this is where "long-running, must not block the caller" lives. Scans and
# batch enrichments are started here as asyncio Tasks; the caller immediately gets a
# ProgressChannel back. Each named task is SINGLE-FLIGHT: starting "library-scan" while one
# is running raises TaskAlreadyRunningError instead of doubling the workload (two scans
# racing on the same works would fight over the same rows).
"""Background task runner with single-flight guards and progress channels."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from voicevault.application.events import (
    ENRICHMENT_PROGRESS,
    SCAN_PROGRESS,
    EnrichmentProgress,
    EventBus,
    ProgressChannel,
    ProgressMessage,
    ScanProgress,
    progress_payload,
)
from voicevault.domain.exceptions import TaskAlreadyRunningError
from voicevault.infrastructure.observability import set_task_id

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressMessage], None]
TaskBody = Callable[[ProgressCallback], Awaitable[Any]]

_EVENT_NAMES: dict[type, str] = {
    ScanProgress: SCAN_PROGRESS,
    EnrichmentProgress: ENRICHMENT_PROGRESS,
}


class BackgroundTaskRunner:
    """Runs named coroutines in the background, one instance per name at a time."""

    def __init__(self, event_bus: EventBus | None = None) -> None:
        """Initialize runner.

        Args:
            event_bus: Optional bus that also receives every progress message
                (as scan-progress / enrichment-progress events)
        """
        self._event_bus = event_bus
        self._running: dict[str, asyncio.Task[Any]] = {}

    def is_running(self, name: str) -> bool:
        """True while a task with this name is in flight."""
        task = self._running.get(name)
        return task is not None and not task.done()

    def start(self, name: str, body: TaskBody) -> ProgressChannel:
        """Start ``body`` in the background and return its progress channel.

        Args:
            name: Single-flight key (e.g. "library-scan")
            body: Coroutine function receiving a progress callback; its return
                value becomes the channel's terminal result

        Raises:
            TaskAlreadyRunningError: If a task with this name is still running
        """
        if self.is_running(name):
            raise TaskAlreadyRunningError(name)

        channel = ProgressChannel(name)

        def report(message: ProgressMessage) -> None:
            channel.publish(message)
            if self._event_bus is not None:
                event_name = _EVENT_NAMES.get(type(message))
                if event_name is not None:
                    self._event_bus.publish(event_name, **progress_payload(message))

        async def runner() -> None:
            task_id = set_task_id()
            logger.info("Background task %s started (task_id=%s)", name, task_id)
            try:
                result = await body(report)
            except asyncio.CancelledError:
                channel.fail(asyncio.CancelledError(f"{name} was cancelled"))
                raise
            except Exception as e:
                # The channel is the error path; the caller decides what to do with it
                logger.error("Background task %s failed: %s", name, e, exc_info=True)
                channel.fail(e)
            else:
                logger.info("Background task %s finished", name)
                channel.finish(result)
            finally:
                self._running.pop(name, None)

        self._running[name] = asyncio.create_task(runner(), name=f"voicevault-{name}")
        return channel

    async def shutdown(self) -> None:
        """Cancel everything still running (app shutdown)."""
        tasks = list(self._running.values())
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._running.clear()
