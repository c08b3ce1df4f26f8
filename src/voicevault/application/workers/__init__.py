"""Worker system - single-flight background tasks."""

from voicevault.application.workers.background_tasks import (
    BackgroundTaskRunner,
    ProgressCallback,
)

__all__ = [
    "BackgroundTaskRunner",
    "ProgressCallback",
]
