"""Observability infrastructure for structured logging."""

from voicevault.infrastructure.observability.logging import (
    configure_logging,
    get_task_id,
    set_task_id,
)

__all__ = [
    "configure_logging",
    "get_task_id",
    "set_task_id",
]
