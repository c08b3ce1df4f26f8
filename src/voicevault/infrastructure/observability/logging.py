"""Structured logging configuration with JSON formatting and task ids."""

import contextvars
import logging
import sys
import traceback
import uuid
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

# Hey future me, the task id follows ONE background run (a scan, a batch enrichment) through
# every log line it produces, including lines from repositories and the lookup client. When a
# user says "the scan skipped half my folders", grep the log for that run's task_id. contextvars
# is asyncio-safe: each asyncio.Task copies the context at creation, so concurrent runs never
# see each other's id. Default "" covers startup logs and API calls.
task_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("task_id", default="")


def get_task_id() -> str:
    """Get the current task id from context.

    Returns:
        Current task id or empty string if not set
    """
    return task_id_var.get()


# Listen up, this setter AUTO-GENERATES a short id if none is given. Call it once at the top
# of a background coroutine, never in a loop.
def set_task_id(task_id: str | None = None) -> str:
    """Set task id in context.

    Args:
        task_id: Task id to set. If None, generates a new one

    Returns:
        The task id that was set
    """
    if task_id is None:
        task_id = uuid.uuid4().hex[:12]
    task_id_var.set(task_id)
    return task_id


class TaskIdFilter(logging.Filter):
    """Add task id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Attach task_id to the record; never blocks the record."""
        record.task_id = get_task_id()
        return True


class CompactExceptionFormatter(logging.Formatter):
    """Formatter that shows compact exception chains.

    Hey future me - only frames from OUR package are printed, each exception in the chain
    gets a ``╰─►`` header. Example:

    ERROR │ voicevault.application.services.library_scanner_service:210 │ Skipping file
    ╰─► PermissionError: [Errno 13] Permission denied: '/lib/RJ01234567/01.wav'
        File "library_scanner_service.py", line 330, in _probe_duration
          audio = MutagenFile(path)
    """

    def format(self, record: logging.LogRecord) -> str:
        """Prefix the message with the task id when one is set."""
        text = super().format(record)
        task_id = getattr(record, "task_id", "")
        if task_id:
            return f"[{task_id}] {text}"
        return text

    def formatException(self, ei: Any) -> str:
        """Format exception chain in a compact, readable way.

        Args:
            ei: Exception info tuple (type, value, traceback)

        Returns:
            Formatted exception string with compact chain representation
        """
        _exc_type, exc_value, _exc_tb = ei
        if exc_value is None:
            return ""

        exceptions: list[BaseException] = []
        current: BaseException | None = exc_value
        while current is not None and current not in exceptions:
            exceptions.append(current)
            current = current.__cause__ or current.__context__

        # Root cause first
        exceptions.reverse()

        lines: list[str] = []
        for exc in exceptions:
            lines.append(f"╰─► {exc.__class__.__name__}: {exc}")
            if exc.__traceback__ is None:
                continue
            for frame in traceback.extract_tb(exc.__traceback__):
                if "voicevault" not in frame.filename or "/site-packages/" in frame.filename:
                    continue
                lines.append(
                    f'    File "{Path(frame.filename).name}", line {frame.lineno}, '
                    f"in {frame.name}"
                )
                if frame.line:
                    lines.append(f"      {frame.line.strip()}")

        return "\n".join(lines)


class CustomJsonFormatter(jsonlogger.JsonFormatter):  # type: ignore[name-defined,misc]
    """Custom JSON formatter with additional fields."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        """Add custom fields to log record.

        Args:
            log_record: Dictionary to be logged as JSON
            record: Python logging record
            message_dict: Message dictionary from format string
        """
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["line"] = record.lineno

        task_id = getattr(record, "task_id", "")
        if task_id:
            log_record["task_id"] = task_id

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_record["stack_info"] = self.formatStack(record.stack_info)


# Listen future me, this is THE logging setup function - call it ONCE at startup (main.py does).
# It replaces existing root handlers so tests and reloads don't stack duplicates.
def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    app_name: str = "voicevault",
) -> None:
    """Configure structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format for logs
        app_name: Application name to include in the startup record
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(TaskIdFilter())

    if json_format:
        formatter: logging.Formatter = CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = CompactExceptionFormatter(
            fmt="%(asctime)s │ %(levelname)-7s │ %(name)s:%(lineno)d │ %(message)s",
            datefmt="%H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Third-party noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(
        "Logging configured",
        extra={
            "app_name": app_name,
            "log_level": log_level,
            "json_format": json_format,
        },
    )
