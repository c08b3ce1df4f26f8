"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing
    # str(exception). Don't raise this directly - always use a specific subclass so callers
    # (API exception handlers, batch loops) can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    # Yo, this is for MUTATING calls on a missing id (delete work 42, toggle favorite on a
    # work that's gone). Read queries return None / [] instead - a missing row there is normal.
    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationException(DomainException):
    """Raised when input fails validation.

    Example: volume outside 0.0-1.0, unknown sleep timer preset, blank playlist name.
    """

    pass


class InvalidStateException(DomainException):
    """Raised when an entity is in an invalid state for the requested operation.

    Example: seeking while nothing is loaded.
    """

    pass


class TaskAlreadyRunningError(InvalidStateException):
    """Raised when a single-flight background task is started twice.

    Hey future me - scans and batch enrichments are single-flight per library.
    The second caller gets this instead of a silently doubled workload.
    """

    def __init__(self, task_name: str) -> None:
        super().__init__(f"{task_name} is already running")
        self.task_name = task_name


class LibraryIOError(DomainException):
    """Raised when the library root itself is unusable.

    Per-file or per-directory I/O failures during a scan are logged and skipped,
    they never surface as this exception.
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class MetadataLookupError(DomainException):
    """Raised when the external metadata lookup fails for one work."""

    def __init__(self, external_code: str, reason: str) -> None:
        super().__init__(f"Metadata lookup failed for {external_code}: {reason}")
        self.external_code = external_code
        self.reason = reason


class PlaybackError(DomainException):
    """Raised when a track cannot be played on any backend.

    ``attempts`` lists (backend_kind, reason) pairs in the order they were tried,
    so the caller can show WHY both backends refused the file.
    """

    def __init__(self, path: str, attempts: list[tuple[Any, str]] | None = None) -> None:
        attempts = attempts or []
        details = "; ".join(f"{kind}: {reason}" for kind, reason in attempts)
        message = f"Cannot play {path}"
        if details:
            message = f"{message} ({details})"
        super().__init__(message)
        self.path = path
        self.attempts = attempts


__all__ = [
    "DomainException",
    "EntityNotFoundException",
    "InvalidStateException",
    "LibraryIOError",
    "MetadataLookupError",
    "PlaybackError",
    "TaskAlreadyRunningError",
    "ValidationException",
]
