"""Custom exception handlers for the FastAPI application.

Converts domain exceptions into JSON responses with proper status codes:

- EntityNotFoundException -> 404
- InvalidStateException (incl. TaskAlreadyRunningError) -> 409
- ValidationException, LibraryIOError, PlaybackError -> 422
- MetadataLookupError -> 502 (the external lookup failed, not us)
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from voicevault.domain.exceptions import (
    EntityNotFoundException,
    InvalidStateException,
    LibraryIOError,
    MetadataLookupError,
    PlaybackError,
    ValidationException,
)

logger = logging.getLogger(__name__)


# Hey future me, this registers GLOBAL exception handlers for the entire app! Routers just
# call the service and let domain exceptions fly; this module is the ONE place that decides
# the status code. Must be called during app setup, before any request arrives.
def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers for every domain exception the service layer raises.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(ValidationException)
    async def validation_exception_handler(
        request: Request, exc: ValidationException
    ) -> JSONResponse:
        """Handle domain validation exceptions with 422 Unprocessable Entity."""
        logger.warning(
            "Validation error at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "error": exc.message},
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.message},
        )

    @app.exception_handler(EntityNotFoundException)
    async def entity_not_found_exception_handler(
        request: Request, exc: EntityNotFoundException
    ) -> JSONResponse:
        """Handle entity not found exceptions with 404 Not Found."""
        logger.info(
            "Entity not found at %s: %s %s",
            request.url.path,
            exc.entity_type,
            exc.entity_id,
            extra={
                "path": request.url.path,
                "entity_type": exc.entity_type,
                "entity_id": exc.entity_id,
            },
        )
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": exc.message},
        )

    # Yo, TaskAlreadyRunningError is a subclass, so a second scan lands here too. 409 tells
    # the client "try again once the running one is done".
    @app.exception_handler(InvalidStateException)
    async def invalid_state_exception_handler(
        request: Request, exc: InvalidStateException
    ) -> JSONResponse:
        """Handle invalid state exceptions with 409 Conflict."""
        logger.warning(
            "Invalid state at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "error": exc.message},
        )
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": exc.message},
        )

    @app.exception_handler(LibraryIOError)
    async def library_io_error_handler(
        request: Request, exc: LibraryIOError
    ) -> JSONResponse:
        """Handle an unusable library root with 422."""
        logger.warning(
            "Library I/O error at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "library_path": exc.path},
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.message, "path": exc.path},
        )

    @app.exception_handler(PlaybackError)
    async def playback_error_handler(
        request: Request, exc: PlaybackError
    ) -> JSONResponse:
        """Handle a track no backend could play with 422, listing every attempt."""
        logger.error(
            "Playback failed at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "file": exc.path},
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": exc.message,
                "attempts": [
                    {"backend": str(getattr(kind, "value", kind)), "reason": reason}
                    for kind, reason in exc.attempts
                ],
            },
        )

    @app.exception_handler(MetadataLookupError)
    async def metadata_lookup_error_handler(
        request: Request, exc: MetadataLookupError
    ) -> JSONResponse:
        """Handle a failed external lookup with 502 Bad Gateway."""
        logger.warning(
            "Metadata lookup failed at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "external_code": exc.external_code},
        )
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": exc.message, "external_code": exc.external_code},
        )
