"""FastAPI application factory and console entry point."""

import logging

import uvicorn
from fastapi import FastAPI

from voicevault import __version__
from voicevault.api.exception_handlers import register_exception_handlers
from voicevault.api.routers import api_router
from voicevault.config import Settings, get_settings
from voicevault.infrastructure.lifecycle import AppContainer, build_container, lifespan
from voicevault.infrastructure.observability import configure_logging

logger = logging.getLogger(__name__)


# Hey future me, the container is built HERE (not in lifespan) and stored on app.state right
# away. Tests pass their own container (fake lookup, fake audio backends); TestClient used as
# a context manager still runs lifespan, so migrations and preference restore happen as usual.
def create_app(
    settings: Settings | None = None, container: AppContainer | None = None
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings to use (default: from environment)
        container: Pre-built container (default: built from settings)
    """
    if container is None:
        container = build_container(settings or get_settings())

    app = FastAPI(
        title="voicevault",
        version=__version__,
        description="Catalog and player for local spoken-audio collections",
        lifespan=lifespan,
    )
    app.state.container = container

    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")
    return app


def run() -> None:
    """Console entry point: configure logging and serve with uvicorn."""
    settings = get_settings()
    configure_logging(
        log_level=settings.observability.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    app = create_app(settings)
    logger.info(f"Serving on http://{settings.api.host}:{settings.api.port}")
    uvicorn.run(
        app,
        host=settings.api.host,
        port=settings.api.port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
