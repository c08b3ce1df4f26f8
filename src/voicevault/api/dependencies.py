"""Dependency injection for API endpoints."""

from typing import cast

from fastapi import HTTPException, Request

from voicevault.application.events import EventBus
from voicevault.application.services.app_service import AppService
from voicevault.infrastructure.lifecycle import AppContainer


# Hey future me, the container is put on app.state by create_app() BEFORE the app serves
# anything (tests rely on that, ASGITransport never runs lifespan). If it's missing the app
# was built by hand without one - 503 is more honest than an AttributeError 500.
def get_container(request: Request) -> AppContainer:
    """Get the application container from app state.

    Raises:
        HTTPException: 503 if the container is not initialized
    """
    if not hasattr(request.app.state, "container"):
        raise HTTPException(status_code=503, detail="Application not initialized")
    return cast(AppContainer, request.app.state.container)


def get_app_service(request: Request) -> AppService:
    """Boundary facade with every library/playback operation."""
    return get_container(request).service


def get_event_bus(request: Request) -> EventBus:
    return get_container(request).event_bus
