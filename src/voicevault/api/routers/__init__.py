"""API router initialization."""

# Hey future me, this is the MAIN API router aggregator! main.py mounts it under /api, and
# every sub-router brings its own prefix (library -> /api/library/..., etc).

from fastapi import APIRouter

from voicevault.api.routers import (
    enrichment,
    events,
    library,
    playback,
    playlists,
    taxonomy,
)

api_router = APIRouter()

api_router.include_router(library.router)
api_router.include_router(enrichment.router)
api_router.include_router(playback.router)
api_router.include_router(playlists.router)
api_router.include_router(taxonomy.router)
api_router.include_router(events.router)

__all__ = [
    "api_router",
    "enrichment",
    "events",
    "library",
    "playback",
    "playlists",
    "taxonomy",
]
