"""Library endpoints: scanning, works, tracks, favorites, progress, history."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status

from voicevault.api.dependencies import get_app_service
from voicevault.api.schemas import (
    CleanupResponse,
    FavoritesResponse,
    FavoriteToggleResponse,
    PlayHistoryResponse,
    SaveProgressRequest,
    ScanRequest,
    TaskStartedResponse,
    TaskStatusResponse,
    TrackProgressResponse,
    TrackResponse,
    UpdateWorkMetadataRequest,
    WorkDetailResponse,
    WorkResponse,
    task_status,
)
from voicevault.application.services.app_service import SCAN_TASK, AppService
from voicevault.domain.entities import WorkSort
from voicevault.domain.exceptions import EntityNotFoundException

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/library", tags=["Library"])

ServiceDep = Annotated[AppService, Depends(get_app_service)]


# =============================================================================
# SCAN & CLEANUP
# =============================================================================


# Hey future me, the scan runs in the BACKGROUND. This returns 202 right away; progress goes
# out as "scan-progress" on /api/events and the summary shows up in /library/scan/status once
# it's done. A second POST while one runs -> TaskAlreadyRunningError -> 409.
@router.post(
    "/scan",
    response_model=TaskStartedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_scan(
    service: ServiceDep, request: ScanRequest | None = None
) -> TaskStartedResponse:
    """Start a library scan."""
    root = request.root_path if request else None
    service.scan_library(root)
    logger.info(f"Library scan requested (root={root or service.default_root})")
    return TaskStartedResponse(task=SCAN_TASK)


@router.get("/scan/status", response_model=TaskStatusResponse)
async def get_scan_status(service: ServiceDep) -> TaskStatusResponse:
    return task_status(
        SCAN_TASK, service.runner.is_running(SCAN_TASK), service.channels.get(SCAN_TASK)
    )


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_orphaned_works(service: ServiceDep) -> CleanupResponse:
    """Remove works whose folder no longer exists on disk."""
    removed = await service.cleanup_orphaned_works()
    return CleanupResponse(removed=removed)


# =============================================================================
# WORKS
# =============================================================================


@router.get("/works", response_model=list[WorkResponse])
async def list_works(
    service: ServiceDep,
    sort: WorkSort = WorkSort.NEWEST,
    q: str | None = Query(default=None, description="Substring search"),
) -> list[WorkResponse]:
    """List works, optionally filtered by a search string."""
    if q and q.strip():
        works = await service.catalog.search_works(q.strip(), sort)
    else:
        works = await service.catalog.get_all_works(sort)
    return [WorkResponse.model_validate(work) for work in works]


@router.get("/works/{work_id}", response_model=WorkDetailResponse)
async def get_work(work_id: int, service: ServiceDep) -> WorkDetailResponse:
    work = await service.catalog.get_work(work_id)
    if work is None:
        raise EntityNotFoundException("Work", work_id)
    return WorkDetailResponse.model_validate(work)


@router.put("/works/{work_id}/metadata", response_model=WorkDetailResponse)
async def update_work_metadata(
    work_id: int, request: UpdateWorkMetadataRequest, service: ServiceDep
) -> WorkDetailResponse:
    """Manually edit title and taxonomy of a work."""
    work = await service.update_work_metadata(
        work_id,
        title=request.title,
        circles=request.circles,
        voice_actors=request.voice_actors,
        tags=request.tags,
    )
    return WorkDetailResponse.model_validate(work)


# Listen up, delete_files=true removes the folder from DISK. The default only forgets the
# work in the catalog (a rescan would bring it back).
@router.delete("/works/{work_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_work(
    work_id: int, service: ServiceDep, delete_files: bool = False
) -> Response:
    await service.delete_work(work_id, delete_files)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/works/{work_id}/tracks", response_model=list[TrackResponse])
async def get_work_tracks(
    work_id: int, service: ServiceDep, include_hidden: bool = False
) -> list[TrackResponse]:
    """Tracks of a work in play order; hidden duplicates only on request."""
    if include_hidden:
        tracks = await service.catalog.get_all_work_tracks(work_id)
    else:
        tracks = await service.get_work_tracks(work_id)
    return [TrackResponse.model_validate(track) for track in tracks]


@router.get("/works/{work_id}/progress", response_model=TrackProgressResponse | None)
async def get_track_progress(
    work_id: int, service: ServiceDep
) -> TrackProgressResponse | None:
    progress = await service.catalog.get_track_progress(work_id)
    if progress is None:
        return None
    return TrackProgressResponse.model_validate(progress)


@router.put("/works/{work_id}/progress", status_code=status.HTTP_204_NO_CONTENT)
async def save_track_progress(
    work_id: int, request: SaveProgressRequest, service: ServiceDep
) -> Response:
    await service.catalog.save_track_progress(
        work_id, request.track_id, request.position_sec
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# FAVORITES & HISTORY
# =============================================================================


@router.get("/favorites", response_model=FavoritesResponse)
async def get_favorites(service: ServiceDep) -> FavoritesResponse:
    favorites = await service.get_favorites()
    return FavoritesResponse(work_ids=sorted(favorites))


@router.post("/works/{work_id}/favorite", response_model=FavoriteToggleResponse)
async def toggle_favorite(work_id: int, service: ServiceDep) -> FavoriteToggleResponse:
    """Flip the favorite flag; the response carries the new state."""
    is_favorite = await service.toggle_favorite(work_id)
    return FavoriteToggleResponse(work_id=work_id, is_favorite=is_favorite)


@router.get("/history", response_model=list[PlayHistoryResponse])
async def get_play_history(
    service: ServiceDep, limit: int = Query(default=20, ge=1, le=500)
) -> list[PlayHistoryResponse]:
    history = await service.get_play_history(limit)
    return [PlayHistoryResponse.model_validate(entry) for entry in history]
