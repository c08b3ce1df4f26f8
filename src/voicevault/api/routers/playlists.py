"""Playlist endpoints (track granularity)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from voicevault.api.dependencies import get_app_service
from voicevault.api.schemas import (
    AddPlaylistTrackRequest,
    CreatePlaylistRequest,
    PlaylistMembershipResponse,
    PlaylistResponse,
    PlaylistTrackResponse,
)
from voicevault.application.services.app_service import AppService

router = APIRouter(prefix="/playlists", tags=["Playlists"])

ServiceDep = Annotated[AppService, Depends(get_app_service)]


@router.get("", response_model=list[PlaylistResponse])
async def list_playlists(service: ServiceDep) -> list[PlaylistResponse]:
    """All playlists, newest first."""
    playlists = await service.get_all_playlists()
    return [PlaylistResponse.model_validate(p) for p in playlists]


@router.post("", response_model=PlaylistResponse, status_code=status.HTTP_201_CREATED)
async def create_playlist(
    request: CreatePlaylistRequest, service: ServiceDep
) -> PlaylistResponse:
    playlist = await service.create_playlist(request.name)
    return PlaylistResponse.model_validate(playlist)


@router.delete("/{playlist_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_playlist(playlist_id: int, service: ServiceDep) -> Response:
    await service.delete_playlist(playlist_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{playlist_id}/tracks", response_model=list[PlaylistTrackResponse])
async def get_playlist_tracks(
    playlist_id: int, service: ServiceDep
) -> list[PlaylistTrackResponse]:
    entries = await service.get_playlist_tracks(playlist_id)
    return [PlaylistTrackResponse.model_validate(e) for e in entries]


# Hey future me - adding a track that's already in the playlist is NOT an error. The
# response just says changed=false (the membership was already there).
@router.post("/{playlist_id}/tracks", response_model=PlaylistMembershipResponse)
async def add_track_to_playlist(
    playlist_id: int, request: AddPlaylistTrackRequest, service: ServiceDep
) -> PlaylistMembershipResponse:
    added = await service.add_track_to_playlist(playlist_id, request.track_id)
    return PlaylistMembershipResponse(
        playlist_id=playlist_id, track_id=request.track_id, changed=added
    )


@router.delete(
    "/{playlist_id}/tracks/{track_id}", response_model=PlaylistMembershipResponse
)
async def remove_track_from_playlist(
    playlist_id: int, track_id: int, service: ServiceDep
) -> PlaylistMembershipResponse:
    removed = await service.remove_track_from_playlist(playlist_id, track_id)
    return PlaylistMembershipResponse(
        playlist_id=playlist_id, track_id=track_id, changed=removed
    )
