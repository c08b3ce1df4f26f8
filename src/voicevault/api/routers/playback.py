"""Playback endpoints: transport, queue navigation, volume, sleep timer.

Hey future me - these are COMMANDS. The live view (position ticks, spectrum, state
changes) comes over /api/events, not by polling /status in a loop. /status is for a
client that just connected and needs the current picture once.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from voicevault.api.dependencies import get_app_service
from voicevault.api.schemas import (
    PlaybackStatusResponse,
    PlayFileRequest,
    PlayWorkRequest,
    RepeatResponse,
    SeekRequest,
    ShuffleResponse,
    SleepTimerRequest,
    TrackResponse,
    VolumeRequest,
    VolumeResponse,
)
from voicevault.application.services.app_service import AppService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/playback", tags=["Playback"])

ServiceDep = Annotated[AppService, Depends(get_app_service)]


def _status(service: AppService) -> PlaybackStatusResponse:
    session = service.player.status()
    playback = session.playback
    return PlaybackStatusResponse(
        state=playback.state,
        path=playback.path,
        backend=playback.backend,
        position=playback.position,
        duration=playback.duration,
        volume=playback.volume,
        sleep_timer_remaining=playback.sleep_timer_remaining,
        track=(
            TrackResponse.model_validate(session.track) if session.track else None
        ),
        queue_index=session.queue_index,
        queue_length=session.queue_length,
        shuffle=session.shuffle,
        repeat=session.repeat,
    )


@router.get("/status", response_model=PlaybackStatusResponse)
async def get_status(service: ServiceDep) -> PlaybackStatusResponse:
    return _status(service)


# =============================================================================
# STARTING PLAYBACK
# =============================================================================


@router.post("/work", response_model=PlaybackStatusResponse)
async def play_work(
    request: PlayWorkRequest, service: ServiceDep
) -> PlaybackStatusResponse:
    """Queue a work's tracks and play (optionally resuming the stored position)."""
    await service.play_work(request.work_id, request.start_track_id, request.resume)
    return _status(service)


@router.post("/file", response_model=PlaybackStatusResponse)
async def play_file(
    request: PlayFileRequest, service: ServiceDep
) -> PlaybackStatusResponse:
    """Play one file by path, outside of any queue."""
    backend = await service.play_track(request.path)
    logger.info(f"Playing {request.path} via {backend.value} backend")
    return _status(service)


# =============================================================================
# TRANSPORT
# =============================================================================


@router.post("/pause", response_model=PlaybackStatusResponse)
async def pause(service: ServiceDep) -> PlaybackStatusResponse:
    await service.pause_track()
    return _status(service)


@router.post("/resume", response_model=PlaybackStatusResponse)
async def resume(service: ServiceDep) -> PlaybackStatusResponse:
    await service.resume_track()
    return _status(service)


@router.post("/stop", response_model=PlaybackStatusResponse)
async def stop(service: ServiceDep) -> PlaybackStatusResponse:
    await service.player.stop()
    return _status(service)


@router.post("/seek", response_model=PlaybackStatusResponse)
async def seek(request: SeekRequest, service: ServiceDep) -> PlaybackStatusResponse:
    await service.seek_track(request.position_sec)
    return _status(service)


@router.post("/next", response_model=PlaybackStatusResponse)
async def next_track(service: ServiceDep) -> PlaybackStatusResponse:
    await service.player.next()
    return _status(service)


@router.post("/previous", response_model=PlaybackStatusResponse)
async def previous_track(service: ServiceDep) -> PlaybackStatusResponse:
    """Restart the track after 3 s of play, else go back one track."""
    await service.player.previous()
    return _status(service)


# =============================================================================
# SETTINGS
# =============================================================================


@router.get("/volume", response_model=VolumeResponse)
async def get_volume(service: ServiceDep) -> VolumeResponse:
    return VolumeResponse(volume=service.get_volume())


@router.put("/volume", response_model=VolumeResponse)
async def set_volume(request: VolumeRequest, service: ServiceDep) -> VolumeResponse:
    await service.set_volume(request.volume)
    return VolumeResponse(volume=service.get_volume())


@router.post("/shuffle", response_model=ShuffleResponse)
async def toggle_shuffle(service: ServiceDep) -> ShuffleResponse:
    return ShuffleResponse(shuffle=service.player.toggle_shuffle())


@router.post("/repeat", response_model=RepeatResponse)
async def cycle_repeat(service: ServiceDep) -> RepeatResponse:
    """Cycle repeat off -> all -> one -> off."""
    return RepeatResponse(repeat=service.player.cycle_repeat())


@router.post("/sleep-timer", response_model=PlaybackStatusResponse)
async def start_sleep_timer(
    request: SleepTimerRequest, service: ServiceDep
) -> PlaybackStatusResponse:
    """Start (or replace) the sleep timer; minutes must be one of the presets."""
    service.player.start_sleep_timer(request.minutes)
    return _status(service)


@router.delete("/sleep-timer", response_model=PlaybackStatusResponse)
async def cancel_sleep_timer(service: ServiceDep) -> PlaybackStatusResponse:
    service.player.cancel_sleep_timer()
    return _status(service)
