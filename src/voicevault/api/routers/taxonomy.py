"""Taxonomy endpoints (tags, circles, voice actors)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from voicevault.api.dependencies import get_app_service
from voicevault.api.schemas import TaxonomyCountResponse, WorkResponse
from voicevault.application.services.app_service import AppService

router = APIRouter(prefix="/taxonomy", tags=["Taxonomy"])

ServiceDep = Annotated[AppService, Depends(get_app_service)]


@router.get("/tags", response_model=list[TaxonomyCountResponse])
async def get_tags(service: ServiceDep) -> list[TaxonomyCountResponse]:
    """All tags with their work counts, most used first."""
    counts = await service.get_tags_with_count()
    return [TaxonomyCountResponse.model_validate(c) for c in counts]


@router.get("/circles", response_model=list[TaxonomyCountResponse])
async def get_circles(service: ServiceDep) -> list[TaxonomyCountResponse]:
    counts = await service.get_circles_with_count()
    return [TaxonomyCountResponse.model_validate(c) for c in counts]


@router.get("/voice-actors", response_model=list[TaxonomyCountResponse])
async def get_voice_actors(service: ServiceDep) -> list[TaxonomyCountResponse]:
    counts = await service.get_voice_actors_with_count()
    return [TaxonomyCountResponse.model_validate(c) for c in counts]


# Hey future me - ?tag_id=1&tag_id=2 means works carrying BOTH tags (AND, not OR).
@router.get("/tags/works", response_model=list[WorkResponse])
async def get_works_by_tags(
    service: ServiceDep, tag_id: Annotated[list[int] | None, Query()] = None
) -> list[WorkResponse]:
    works = await service.get_works_by_tags(tag_id or [])
    return [WorkResponse.model_validate(w) for w in works]


@router.get("/circles/{circle_id}/works", response_model=list[WorkResponse])
async def get_works_by_circle(
    circle_id: int, service: ServiceDep
) -> list[WorkResponse]:
    works = await service.get_works_by_circle(circle_id)
    return [WorkResponse.model_validate(w) for w in works]


@router.get("/voice-actors/{voice_actor_id}/works", response_model=list[WorkResponse])
async def get_works_by_voice_actor(
    voice_actor_id: int, service: ServiceDep
) -> list[WorkResponse]:
    works = await service.get_works_by_voice_actor(voice_actor_id)
    return [WorkResponse.model_validate(w) for w in works]
