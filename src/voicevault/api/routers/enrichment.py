"""Metadata enrichment endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from voicevault.api.dependencies import get_app_service
from voicevault.api.schemas import (
    BatchEnrichmentRequest,
    TaskStartedResponse,
    TaskStatusResponse,
    WorkMetadataResponse,
    task_status,
)
from voicevault.application.services.app_service import ENRICHMENT_TASK, AppService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/enrichment", tags=["Enrichment"])

ServiceDep = Annotated[AppService, Depends(get_app_service)]


# Yo, single-work enrichment is synchronous from the client's view: the lookup runs inside
# the request. A failed lookup comes back as 502 (MetadataLookupError), a work without an
# external code as 422.
@router.post("/works/{work_id}", response_model=WorkMetadataResponse)
async def enrich_work(work_id: int, service: ServiceDep) -> WorkMetadataResponse:
    """Fetch external metadata for one work and write it to the catalog."""
    metadata = await service.scrape_work_metadata(work_id)
    return WorkMetadataResponse.model_validate(metadata)


@router.post(
    "/batch",
    response_model=TaskStartedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_batch_enrichment(
    service: ServiceDep, request: BatchEnrichmentRequest | None = None
) -> TaskStartedResponse:
    """Start enriching every work that has an external code."""
    only_unenriched = request.only_unenriched if request else False
    service.batch_scrape_metadata(only_unenriched)
    logger.info(f"Batch enrichment requested (only_unenriched={only_unenriched})")
    return TaskStartedResponse(task=ENRICHMENT_TASK)


@router.get("/batch/status", response_model=TaskStatusResponse)
async def get_batch_status(service: ServiceDep) -> TaskStatusResponse:
    return task_status(
        ENRICHMENT_TASK,
        service.runner.is_running(ENRICHMENT_TASK),
        service.channels.get(ENRICHMENT_TASK),
    )
