"""Metadata enrichment service.

Hey future me - this pipeline fills in title/circle/voice actors/tags for works that carry
an external code. The lookup itself sits behind IMetadataLookup (HTTP adapter in
infrastructure, fakes in tests). Two entry points:

1. enrich_work(work_id): one lookup, errors PROPAGATE to the caller.
2. enrich_all(progress): every work with a code, one at a time, a pacing delay BETWEEN
   lookups, a {current, total} tick after EVERY item (failures included), per-item
   failures logged and skipped. Returns how many works were actually updated.

Refresh-all is the default on purpose (a re-run picks up upstream corrections);
only_unenriched=True restricts the batch to works never enriched before.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError

from voicevault.application.events import EnrichmentProgress
from voicevault.application.services.catalog_service import (
    normalize_names,
    replace_work_metadata,
)
from voicevault.application.workers.background_tasks import ProgressCallback
from voicevault.config.settings import EnrichmentSettings
from voicevault.domain.entities import WorkMetadata
from voicevault.domain.exceptions import (
    EntityNotFoundException,
    MetadataLookupError,
    ValidationException,
)
from voicevault.domain.ports import IMetadataLookup
from voicevault.infrastructure.persistence.database import Database
from voicevault.infrastructure.persistence.repositories import WorkRepository

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class MetadataEnrichmentService:
    """Fetch external metadata records and merge them into the catalog."""

    def __init__(
        self,
        db: Database,
        lookup: IMetadataLookup,
        settings: EnrichmentSettings,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        """Initialize enrichment service.

        Args:
            db: Database (one transaction per enriched work)
            lookup: External metadata collaborator
            settings: Enrichment settings (request_delay)
            sleep: Pacing sleeper; tests pass a recorder instead of waiting
        """
        self.db = db
        self.lookup = lookup
        self.settings = settings
        self._sleep = sleep

    async def enrich_work(self, work_id: int) -> WorkMetadata:
        """Look up one work and replace its title and taxonomy.

        Raises:
            EntityNotFoundException: If the work doesn't exist
            ValidationException: If the work has no external code
            MetadataLookupError: If the lookup fails
        """
        async with self.db.session_scope() as session:
            work = await WorkRepository(session).get_by_id(work_id)
        if work is None:
            raise EntityNotFoundException("Work", work_id)
        if not work.external_code:
            raise ValidationException(f"Work {work_id} has no external code")

        metadata = await self.lookup.fetch(work.external_code)
        await self._apply(work_id, metadata)
        logger.info(f"Enriched work {work_id} ({work.external_code}): {metadata.title}")
        return metadata

    async def _apply(self, work_id: int, metadata: WorkMetadata) -> None:
        # One transaction: title, the three taxonomy sets and the enriched_at stamp
        async with self.db.session_scope() as session:
            repo = WorkRepository(session)
            if not await repo.exists(work_id):
                raise EntityNotFoundException("Work", work_id)
            await replace_work_metadata(
                session,
                work_id,
                metadata.title,
                normalize_names([metadata.circle] if metadata.circle else []),
                normalize_names(metadata.voice_actors),
                normalize_names(metadata.tags),
            )
            await repo.mark_enriched(work_id)

    async def enrich_all(
        self,
        progress: ProgressCallback | None = None,
        only_unenriched: bool = False,
    ) -> int:
        """Enrich every work that has an external code.

        Args:
            progress: Called with EnrichmentProgress(current, total) after each item
            only_unenriched: Skip works that were enriched before

        Returns:
            Number of works successfully updated
        """
        async with self.db.session_scope() as session:
            works = await WorkRepository(session).list_with_external_code(
                only_unenriched=only_unenriched
            )

        total = len(works)
        logger.info(
            f"Batch enrichment started: {total} works "
            f"({'unenriched only' if only_unenriched else 'refresh all'})"
        )

        succeeded = 0
        for index, work in enumerate(works, start=1):
            code = work.external_code or ""
            try:
                metadata = await self.lookup.fetch(code)
                await self._apply(work.id, metadata)
            except MetadataLookupError as e:
                logger.warning(f"Skipping work {work.id}: {e.message}")
            except EntityNotFoundException:
                logger.warning(f"Work {work.id} was deleted during batch enrichment")
            except SQLAlchemyError as e:
                logger.error(f"Failed to store metadata for work {work.id}: {e}")
            else:
                succeeded += 1

            if progress is not None:
                progress(EnrichmentProgress(current=index, total=total))

            # Pace BETWEEN lookups only; no pointless wait after the last one
            if index < total and self.settings.request_delay > 0:
                await self._sleep(self.settings.request_delay)

        logger.info(f"Batch enrichment finished: {succeeded}/{total} works updated")
        return succeeded
