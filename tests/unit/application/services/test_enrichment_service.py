"""Tests for MetadataEnrichmentService."""

from typing import Any

import pytest

from voicevault.application.events import EnrichmentProgress
from voicevault.application.services.catalog_service import CatalogService
from voicevault.application.services.enrichment_service import (
    MetadataEnrichmentService,
)
from voicevault.config.settings import EnrichmentSettings
from voicevault.domain.entities import WorkMetadata
from voicevault.domain.exceptions import (
    EntityNotFoundException,
    MetadataLookupError,
    ValidationException,
)
from voicevault.infrastructure.persistence.database import Database


class SleepRecorder:
    """Stand-in for asyncio.sleep that only records the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def enrichment(
    db: Database, fake_lookup: Any, sleeper: SleepRecorder
) -> MetadataEnrichmentService:
    return MetadataEnrichmentService(
        db, fake_lookup, EnrichmentSettings(request_delay=0.5), sleep=sleeper
    )


RAIN = WorkMetadata(
    title="Whispering Rain",
    circle="Night Owls",
    voice_actors=["Alice", "Bob", "Alice"],
    tags=["ASMR", " Sleep "],
)


class TestEnrichWork:
    """Single-work enrichment."""

    async def test_replaces_title_and_taxonomy(
        self,
        enrichment: MetadataEnrichmentService,
        db: Database,
        add_work: Any,
        fake_lookup: Any,
    ) -> None:
        work, _ = await add_work("RJ01234567", external_code="RJ01234567")
        await CatalogService(db).update_work_metadata(work.id, tags="Old Tag")
        fake_lookup.records["RJ01234567"] = RAIN

        metadata = await enrichment.enrich_work(work.id)

        assert metadata is RAIN
        detail = await CatalogService(db).get_work(work.id)
        assert detail is not None
        assert detail.title == "Whispering Rain"
        assert detail.circles == ["Night Owls"]
        assert sorted(detail.voice_actors) == ["Alice", "Bob"]
        assert sorted(detail.tags) == ["ASMR", "Sleep"]
        assert detail.enriched_at is not None

    async def test_lookup_error_propagates_and_changes_nothing(
        self, enrichment: MetadataEnrichmentService, db: Database, add_work: Any
    ) -> None:
        work, _ = await add_work("Untouched", external_code="RJ09999999")

        with pytest.raises(MetadataLookupError):
            await enrichment.enrich_work(work.id)

        detail = await CatalogService(db).get_work(work.id)
        assert detail is not None
        assert detail.title == "Untouched"
        assert detail.enriched_at is None

    async def test_work_without_code_rejected(
        self, enrichment: MetadataEnrichmentService, add_work: Any
    ) -> None:
        work, _ = await add_work("No Code")
        with pytest.raises(ValidationException):
            await enrichment.enrich_work(work.id)

    async def test_missing_work(self, enrichment: MetadataEnrichmentService) -> None:
        with pytest.raises(EntityNotFoundException):
            await enrichment.enrich_work(42)


class TestEnrichAll:
    """Paced batch enrichment."""

    async def test_failures_are_skipped_and_every_item_ticks(
        self,
        enrichment: MetadataEnrichmentService,
        add_work: Any,
        fake_lookup: Any,
        sleeper: SleepRecorder,
    ) -> None:
        codes = ["RJ00000001", "RJ00000002", "RJ00000003", "RJ00000004"]
        for code in codes:
            await add_work(code, external_code=code)
        await add_work("No code")
        # Two of four lookups fail
        fake_lookup.records["RJ00000001"] = WorkMetadata(title="One")
        fake_lookup.records["RJ00000003"] = WorkMetadata(title="Three")
        ticks: list[Any] = []

        succeeded = await enrichment.enrich_all(ticks.append)

        assert succeeded == 2
        assert fake_lookup.calls == codes
        assert ticks == [EnrichmentProgress(current=i, total=4) for i in range(1, 5)]
        assert sleeper.delays == [0.5, 0.5, 0.5]

    async def test_only_unenriched_skips_done_works(
        self,
        enrichment: MetadataEnrichmentService,
        add_work: Any,
        fake_lookup: Any,
    ) -> None:
        done, _ = await add_work("A", external_code="RJ00000011")
        await add_work("B", external_code="RJ00000012")
        fake_lookup.records["RJ00000011"] = WorkMetadata(title="A!")
        fake_lookup.records["RJ00000012"] = WorkMetadata(title="B!")
        await enrichment.enrich_work(done.id)
        fake_lookup.calls.clear()

        succeeded = await enrichment.enrich_all(only_unenriched=True)

        assert succeeded == 1
        assert fake_lookup.calls == ["RJ00000012"]

    async def test_refresh_all_by_default(
        self,
        enrichment: MetadataEnrichmentService,
        add_work: Any,
        fake_lookup: Any,
    ) -> None:
        done, _ = await add_work("A", external_code="RJ00000021")
        fake_lookup.records["RJ00000021"] = WorkMetadata(title="A!")
        await enrichment.enrich_work(done.id)

        assert await enrichment.enrich_all() == 1
        assert fake_lookup.calls == ["RJ00000021", "RJ00000021"]

    async def test_empty_batch(
        self, enrichment: MetadataEnrichmentService, sleeper: SleepRecorder
    ) -> None:
        ticks: list[Any] = []
        assert await enrichment.enrich_all(ticks.append) == 0
        assert ticks == []
        assert sleeper.delays == []
