"""Application lifecycle: wiring at startup, cleanup at shutdown.

Hey future me - build_container() is the ONE place where concrete adapters meet the
application layer. Tests call it with a fake lookup and fake backend factory; main.py
calls it with the real ones. Everything the routers need hangs off the container,
which sits on app.state.container.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from functools import partial
from pathlib import Path

from fastapi import FastAPI

from voicevault.application.events import EventBus
from voicevault.application.playback.engine import BackendFactory, PlaybackEngine
from voicevault.application.playback.session import PlayerSession
from voicevault.application.services.app_service import AppService
from voicevault.application.services.catalog_service import CatalogService
from voicevault.application.services.enrichment_service import (
    MetadataEnrichmentService,
)
from voicevault.application.services.library_scanner_service import (
    LibraryScannerService,
)
from voicevault.application.workers.background_tasks import BackgroundTaskRunner
from voicevault.config import Settings
from voicevault.domain.ports import IMetadataLookup
from voicevault.infrastructure.audio.backends import create_backend
from voicevault.infrastructure.integrations.metadata_lookup import HttpMetadataLookup
from voicevault.infrastructure.persistence.database import Database

logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    """Every long-lived object of one running instance."""

    settings: Settings
    db: Database
    event_bus: EventBus
    runner: BackgroundTaskRunner
    lookup: IMetadataLookup
    service: AppService

    async def close(self) -> None:
        """Stop playback and background work, then release network and DB."""
        await self.service.player.close()
        await self.runner.shutdown()
        await self.lookup.close()
        await self.db.close()
        logger.info("Container closed")


def build_container(
    settings: Settings,
    lookup: IMetadataLookup | None = None,
    backend_factory: BackendFactory | None = None,
    db: Database | None = None,
) -> AppContainer:
    """Wire services, adapters and the player session."""
    db = db or Database(settings)
    event_bus = EventBus()
    runner = BackgroundTaskRunner(event_bus)
    lookup = lookup or HttpMetadataLookup(settings.enrichment)
    backend_factory = backend_factory or partial(
        create_backend, settings=settings.playback
    )

    catalog = CatalogService(db)
    engine = PlaybackEngine(settings.playback, event_bus, backend_factory)
    service = AppService(
        catalog=catalog,
        scanner=LibraryScannerService(db, settings),
        enrichment=MetadataEnrichmentService(db, lookup, settings.enrichment),
        player=PlayerSession(engine, catalog),
        runner=runner,
        default_root=settings.library.root_path,
    )
    return AppContainer(
        settings=settings,
        db=db,
        event_bus=event_bus,
        runner=runner,
        lookup=lookup,
        service=service,
    )


def _ensure_sqlite_directory(settings: Settings) -> None:
    """Create the parent directory of a file-based SQLite database."""
    url = settings.database.url
    if not url.startswith("sqlite") or ":memory:" in url:
        return
    _, _, raw_path = url.partition(":///")
    if not raw_path:
        return
    parent = Path(raw_path).expanduser().parent
    if str(parent) not in ("", "."):
        parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Ensured SQLite parent directory exists: %s", parent)


async def start_container(container: AppContainer) -> None:
    """Migrate the schema and restore persisted preferences."""
    _ensure_sqlite_directory(container.settings)
    await container.db.upgrade_schema()
    await container.service.player.restore_preferences()
    logger.info("Database ready: %s", container.settings.database.url)


# Listen future me, everything before `yield` runs at STARTUP, everything after at SHUTDOWN.
# The container is created in create_app() (so tests can inject one); lifespan only starts
# and closes it.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    container: AppContainer = app.state.container
    logger.info("Starting application: %s", container.settings.app_name)
    await start_container(container)
    try:
        yield
    finally:
        logger.info("Shutting down application")
        await container.close()
