"""Shared fixtures: temporary catalog database, library trees, fake collaborators.

Hey future me - NOTHING here touches a real audio device or the network. Audio backends
and the metadata lookup are fakes; the database is a throwaway SQLite file per test
created straight from ORM metadata (no Alembic run).
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import pytest

from voicevault.application.events import EventBus
from voicevault.config import Settings
from voicevault.config.settings import (
    DatabaseSettings,
    EnrichmentSettings,
    LibrarySettings,
    PlaybackSettings,
)
from voicevault.domain.entities import BackendKind, Track, Work, WorkMetadata
from voicevault.domain.exceptions import MetadataLookupError, PlaybackError
from voicevault.domain.ports import (
    EndCallback,
    IAudioBackend,
    IMetadataLookup,
    PositionCallback,
)
from voicevault.infrastructure.persistence.database import Database
from voicevault.infrastructure.persistence.repositories import (
    TrackRepository,
    WorkRepository,
)

# =============================================================================
# FAKES
# =============================================================================


class FakeLookup(IMetadataLookup):
    """In-memory metadata collaborator; unknown codes fail like a 404."""

    def __init__(self, records: dict[str, WorkMetadata] | None = None) -> None:
        self.records = dict(records or {})
        self.calls: list[str] = []
        self.closed = False

    async def fetch(self, external_code: str) -> WorkMetadata:
        self.calls.append(external_code)
        record = self.records.get(external_code)
        if record is None:
            raise MetadataLookupError(external_code, "not found")
        return record

    async def close(self) -> None:
        self.closed = True


class FakeBackend(IAudioBackend):
    """Scriptable audio backend. Tests move ``pos`` / ``done`` by hand."""

    def __init__(
        self,
        kind: BackendKind,
        refuse: str | None = None,
        duration: float | None = 120.0,
        journal: list[tuple["FakeBackend", str]] | None = None,
    ) -> None:
        self.kind = kind
        self._journal = journal if journal is not None else []
        self.pushes_position = kind == BackendKind.FALLBACK
        self._refuse = refuse
        self._duration = duration
        self.path: str | None = None
        self.volume: float | None = None
        self.pos = 0.0
        self.done = False
        self.playing = False
        self.closed = False
        self.on_position: PositionCallback | None = None
        self.on_end: EndCallback | None = None
        self.calls: list[str] = []

    def _record(self, call: str) -> None:
        self.calls.append(call)
        self._journal.append((self, call))

    def open(
        self,
        path: str,
        volume: float,
        on_position: PositionCallback | None = None,
        on_end: EndCallback | None = None,
    ) -> None:
        self._record("open")
        if self._refuse is not None:
            raise PlaybackError(path, [(self.kind, self._refuse)])
        self.path = path
        self.volume = volume
        self.on_position = on_position
        self.on_end = on_end

    def play(self) -> None:
        self._record("play")
        self.playing = True

    def pause(self) -> None:
        self._record("pause")
        self.playing = False

    def seek(self, seconds: float) -> None:
        self._record(f"seek:{seconds}")
        self.pos = seconds

    def set_volume(self, volume: float) -> None:
        self.volume = volume

    def position(self) -> float:
        return self.pos

    @property
    def duration(self) -> float | None:
        return self._duration

    @property
    def finished(self) -> bool:
        return self.done

    def spectrum(self) -> list[float]:
        return [0.5] * 8

    def close(self) -> None:
        self._record("close")
        self.playing = False
        self.closed = True


class FakeBackendFactory:
    """Backend factory recording every backend it hands out.

    ``refuse`` maps a backend kind to the reason every backend of that kind gives
    when asked to open a file.
    """

    def __init__(self, refuse: dict[BackendKind, str] | None = None) -> None:
        self.refuse = dict(refuse or {})
        self.created: list[FakeBackend] = []
        # Every backend call in order, across all backends
        self.journal: list[tuple[FakeBackend, str]] = []

    def __call__(self, kind: BackendKind) -> FakeBackend:
        backend = FakeBackend(
            kind, refuse=self.refuse.get(kind), journal=self.journal
        )
        self.created.append(backend)
        return backend

    @property
    def attempts(self) -> list[BackendKind]:
        """Kinds in the order open() was tried."""
        return [b.kind for b in self.created if "open" in b.calls]

    @property
    def active(self) -> FakeBackend | None:
        """Last backend that opened successfully and is still open."""
        for backend in reversed(self.created):
            if backend.path is not None and not backend.closed:
                return backend
        return None


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def library_root(tmp_path: Path) -> Path:
    root = tmp_path / "library"
    root.mkdir()
    return root


@pytest.fixture
def settings(tmp_path: Path, library_root: Path) -> Settings:
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"),
        library=LibrarySettings(root_path=library_root, scan_workers=2),
        enrichment=EnrichmentSettings(request_delay=0.0),
        playback=PlaybackSettings(spectrum_interval=0.01),
    )


@pytest.fixture
async def db(settings: Settings) -> AsyncGenerator[Database, None]:
    database = Database(settings)
    await database.create_tables()
    yield database
    await database.close()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def fake_lookup() -> FakeLookup:
    return FakeLookup()


@pytest.fixture
def backend_factory() -> FakeBackendFactory:
    return FakeBackendFactory()


@pytest.fixture
def make_file() -> Callable[..., Path]:
    """Create a file (and its parents) with some bytes in it."""

    def _make(path: Path, size: int = 16) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\x00" * size)
        return path

    return _make


SeedWork = Callable[..., Awaitable[tuple[Work, list[Track]]]]


@pytest.fixture
def add_work(db: Database, tmp_path: Path) -> SeedWork:
    """Insert a work with ``tracks`` visible tracks straight through the repositories.

    The work folder is created on disk so orphan cleanup leaves it alone.
    """
    counter = 0

    async def _add(
        title: str = "Work",
        tracks: int = 2,
        external_code: str | None = None,
    ) -> tuple[Work, list[Track]]:
        nonlocal counter
        counter += 1
        folder = tmp_path / "seeded" / f"{counter:03d}"
        folder.mkdir(parents=True)
        async with db.session_scope() as session:
            work = await WorkRepository(session).add(
                title=title, dir_path=str(folder), external_code=external_code
            )
            rows = [
                await TrackRepository(session).add(
                    work_id=work.id,
                    title=f"{title} {n:02d}",
                    path=str(folder / f"{n:02d}.wav"),
                    duration_sec=60,
                    track_number=n,
                )
                for n in range(1, tracks + 1)
            ]
        return work, rows

    return _add
