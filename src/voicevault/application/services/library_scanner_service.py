# Hey future me - this service turns an arbitrary directory tree into Works and Tracks!
# Key features:
# 1. WORK ROOTS - nearest ancestor with an external code ("RJ01234567/mp3/01.mp3" and
#    "RJ01234567/wav/01.wav" are ONE work), else the file's own directory
# 2. DUPLICATE FORMATS - all copies become Track rows, only the best format is visible
#    ("Main/01.wav" and "Bonus/01.wav" are two tracks, "mp3/01.mp3" and "wav/01.wav" one)
# 3. IDEMPOTENT RESCAN - works matched by dir_path (fallback external_code), tracks by path;
#    rescans update duration/number/visibility and never touch title or taxonomy
# 4. ONE TRANSACTION PER WORK - a crash mid-scan leaves every finished work intact
# 5. NOT CANCELLABLE - the walk runs to completion once started (known limitation)
"""Library scanner service for cataloging release folders."""

import asyncio
import logging
import os
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mutagen import File as MutagenFile  # type: ignore[attr-defined]
from sqlalchemy.exc import SQLAlchemyError

from voicevault.application.events import ScanProgress
from voicevault.application.workers.background_tasks import ProgressCallback
from voicevault.config import Settings
from voicevault.domain.entities import Work
from voicevault.domain.exceptions import LibraryIOError
from voicevault.domain.value_objects.folder_parsing import (
    choose_visible_paths,
    compile_code_pattern,
    find_cover_image,
    is_audio_file,
    parse_track_number,
    resolve_work_root,
)
from voicevault.infrastructure.persistence.database import Database
from voicevault.infrastructure.persistence.repositories import (
    TrackRepository,
    WorkRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class WorkCandidate:
    """Audio files grouped under one work root, before touching the DB."""

    root: Path
    external_code: str | None
    files: list[Path] = field(default_factory=list)


@dataclass
class ScanSummary:
    """Terminal result of a library scan."""

    works_found: int = 0
    works_created: int = 0
    tracks_created: int = 0
    tracks_updated: int = 0
    errors: int = 0


class LibraryScannerService:
    """Service for scanning a library root and reconciling it with the catalog.

    Works with BackgroundTaskRunner for background processing - pass the
    runner's progress callback as ``progress``.
    """

    def __init__(self, db: Database, settings: Settings) -> None:
        """Initialize scanner service.

        Args:
            db: Database (one session_scope per work)
            settings: Application settings (code pattern, worker count)
        """
        self.db = db
        self.settings = settings
        self._code_pattern: re.Pattern[str] = compile_code_pattern(
            settings.library.external_code_pattern
        )

    # =========================================================================
    # MAIN SCAN METHODS
    # =========================================================================

    async def scan(
        self,
        root_path: str | Path,
        progress: ProgressCallback | None = None,
    ) -> ScanSummary:
        """Scan ``root_path`` and reconcile every work found under it.

        Args:
            root_path: Library root directory
            progress: Called with ScanProgress(count) after each work commits

        Returns:
            ScanSummary with created/updated counters

        Raises:
            LibraryIOError: If root_path is missing or not a directory
        """
        root = Path(root_path).expanduser()
        if not root.is_dir():
            raise LibraryIOError(f"Library root is not a directory: {root}", str(root))
        root = root.resolve()

        logger.info(f"Scanning library at: {root}")
        summary = ScanSummary()

        candidates, walk_errors = await asyncio.to_thread(self._discover, root)
        summary.works_found = len(candidates)
        summary.errors += walk_errors
        logger.info(f"Found {len(candidates)} work folders under {root}")

        loop = asyncio.get_running_loop()
        with ThreadPoolExecutor(
            max_workers=self.settings.library.scan_workers,
            thread_name_prefix="voicevault-scan",
        ) as executor:
            processed = 0
            for candidate in candidates:
                try:
                    await self._process_candidate(candidate, summary, loop, executor)
                except (OSError, SQLAlchemyError) as e:
                    summary.errors += 1
                    logger.warning(
                        f"Skipping work folder {candidate.root}: {e}", exc_info=True
                    )
                processed += 1
                if progress is not None:
                    progress(ScanProgress(count=processed))

        logger.info(
            f"Library scan complete: {summary.works_found} works found, "
            f"{summary.works_created} new works, {summary.tracks_created} new tracks, "
            f"{summary.tracks_updated} tracks updated, {summary.errors} errors"
        )
        return summary

    async def cleanup_orphaned_works(self) -> int:
        """Delete works whose directory disappeared from disk.

        Each delete is its own transaction (the cascade removes tracks, progress,
        history, playlist membership and taxonomy joins with it).

        Returns:
            Number of works removed
        """
        async with self.db.session_scope() as session:
            works = await WorkRepository(session).list_dir_paths()

        missing = await asyncio.to_thread(
            lambda: [(wid, path) for wid, path in works if not os.path.isdir(path)]
        )

        removed = 0
        for work_id, dir_path in missing:
            async with self.db.session_scope() as session:
                repo = WorkRepository(session)
                # Re-check inside the transaction; a concurrent delete already did our job
                if not await repo.exists(work_id):
                    continue
                await repo.delete(work_id)
            removed += 1
            logger.info(f"Removed orphaned work {work_id} ({dir_path})")

        logger.info(f"Orphan cleanup removed {removed} works")
        return removed

    # =========================================================================
    # DISCOVERY (runs in a worker thread)
    # =========================================================================

    def _discover(self, root: Path) -> tuple[list[WorkCandidate], int]:
        """Walk the tree and group audio files by work root.

        Unreadable directories are logged and skipped via os.walk's onerror.
        """
        errors: list[OSError] = []

        def on_error(error: OSError) -> None:
            errors.append(error)
            logger.warning(f"Cannot read {error.filename}: {error.strerror}")

        candidates: dict[Path, WorkCandidate] = {}
        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
            dirnames.sort()
            audio = sorted(name for name in filenames if is_audio_file(name))
            if not audio:
                continue
            directory = Path(dirpath)
            work_root, code = resolve_work_root(directory, root, self._code_pattern)
            candidate = candidates.get(work_root)
            if candidate is None:
                candidate = WorkCandidate(root=work_root, external_code=code)
                candidates[work_root] = candidate
            candidate.files.extend(directory / name for name in audio)

        ordered = sorted(candidates.values(), key=lambda c: str(c.root))
        return ordered, len(errors)

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    async def _process_candidate(
        self,
        candidate: WorkCandidate,
        summary: ScanSummary,
        loop: asyncio.AbstractEventLoop,
        executor: ThreadPoolExecutor,
    ) -> None:
        """Probe files, then upsert the work and its tracks in ONE transaction."""
        durations = await asyncio.gather(
            *(
                loop.run_in_executor(executor, self._probe_duration, path)
                for path in candidate.files
            )
        )
        cover = await asyncio.to_thread(find_cover_image, candidate.root)
        cover_path = str(cover) if cover is not None else None
        paths = [str(path) for path in candidate.files]
        visible = choose_visible_paths(paths, candidate.root)

        async with self.db.session_scope() as session:
            work_repo = WorkRepository(session)
            track_repo = TrackRepository(session)

            work = await self._match_or_create_work(
                work_repo, candidate, cover_path, summary
            )

            existing = await track_repo.get_by_paths(paths)
            for path, file_path, duration in zip(
                paths, candidate.files, durations, strict=True
            ):
                track_number = parse_track_number(file_path.name)
                is_visible = path in visible
                track = existing.get(path)
                if track is None:
                    await track_repo.add(
                        work_id=work.id,
                        title=file_path.stem,
                        path=path,
                        duration_sec=duration,
                        track_number=track_number,
                        is_visible=is_visible,
                    )
                    summary.tracks_created += 1
                    continue

                if (
                    track.duration_sec != duration
                    or track.track_number != track_number
                    or track.is_visible != is_visible
                ):
                    await track_repo.update_scan_fields(
                        track.id, duration, track_number, is_visible
                    )
                    summary.tracks_updated += 1

    async def _match_or_create_work(
        self,
        work_repo: WorkRepository,
        candidate: WorkCandidate,
        cover_path: str | None,
        summary: ScanSummary,
    ) -> Work:
        """Find the work for a candidate (dir_path, then external code) or insert it.

        Hey future me - a work found by external code whose recorded folder still exists
        is a SECOND copy of the same release somewhere else in the library. Its files join
        the existing work, but dir_path stays put; otherwise two copies would keep stealing
        dir_path from each other on every rescan. Only a vanished folder (the release was
        moved) gets its dir_path rewritten.
        """
        dir_path = str(candidate.root)
        work = await work_repo.get_by_dir_path(dir_path)
        if work is None and candidate.external_code:
            work = await work_repo.get_by_external_code(candidate.external_code)
            if work is not None and os.path.isdir(work.dir_path):
                logger.debug(
                    f"{dir_path} is another copy of {candidate.external_code} "
                    f"(work {work.id} at {work.dir_path})"
                )
                return work

        if work is None:
            summary.works_created += 1
            return await work_repo.add(
                title=candidate.root.name,
                dir_path=dir_path,
                external_code=candidate.external_code,
                cover_path=cover_path,
            )

        await work_repo.update_location(
            work.id, dir_path, cover_path if cover_path is not None else work.cover_path
        )
        return work

    def _probe_duration(self, file_path: Path) -> int:
        """Whole seconds of audio according to mutagen; 0 when unreadable.

        Runs in the scan thread pool.
        """
        try:
            audio: Any = MutagenFile(file_path)
        except Exception as e:
            # mutagen raises a zoo of format-specific errors; any of them means "unknown"
            logger.warning(f"Cannot read audio info from {file_path}: {e}")
            return 0
        if audio is None or getattr(audio, "info", None) is None:
            logger.warning(f"Unrecognised audio format: {file_path}")
            return 0
        length = getattr(audio.info, "length", 0) or 0
        return int(length)
