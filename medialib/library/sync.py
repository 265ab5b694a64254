"""
Incremental sync engine.

A sync run moves through the phases

    IDLE -> SCANNING -> DIFFING -> PROCESSING_BATCHES -> RECONCILING -> IDLE

for every root it covers:

    SCANNING            RecursiveScanner walks the root (covers and artist
                        images inherited down the tree).
    DIFFING             Each candidate's fingerprint (name + size, no I/O) is
                        looked up in the cache. A candidate is processed only
                        if it is not cached, or if the cached track has no
                        cover while the candidate now inherits one.
    PROCESSING_BATCHES  Candidates are processed in fixed-size batches on a
                        thread pool. Each batch is written to the cache in one
                        transaction before the next batch starts, then
                        progress is reported.
    RECONCILING         Artist images are flushed, tracks that disappeared
                        from the root are pruned (or handed over to another
                        root holding the same file), and the root's counters
                        and last_sync are persisted.

Only one run may be in flight per engine: the set of root ids being synced
is the guard, and syncing_folder_id is derived from it (None, a root id,
or ALL_ROOTS). A sync requested while another is running raises
SyncInProgressError.

Failure isolation:
    - A file whose metadata cannot be extracted is logged to the sync
      failures report, counted as processed, and not cached (it is retried
      on the next sync).
    - A root without permission, or an unreachable server, ends that root's
      part of the run. Other roots are still synced.
    - A subdirectory that cannot be listed is skipped. New files elsewhere
      are still processed, but nothing is pruned from that root.

Cancellation is cooperative: stop() sets a flag that is checked between
directories while scanning and between batches while processing.

Usage:
    engine = SyncEngine(context, folders)
    report = engine.sync_all(interactive=True, on_progress=progress_bar)
    print(f"{report.processed} processed, {report.failed} failed")
"""

import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

from medialib.core.exceptions import (
    MediaLibError,
    MetadataExtractionError,
    PermissionDeniedError,
    SourceError,
    SyncInProgressError,
)
from medialib.core.logger import get_logger, log_extraction_failure
from medialib.library.context import LibraryContext
from medialib.library.fingerprint import fingerprint_ref
from medialib.library.folders import FolderRegistry
from medialib.library.metadata import detect_image_mime, is_audio_file
from medialib.library.models import (
    ALL_ROOTS,
    UNKNOWN_ARTIST,
    FileRef,
    LibraryFolder,
    ScanCandidate,
    SyncPhase,
    SyncProgress,
    Track,
)
from medialib.library.scanner import IMAGE_EXTENSIONS, RecursiveScanner, pick_cover
from medialib.sources.base import AccessState, Source
from medialib.utils.helpers import now


logger = get_logger(__name__)


ProgressCallback = Callable[[SyncProgress], None]


@dataclass
class FolderSyncResult:
    """
    Outcome of syncing one root.

    Attributes:
        folder_id: The root.
        access: Access check result; anything but GRANTED means the root
                was skipped.
        scanned: Audio files found by the scan.
        skipped: Candidates already cached (no extraction).
        processed: Candidates sent to extraction, failures included.
        failed: Candidates whose extraction failed.
        pruned: Cached tracks removed because their file disappeared.
        rehomed: Cached tracks handed over to another root that still
                 holds the same file.
        unreadable: Directories below the root that could not be listed.
                    When non-zero nothing is pruned and the root's file
                    count and last_sync are left as they were.
        cancelled: The run was stopped during this root.
        error: Root-level failure message, if any.
    """
    folder_id: str
    access: AccessState = AccessState.GRANTED
    scanned: int = 0
    skipped: int = 0
    processed: int = 0
    failed: int = 0
    pruned: int = 0
    rehomed: int = 0
    unreadable: int = 0
    cancelled: bool = False
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.access == AccessState.GRANTED and self.error is None


@dataclass
class SyncReport:
    """Outcome of a sync run over one or more roots."""
    folders: list[FolderSyncResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(f.processed for f in self.folders)

    @property
    def failed(self) -> int:
        return sum(f.failed for f in self.folders)

    @property
    def skipped(self) -> int:
        return sum(f.skipped for f in self.folders)

    @property
    def cancelled(self) -> bool:
        return any(f.cancelled for f in self.folders)


def needs_processing(candidate: ScanCandidate, cover_index: dict[str, bool]) -> bool:
    """
    Diff rule of incremental sync.

    Args:
        candidate: Scanned file.
        cover_index: fingerprint -> cached track has a cover.
    """
    fp = fingerprint_ref(candidate.file_ref)
    if fp not in cover_index:
        return True
    return not cover_index[fp] and candidate.inherited_cover is not None


class SyncEngine:
    """
    Single-flight incremental sync over registered roots.

    Attributes:
        context: Shared library context.
        folders: Folder registry used for access checks and sources.
        phase: Current SyncPhase.
        live_tracks: Optional in-memory track set (fingerprint -> Track)
                     kept up to date after every batch.
    """

    def __init__(
        self,
        context: LibraryContext,
        folders: FolderRegistry,
        live_tracks: dict[str, Track] | None = None
    ) -> None:
        self.context = context
        self.folders = folders
        self.cache = context.cache
        self.live_tracks = live_tracks
        self.phase = SyncPhase.IDLE

        self._guard_lock = threading.Lock()
        self._in_flight: set[str] = set()
        self._full_sync = False
        self._stop = threading.Event()
        self._artist_images: dict[str, tuple[bytes, str | None]] = {}

    # =========================================================================
    # Guard
    # =========================================================================

    @property
    def syncing_folder_id(self) -> str | None:
        """None when idle, ALL_ROOTS during a full sync, else the root id."""
        with self._guard_lock:
            if not self._in_flight:
                return None
            if self._full_sync or len(self._in_flight) > 1:
                return ALL_ROOTS
            return next(iter(self._in_flight))

    @property
    def is_syncing(self) -> bool:
        with self._guard_lock:
            return bool(self._in_flight)

    def _acquire(self, folder_ids: Iterable[str], full: bool) -> None:
        with self._guard_lock:
            if self._in_flight:
                raise SyncInProgressError(
                    "A sync is already in progress",
                    details={"in_flight": sorted(self._in_flight)}
                )
            # A full sync over zero roots still holds the guard
            self._in_flight = set(folder_ids) or {ALL_ROOTS}
            self._full_sync = full
            self._stop.clear()

    def _release(self) -> None:
        with self._guard_lock:
            self._in_flight = set()
            self._full_sync = False
        self.phase = SyncPhase.IDLE

    def stop(self) -> None:
        """Ask the running sync to stop at the next batch boundary."""
        self._stop.set()

    # =========================================================================
    # Entry points
    # =========================================================================

    def sync_all(self, interactive: bool = False, on_progress: ProgressCallback | None = None) -> SyncReport:
        """
        Sync every registered root except manual-import roots.

        Args:
            interactive: Allow permission prompts for local roots.
            on_progress: Receives a SyncProgress after each phase change and batch.

        Raises:
            SyncInProgressError: Another sync is running.
        """
        folders = [f for f in self.folders.list_folders() if not f.is_manual]
        self._acquire([f.id for f in folders], full=True)

        report = SyncReport()
        try:
            logger.info(f"Syncing {len(folders)} library folders")
            for folder in folders:
                result = self._sync_folder(folder, interactive, on_progress, progress_id=ALL_ROOTS)
                report.folders.append(result)
                if result.cancelled:
                    logger.info("Sync stopped")
                    break
        finally:
            self._release()
            self._emit(on_progress, SyncPhase.IDLE, None)

        logger.info(
            f"Sync complete: {report.processed} processed, {report.skipped} unchanged, "
            f"{report.failed} failed"
        )
        return report

    def sync_folder(
        self,
        folder_id: str,
        interactive: bool = True,
        on_progress: ProgressCallback | None = None
    ) -> SyncReport:
        """
        Sync a single root.

        Raises:
            FolderNotFoundError: Unknown id.
            SyncInProgressError: Another sync is running.
        """
        folder = self.folders.get(folder_id)
        self._acquire([folder.id], full=False)

        report = SyncReport()
        try:
            report.folders.append(self._sync_folder(folder, interactive, on_progress, progress_id=folder.id))
        finally:
            self._release()
            self._emit(on_progress, SyncPhase.IDLE, None)
        return report

    def import_files(
        self,
        paths: Iterable[Path],
        name: str | None = None,
        on_progress: ProgressCallback | None = None
    ) -> tuple[LibraryFolder | None, SyncReport]:
        """
        Import individually selected local files into a new manual root.

        Non-audio and missing files are ignored. The files go through the
        same diff and batching as a sync, under the same guard.

        Returns:
            (the new root or None when nothing was importable, report)

        Raises:
            SyncInProgressError: A sync is running.
        """
        files = [Path(p).expanduser().resolve() for p in paths]
        files = [p for p in files if p.is_file() and is_audio_file(p.name)]
        if not files:
            logger.warning("No audio files to import")
            return None, SyncReport()

        directory = Path(os.path.commonpath([str(p.parent) for p in files]))

        # Hold the guard before the root exists, so no sync can pick it up half-made
        self._acquire([ALL_ROOTS], full=False)
        report = SyncReport()
        try:
            folder = self.folders.add_manual(directory, name)
            with self._guard_lock:
                self._in_flight = {folder.id}

            source = self.folders.source_for(folder)
            candidates = self._manual_candidates(source, directory, files)
            self.cache.record_folder_files(
                folder.id, {fingerprint_ref(c.file_ref): c.file_ref.relative_path for c in candidates}
            )
            result = FolderSyncResult(folder_id=folder.id, scanned=len(candidates))
            self._process_candidates(folder, source, candidates, result, on_progress, folder.id)
            self._reconcile(folder, result, None, on_progress, folder.id)
            report.folders.append(result)
        finally:
            self._release()
            self._emit(on_progress, SyncPhase.IDLE, None)

        logger.info(f"Imported {result.processed - result.failed} of {len(files)} files into '{folder.name}'")
        return folder, report

    # =========================================================================
    # Run
    # =========================================================================

    def _emit(
        self,
        on_progress: ProgressCallback | None,
        phase: SyncPhase,
        folder_id: str | None,
        processed: int = 0,
        total: int = 0
    ) -> None:
        self.phase = phase
        if on_progress is not None:
            on_progress(SyncProgress(phase=phase, folder_id=folder_id, processed=processed, total=total))

    def _sync_folder(
        self,
        folder: LibraryFolder,
        interactive: bool,
        on_progress: ProgressCallback | None,
        progress_id: str
    ) -> FolderSyncResult:
        result = FolderSyncResult(folder_id=folder.id)

        result.access = self.folders.check_access(folder, interactive=interactive)
        if result.access != AccessState.GRANTED:
            logger.warning(f"Skipping '{folder.name}': {result.access.value.replace('_', ' ')}")
            return result

        self._emit(on_progress, SyncPhase.SCANNING, progress_id)
        try:
            source = self.folders.source_for(folder)
            scan = RecursiveScanner(source).scan(cancelled=self._stop.is_set)
        except PermissionDeniedError as e:
            self.folders.mark_disconnected(folder.id)
            result.access = AccessState.PERMISSION_DENIED
            result.error = e.message
            logger.error(f"Lost access to '{folder.name}' while scanning: {e.message}")
            return result
        except SourceError as e:
            result.access = AccessState.UNREACHABLE
            result.error = e.message
            logger.error(f"Cannot scan '{folder.name}': {e.message}")
            return result

        result.scanned = len(scan.candidates)
        if scan.cancelled:
            result.cancelled = True
            return result

        result.unreadable = len(scan.unreadable)
        present = None
        if scan.complete:
            files = {fingerprint_ref(c.file_ref): c.file_ref.relative_path for c in scan.candidates}
            self.cache.record_folder_files(folder.id, files)
            present = set(files)
        else:
            logger.warning(
                f"'{folder.name}': {result.unreadable} directories could not be read, "
                f"keeping their cached tracks"
            )

        self._process_candidates(folder, source, scan.candidates, result, on_progress, progress_id)

        self._reconcile(folder, result, present, on_progress, progress_id)
        return result

    def _process_candidates(
        self,
        folder: LibraryFolder,
        source: Source,
        candidates: list[ScanCandidate],
        result: FolderSyncResult,
        on_progress: ProgressCallback | None,
        progress_id: str
    ) -> None:
        self._emit(on_progress, SyncPhase.DIFFING, progress_id)
        cover_index = self.cache.cover_index()

        pending: list[ScanCandidate] = []
        seen: set[str] = set()
        for candidate in candidates:
            fp = fingerprint_ref(candidate.file_ref)
            if fp in seen or not needs_processing(candidate, cover_index):
                result.skipped += 1
                continue
            seen.add(fp)
            pending.append(candidate)

        logger.info(
            f"'{folder.name}': {len(candidates)} files, {len(pending)} to process, "
            f"{result.skipped} unchanged"
        )

        self._artist_images = {}
        self._emit(on_progress, SyncPhase.PROCESSING_BATCHES, progress_id, 0, len(pending))
        if not pending:
            return

        batch_size = self.context.config.sync.batch_size
        workers = max(1, min(self.context.config.sync.max_workers, batch_size))

        with ThreadPoolExecutor(max_workers=workers) as executor:
            for start in range(0, len(pending), batch_size):
                if self._stop.is_set():
                    result.cancelled = True
                    logger.info(f"Sync of '{folder.name}' stopped after {result.processed} files")
                    break

                batch = pending[start:start + batch_size]
                tracks = self._process_batch(executor, folder, source, batch, result)

                stored = self.cache.put(tracks)
                if self.live_tracks is not None:
                    for track in stored:
                        self.live_tracks[track.fingerprint] = track

                result.processed += len(batch)
                self._emit(on_progress, SyncPhase.PROCESSING_BATCHES, progress_id, result.processed, len(pending))

    def _process_batch(
        self,
        executor: ThreadPoolExecutor,
        folder: LibraryFolder,
        source: Source,
        batch: list[ScanCandidate],
        result: FolderSyncResult
    ) -> list[Track]:
        extractor = self.context.extractor
        futures = [(candidate, executor.submit(extractor.extract, candidate, source)) for candidate in batch]

        tracks: list[Track] = []
        for candidate, future in futures:
            path = candidate.file_ref.relative_path
            try:
                track = future.result()
            except MetadataExtractionError as e:
                result.failed += 1
                log_extraction_failure(logger, folder.id, path, e.message)
                continue
            except Exception as e:
                result.failed += 1
                log_extraction_failure(logger, folder.id, path, f"Unexpected error: {e}")
                continue

            tracks.append(track)
            if candidate.inherited_artist_image:
                mime = detect_image_mime(candidate.inherited_artist_image)
                for artist in track.artists:
                    if artist != UNKNOWN_ARTIST:
                        self._artist_images[artist] = (candidate.inherited_artist_image, mime)

        return tracks

    def _reconcile(
        self,
        folder: LibraryFolder,
        result: FolderSyncResult,
        present: set[str] | None,
        on_progress: ProgressCallback | None,
        progress_id: str
    ) -> None:
        """
        Persist per-root bookkeeping.

        Args:
            present: Fingerprints found on the root by a complete scan, or
                     None when the run does not cover the whole root.
        """
        self._emit(on_progress, SyncPhase.RECONCILING, progress_id, result.processed, result.processed)

        artist_images = self._artist_images
        if artist_images:
            written = self.cache.put_artist_images(artist_images)
            logger.debug(f"Stored {written} artist images")
        self._artist_images = {}

        if present is not None and not result.cancelled and self.context.config.sync.prune_missing:
            stale = self.cache.fingerprints_for_folder(folder.id) - present
            if stale:
                self._prune(folder, result, stale)

        track_count = self.cache.count_for_folder(folder.id)
        total_files = folder.total_files_count if result.unreadable else result.scanned
        last_sync = folder.last_sync if result.cancelled or result.unreadable else now()
        self.context.database.update_folder_stats(folder.id, total_files, track_count, last_sync)
        folder.total_files_count = total_files
        folder.track_count = track_count
        folder.last_sync = last_sync

    def _prune(self, folder: LibraryFolder, result: FolderSyncResult, stale: set[str]) -> None:
        """Drop tracks gone from a root, unless another root holds the same file."""
        rehomed = self.cache.rehome(folder.id, stale)
        gone = stale - rehomed
        result.rehomed = len(rehomed)
        result.pruned = self.cache.delete(gone)

        if rehomed:
            tracks = self.cache.get_many(rehomed)
            for owner in {t.folder_id for t in tracks}:
                self.context.database.set_folder_track_count(owner, self.cache.count_for_folder(owner))
            if self.live_tracks is not None:
                for track in tracks:
                    self.live_tracks[track.fingerprint] = track
            logger.info(f"'{folder.name}': {len(rehomed)} tracks moved to other folders holding the same files")

        if self.live_tracks is not None:
            for fp in gone:
                self.live_tracks.pop(fp, None)
        if result.pruned:
            logger.info(f"'{folder.name}': removed {result.pruned} tracks no longer on disk")

    def _manual_candidates(self, source: Source, directory: Path, files: list[Path]) -> list[ScanCandidate]:
        """Scan candidates for selected files, with the cover of each file's own directory."""
        covers: dict[str, bytes | None] = {}
        candidates: list[ScanCandidate] = []

        for path in files:
            relative = path.relative_to(directory).as_posix()
            parent = relative.rsplit("/", 1)[0] if "/" in relative else ""

            if parent not in covers:
                covers[parent] = None
                images = [
                    e for e in source.list_directory(parent)
                    if not e.is_dir and e.name.lower().endswith(IMAGE_EXTENSIONS)
                ]
                cover_ref = pick_cover(images)
                if cover_ref is not None:
                    try:
                        covers[parent] = source.read_file(cover_ref) or None
                    except (OSError, MediaLibError) as e:
                        logger.warning(f"Cannot read image {cover_ref.relative_path}: {e}")

            stat = path.stat()
            candidates.append(ScanCandidate(
                file_ref=FileRef(
                    relative_path=relative,
                    name=path.name,
                    size=stat.st_size,
                    last_modified=stat.st_mtime,
                ),
                folder_id=source.folder_id,
                inherited_cover=covers[parent],
            ))

        return candidates
