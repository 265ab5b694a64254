"""Test the incremental sync engine"""

import os
from dataclasses import replace
from pathlib import Path
from unittest.mock import Mock

import pytest

from medialib.core.exceptions import FolderNotFoundError, SyncInProgressError
from medialib.library.models import ALL_ROOTS, FileRef, ScanCandidate, SyncPhase, WebDAVCredentials
from medialib.library.sync import needs_processing
from medialib.sources.base import AccessState

from conftest import write_tree


FIRST = "01 - Artist One - First.mp3-100"
THIRD = "03 - Artist One - Third.mp3-300"
FOURTH = "Artist Two - Fourth.flac-400"
UNTITLED = "Untitled.ogg-500"


class TestNeedsProcessing:
    """Test the diff rule"""

    def candidate(self, cover=None):
        return ScanCandidate(FileRef("a/x.mp3", "x.mp3", size=5), "f", inherited_cover=cover)

    def test_new_file(self):
        assert needs_processing(self.candidate(), {})

    def test_cached_file(self):
        assert not needs_processing(self.candidate(), {"x.mp3-5": True})
        assert not needs_processing(self.candidate(), {"x.mp3-5": False})

    def test_cover_appeared(self):
        assert needs_processing(self.candidate(b"img"), {"x.mp3-5": False})
        assert not needs_processing(self.candidate(b"img"), {"x.mp3-5": True})


class TestFullSync:
    """Test a full sync over local roots"""

    def test_first_sync(self, engine, folders, context, music_dir):
        folder = folders.add_local(music_dir)

        report = engine.sync_all()

        assert report.processed == 5
        assert report.failed == 0
        assert not report.cancelled
        assert len(context.cache.get_all()) == 5

        stored = folders.get(folder.id)
        assert stored.total_files_count == 5
        assert stored.track_count == 5
        assert stored.last_sync is not None

    def test_tracks_built_with_inherited_covers(self, engine, folders, context, music_dir):
        folders.add_local(music_dir)
        engine.sync_all()

        cache = context.cache
        first = cache.get_by_fingerprint(FIRST)
        assert (first.artist, first.name) == ("Artist One", "First")
        assert first.relative_path == "Album A/01 - Artist One - First.mp3"
        assert first.cover_blob == b"cover-a"
        assert cache.get_by_fingerprint(THIRD).cover_blob == b"cover-a"
        assert cache.get_by_fingerprint(FOURTH).cover_blob == b"cover-b"
        assert cache.get_by_fingerprint(UNTITLED).cover_blob is None

    def test_second_sync_is_incremental(self, engine, folders, extractor, music_dir):
        folders.add_local(music_dir)
        engine.sync_all()
        extractor.calls.clear()

        report = engine.sync_all()

        assert extractor.calls == []
        assert report.skipped == 5
        assert report.processed == 0

    def test_cover_added_later(self, engine, folders, context, extractor, music_dir):
        """A cached track without cover is reprocessed once a cover shows up"""
        folders.add_local(music_dir)
        engine.sync_all()
        extractor.calls.clear()

        (music_dir / "Loose" / "cover.jpg").write_bytes(b"cover-loose")
        engine.sync_all()

        assert extractor.calls == ["Loose/Untitled.ogg"]
        assert context.cache.get_by_fingerprint(UNTITLED).cover_blob == b"cover-loose"

    def test_duplicates_processed_once(self, engine, folders, context, extractor, temp_dir):
        root = write_tree(temp_dir / "dupes", {"A/x.mp3": b"1" * 10, "B/x.mp3": b"1" * 10})
        folders.add_local(root)

        report = engine.sync_all()

        assert extractor.calls == ["A/x.mp3"]
        assert report.skipped == 1
        assert len(context.cache.get_all()) == 1

    def test_live_tracks_updated(self, engine, folders, music_dir):
        folders.add_local(music_dir)
        engine.sync_all()
        assert set(engine.live_tracks) == {
            FIRST, "02 - Artist One - Second.mp3-200", THIRD, FOURTH, UNTITLED
        }

    def test_no_roots(self, engine):
        report = engine.sync_all()
        assert report.folders == []
        assert not engine.is_syncing

    def test_artist_images_stored(self, engine, folders, context, temp_dir):
        root = write_tree(temp_dir / "lib", {
            "Singer/artist.jpg": b"portrait",
            "Singer/Album/Singer X - Song.mp3": b"1",
        })
        folders.add_local(root)
        engine.sync_all()
        assert context.cache.get_artist_metadata("singer x").image_blob == b"portrait"


class TestFailureIsolation:
    """Test that one bad file or root does not abort the run"""

    def test_failed_file_not_cached(self, engine, folders, context, extractor, music_dir):
        extractor.failing = {"Untitled.ogg"}
        folders.add_local(music_dir)

        report = engine.sync_all()

        assert report.processed == 5
        assert report.failed == 1
        assert context.cache.get_by_fingerprint(UNTITLED) is None
        assert len(context.cache.get_all()) == 4

    def test_failed_file_retried(self, engine, folders, extractor, music_dir):
        extractor.failing = {"Untitled.ogg"}
        folders.add_local(music_dir)
        engine.sync_all()

        extractor.failing = set()
        extractor.calls.clear()
        report = engine.sync_all()

        assert extractor.calls == ["Loose/Untitled.ogg"]
        assert report.failed == 0

    def test_unexpected_error_isolated(self, engine, folders, context, extractor, music_dir):
        def explode(candidate):
            if candidate.file_ref.name == "Untitled.ogg":
                raise RuntimeError("boom")

        extractor.before_extract = explode
        folders.add_local(music_dir)

        report = engine.sync_all()

        assert report.failed == 1
        assert len(context.cache.get_all()) == 4

    def test_disconnected_root_skipped(self, engine, folders, context, extractor, music_dir, temp_dir):
        bad = folders.add_local(music_dir)
        folders.mark_disconnected(bad.id)
        good = folders.add_local(write_tree(temp_dir / "other", {"x.mp3": b"1"}))

        report = engine.sync_all()

        results = {r.folder_id: r for r in report.folders}
        assert results[bad.id].access == AccessState.PERMISSION_DENIED
        assert results[good.id].processed == 1
        assert extractor.calls == ["x.mp3"]

    def test_lost_handle_marks_disconnected(self, engine, folders, context, music_dir):
        """Without a live grant a non-interactive sync cannot read the root"""
        folder = folders.add_local(music_dir)
        context.directory_handles.clear()

        report = engine.sync_all()

        assert report.folders[0].access == AccessState.PERMISSION_DENIED
        assert folders.get(folder.id).disconnected

    def test_permission_prompt(self, engine, folders, context, music_dir):
        folder = folders.add_local(music_dir)
        context.directory_handles.clear()
        context.prompt = lambda path: True

        report = engine.sync_folder(folder.id, interactive=True)

        assert report.processed == 5
        assert not folders.get(folder.id).disconnected

    def test_unreachable_webdav_does_not_abort(self, engine, folders, context, music_dir):
        context.session = Mock()
        context.session.request.return_value = Mock(status_code=503, content=b"")
        dav = folders.add_webdav(WebDAVCredentials("https://nas.local/dav", "/Music"))
        local = folders.add_local(music_dir)

        report = engine.sync_all()

        results = {r.folder_id: r for r in report.folders}
        assert results[dav.id].access == AccessState.UNREACHABLE
        assert not results[dav.id].succeeded
        assert not folders.get(dav.id).disconnected
        assert results[local.id].processed == 5


class TestGuard:
    """Test single-flight and cancellation"""

    def test_concurrent_sync_rejected(self, engine, folders, extractor, music_dir):
        folder = folders.add_local(music_dir)
        rejected = []
        observed = []

        def reenter(candidate):
            observed.append(engine.syncing_folder_id)
            try:
                engine.sync_folder(folder.id)
            except SyncInProgressError as e:
                rejected.append(e)

        extractor.before_extract = reenter
        engine.sync_all()

        assert len(rejected) == 5
        assert set(observed) == {ALL_ROOTS}
        assert engine.syncing_folder_id is None

    def test_single_folder_id(self, engine, folders, extractor, music_dir):
        folder = folders.add_local(music_dir)
        observed = []
        extractor.before_extract = lambda candidate: observed.append(engine.syncing_folder_id)

        engine.sync_folder(folder.id)

        assert set(observed) == {folder.id}
        assert not engine.is_syncing

    def test_guard_released_after_error(self, engine, folders, context, music_dir):
        folders.add_local(music_dir)
        context.cache.cover_index = Mock(side_effect=RuntimeError("db gone"))
        with pytest.raises(RuntimeError):
            engine.sync_all()
        assert not engine.is_syncing
        assert engine.phase == SyncPhase.IDLE

    def test_unknown_folder(self, engine):
        with pytest.raises(FolderNotFoundError):
            engine.sync_folder("nope")
        assert not engine.is_syncing

    def test_stop_between_batches(self, engine, folders, context, extractor, music_dir):
        folder = folders.add_local(music_dir)
        extractor.before_extract = lambda candidate: engine.stop()

        report = engine.sync_all()

        # batch_size is 3: the first batch completes, the second never starts
        assert report.cancelled
        assert report.processed == 3
        assert len(context.cache.get_all()) == 3
        assert folders.get(folder.id).last_sync is None

    def test_resume_after_stop(self, engine, folders, context, extractor, music_dir):
        folders.add_local(music_dir)
        extractor.before_extract = lambda candidate: engine.stop()
        engine.sync_all()

        extractor.before_extract = None
        extractor.calls.clear()
        report = engine.sync_all()

        assert len(extractor.calls) == 2
        assert not report.cancelled
        assert len(context.cache.get_all()) == 5


class TestProgress:
    """Test progress events"""

    def test_batch_events(self, engine, folders, music_dir):
        folders.add_local(music_dir)
        events = []

        engine.sync_all(on_progress=events.append)

        phases = [e.phase for e in events]
        assert phases[0] == SyncPhase.SCANNING
        assert phases[-1] == SyncPhase.IDLE
        assert SyncPhase.RECONCILING in phases

        batches = [(e.processed, e.total) for e in events if e.phase == SyncPhase.PROCESSING_BATCHES]
        assert batches == [(0, 5), (3, 5), (5, 5)]
        assert all(e.folder_id == ALL_ROOTS for e in events[:-1])

    def test_percent(self, engine, folders, music_dir):
        folders.add_local(music_dir)
        events = []
        engine.sync_all(on_progress=events.append)
        percents = [e.percent for e in events if e.phase == SyncPhase.PROCESSING_BATCHES]
        assert percents == [0, 60, 100]


class TestPruning:
    """Test removal of tracks whose file disappeared"""

    def test_missing_file_pruned(self, engine, folders, context, music_dir):
        folder = folders.add_local(music_dir)
        engine.sync_all()

        (music_dir / "Loose" / "Untitled.ogg").unlink()
        report = engine.sync_all()

        assert report.folders[0].pruned == 1
        assert context.cache.get_by_fingerprint(UNTITLED) is None
        assert UNTITLED not in engine.live_tracks
        assert folders.get(folder.id).track_count == 4

    def test_moved_file_kept(self, engine, folders, context, extractor, music_dir):
        """Moving a file keeps its fingerprint, so it is neither pruned nor reprocessed"""
        folders.add_local(music_dir)
        engine.sync_all()
        extractor.calls.clear()

        (music_dir / "Moved").mkdir()
        (music_dir / "Loose" / "Untitled.ogg").rename(music_dir / "Moved" / "Untitled.ogg")
        report = engine.sync_all()

        assert extractor.calls == []
        assert report.folders[0].pruned == 0
        assert context.cache.get_by_fingerprint(UNTITLED) is not None

    def test_pruning_disabled(self, engine, folders, context, config, music_dir):
        context.config = replace(config, sync=replace(config.sync, prune_missing=False))
        folders.add_local(music_dir)
        engine.sync_all()

        (music_dir / "Loose" / "Untitled.ogg").unlink()
        engine.sync_all()

        assert context.cache.get_by_fingerprint(UNTITLED) is not None

    def test_unreadable_directory_keeps_tracks(self, engine, folders, context, music_dir, monkeypatch):
        """A directory that cannot be listed stops pruning for the whole root"""
        folder = folders.add_local(music_dir)
        engine.sync_all()
        before = folders.get(folder.id)
        date_added = context.cache.get_by_fingerprint(UNTITLED).date_added

        real_scandir = os.scandir

        def scandir(path):
            if Path(path).name == "Loose":
                raise PermissionError(13, "Permission denied", str(path))
            return real_scandir(path)

        monkeypatch.setattr(os, "scandir", scandir)
        (music_dir / "Album B" / "Artist Two - Fourth.flac").unlink()
        write_tree(music_dir, {"Album B/New.mp3": b"n" * 7})

        result = engine.sync_all().folders[0]

        assert result.unreadable == 1
        assert result.pruned == 0
        assert result.processed == 1
        assert context.cache.get_by_fingerprint(UNTITLED).date_added == date_added
        assert context.cache.get_by_fingerprint(FOURTH) is not None
        assert context.cache.get_by_fingerprint("New.mp3-7") is not None

        stored = folders.get(folder.id)
        assert stored.total_files_count == before.total_files_count
        assert stored.last_sync == before.last_sync
        assert stored.track_count == 6
        assert not stored.disconnected

    def test_file_kept_by_other_root(self, engine, folders, context, temp_dir):
        """A track whose file left one root moves to another root holding a copy"""
        root_a = write_tree(temp_dir / "A", {"x.mp3": b"x" * 10})
        root_b = write_tree(temp_dir / "B", {"Copies/x.mp3": b"x" * 10})
        a = folders.add_local(root_a)
        b = folders.add_local(root_b)

        engine.sync_folder(a.id)
        (root_a / "x.mp3").unlink()
        engine.sync_folder(b.id)
        result = engine.sync_folder(a.id).folders[0]

        assert (result.pruned, result.rehomed) == (0, 1)
        track = context.cache.get_by_fingerprint("x.mp3-10")
        assert track.folder_id == b.id
        assert track.relative_path == "Copies/x.mp3"
        assert engine.live_tracks["x.mp3-10"].folder_id == b.id
        assert folders.get(a.id).track_count == 0
        assert folders.get(b.id).track_count == 1

    def test_file_gone_everywhere_pruned(self, engine, folders, context, temp_dir):
        root_a = write_tree(temp_dir / "A", {"x.mp3": b"x" * 10})
        root_b = write_tree(temp_dir / "B", {"x.mp3": b"x" * 10})
        a = folders.add_local(root_a)
        b = folders.add_local(root_b)
        engine.sync_folder(a.id)
        engine.sync_folder(b.id)

        (root_b / "x.mp3").unlink()
        engine.sync_folder(b.id)
        (root_a / "x.mp3").unlink()
        result = engine.sync_folder(a.id).folders[0]

        assert (result.pruned, result.rehomed) == (1, 0)
        assert context.cache.get_by_fingerprint("x.mp3-10") is None


class TestImportFiles:
    """Test importing individually selected files"""

    def test_import(self, engine, folders, context, music_dir):
        loose = music_dir / "Loose"
        folder, report = engine.import_files([loose / "Untitled.ogg", loose / "notes.txt"])

        assert folder.is_manual
        assert report.processed == 1
        track = context.cache.get_by_fingerprint(UNTITLED)
        assert track.folder_id == folder.id
        assert track.relative_path == "Untitled.ogg"

    def test_import_uses_directory_cover(self, engine, context, music_dir):
        album = music_dir / "Album A"
        engine.import_files([album / "01 - Artist One - First.mp3"])
        assert context.cache.get_by_fingerprint(FIRST).cover_blob == b"cover-a"

    def test_import_nothing(self, engine, folders, music_dir):
        folder, report = engine.import_files([music_dir / "Loose" / "notes.txt", music_dir / "missing.mp3"])
        assert folder is None
        assert report.folders == []
        assert folders.list_folders() == []

    def test_manual_root_skipped_by_full_sync(self, engine, extractor, music_dir):
        folder, _ = engine.import_files([music_dir / "Loose" / "Untitled.ogg"])
        extractor.calls.clear()

        report = engine.sync_all()

        assert folder.id not in [r.folder_id for r in report.folders]
        assert extractor.calls == []

    def test_import_rejected_while_syncing(self, engine, folders, extractor, music_dir):
        folders.add_local(music_dir)
        rejected = []

        def reenter(candidate):
            try:
                engine.import_files([music_dir / "Loose" / "Untitled.ogg"])
            except SyncInProgressError as e:
                rejected.append(e)

        extractor.before_extract = reenter
        engine.sync_all()

        assert len(rejected) == 5
        assert len(folders.list_folders()) == 1
