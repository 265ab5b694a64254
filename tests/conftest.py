"""Test configuration and fixtures"""

import threading
import tempfile
from pathlib import Path

import pytest

from medialib.core.config import Config, LibraryConfig, LoggingConfig, SyncConfig
from medialib.core.database import Database
from medialib.core.exceptions import MetadataExtractionError
from medialib.library.context import LibraryContext
from medialib.library.folders import FolderRegistry
from medialib.library.metadata import MetadataExtractor, TagInfo
from medialib.library.models import Track
from medialib.library.sync import SyncEngine


class FakeExtractor(MetadataExtractor):
    """
    Extractor that never parses audio.

    Tracks are built from the file name and inherited artwork only. Files
    whose name is in `failing` raise MetadataExtractionError. Every call is
    recorded in `calls`.
    """

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = set(failing or ())
        self.calls: list[str] = []
        self.before_extract = None
        self._lock = threading.Lock()

    def extract(self, candidate, source) -> Track:
        ref = candidate.file_ref
        with self._lock:
            self.calls.append(ref.relative_path)
        if self.before_extract is not None:
            self.before_extract(candidate)
        if ref.name in self.failing:
            raise MetadataExtractionError(f"Cannot read {ref.relative_path}")
        return self.build_track(candidate, TagInfo())


def write_tree(root: Path, files: dict[str, bytes]) -> Path:
    """Create files (relative POSIX paths -> content) below root."""
    for relative, content in files.items():
        path = root.joinpath(*relative.split("/"))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    return root


def make_track(name: str, artist: str = "Artist", size: int = 1000, **kwargs) -> Track:
    """Track with sensible defaults for tests."""
    file_name = kwargs.pop("file_name", f"{name}.mp3")
    fields = dict(
        fingerprint=f"{file_name}-{size}",
        name=name,
        artist=artist,
        album=kwargs.pop("album", "Album"),
        file_name=file_name,
        relative_path=kwargs.pop("relative_path", file_name),
        folder_id=kwargs.pop("folder_id", "folder1"),
        size=size,
    )
    fields.update(kwargs)
    return Track(**fields)


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def config(temp_dir):
    """Configuration writing everything below temp_dir"""
    return Config(
        library=LibraryConfig(
            database_path=temp_dir / "data" / "library.db",
            cache_directory=temp_dir / "data" / "cache",
        ),
        sync=SyncConfig(batch_size=3, max_workers=3),
        logging=LoggingConfig(directory=temp_dir / "logs"),
    )


@pytest.fixture
def database(temp_dir):
    """Fresh database"""
    db = Database(temp_dir / "test.db")
    yield db
    db.close()


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def context(config, extractor):
    """Library context using the fake extractor"""
    ctx = LibraryContext.from_config(config, extractor=extractor)
    yield ctx
    ctx.close()


@pytest.fixture
def folders(context):
    return FolderRegistry(context)


@pytest.fixture
def engine(context, folders):
    return SyncEngine(context, folders, live_tracks={})


@pytest.fixture
def music_dir(temp_dir):
    """Local music directory with covers at two levels"""
    return write_tree(temp_dir / "Music", {
        "Album A/cover.jpg": b"cover-a",
        "Album A/01 - Artist One - First.mp3": b"a" * 100,
        "Album A/02 - Artist One - Second.mp3": b"b" * 200,
        "Album A/Bonus/03 - Artist One - Third.mp3": b"c" * 300,
        "Album B/folder.png": b"cover-b",
        "Album B/Artist Two - Fourth.flac": b"d" * 400,
        "Loose/Untitled.ogg": b"e" * 500,
        "Loose/notes.txt": b"not audio",
    })
