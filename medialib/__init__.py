"""
medialib: incremental music library sync and track resolution.

Turns trees of audio files, reachable through a local directory or a
WebDAV server, into a deduplicated, persistently cached catalog of
tracks, and keeps it up to date as the storage changes.

Architecture:
    A sync run goes through these phases for each library folder:

    SCANNING (library/scanner.py)
        - Walk the folder depth-first through its Source adapter
        - Pick cover and artist images, inherit them down the tree

    DIFFING (library/sync.py)
        - Fingerprint every file from name + size (no I/O)
        - Keep only files the cache does not know, or that gained a cover

    PROCESSING_BATCHES (library/sync.py, library/metadata.py)
        - Read tags with mutagen, fall back to the file name
        - Batches of 15 on a thread pool, one cache transaction per batch

    RECONCILING (library/sync.py)
        - Store artist images, prune tracks that disappeared
        - Persist folder counters and last sync time

Modules:
    core/       - Configuration, database, logging, exceptions, progress bar
    library/    - Models, scanner, cache, sync engine, resolver, playlists,
                  export/import
    sources/    - Local directory and WebDAV source adapters
    matching/   - Text normalization and "Title - Artist" matching
    utils/      - Path sanitizing, ids, timestamps
    cli.py      - Command-line interface

Usage:
    Command Line:
        medialib add-local ~/Music
        medialib add-webdav https://nas.local/dav --root /Music --user me
        medialib sync
        medialib match playlist.txt --playlist "Road trip"

    Python API:
        from medialib.core import load_config, setup_logging
        from medialib.library.context import LibraryContext
        from medialib.library.folders import FolderRegistry
        from medialib.library.sync import SyncEngine

        config = load_config()
        setup_logging(config.logging.directory)
        context = LibraryContext.from_config(config)
        folders = FolderRegistry(context)
        folders.add_local(Path("~/Music").expanduser())
        report = SyncEngine(context, folders).sync_all()

Dependencies:
    - mutagen: Audio tag parsing
    - requests: WebDAV PROPFIND / GET
    - Pillow: Cover image type detection
    - zhconv: Optional Traditional/Simplified Chinese folding
    - click: CLI framework
    - tqdm: Progress bars
    - colorama: Colored console log prefixes
    - pyyaml: Configuration file parsing
    - python-dotenv: .env support for WebDAV passwords
"""

__version__ = "0.1.0"
__author__ = "medialib"
__license__ = "MIT"

# Convenience imports for common usage
from medialib.core import (
    Config,
    ConfigError,
    Database,
    DatabaseError,
    MediaLibError,
    PermissionDeniedError,
    SourceUnreachableError,
    SyncInProgressError,
    get_logger,
    load_config,
    setup_logging,
)
from medialib.library import LibraryFolder, Track, fingerprint

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "Database",
    "setup_logging",
    "get_logger",
    # Exceptions
    "MediaLibError",
    "ConfigError",
    "DatabaseError",
    "PermissionDeniedError",
    "SourceUnreachableError",
    "SyncInProgressError",
    # Models
    "LibraryFolder",
    "Track",
    "fingerprint",
]
