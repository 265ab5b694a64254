"""
Library context.

One LibraryContext owns every shared collaborator of the engine: the
configuration, the database, the track cache and its display handles,
the metadata extractor, the text normalizer, the live directory handles
of local roots, the HTTP session used for WebDAV and the permission
prompt. Components receive the context in their constructor; nothing is
held in module-level state.

Usage:
    context = LibraryContext.from_config(load_config(), prompt=ask_user)
    folders = FolderRegistry(context)
    engine = SyncEngine(context, folders)
"""

from pathlib import Path

import requests

from medialib.core.config import Config
from medialib.core.database import Database
from medialib.core.logger import get_logger
from medialib.library.blobs import DisplayHandleRegistry
from medialib.library.cache import TrackCache
from medialib.library.metadata import MetadataExtractor
from medialib.matching.normalize import TextNormalizer
from medialib.sources.local import DirectoryHandle, PermissionPrompt


logger = get_logger(__name__)


class LibraryContext:
    """
    Explicitly owned state shared by the library components.

    Attributes:
        config: Loaded configuration.
        database: SQLite database.
        handles: Display handle registry.
        cache: Track cache.
        extractor: Metadata extractor (anything with extract(candidate, source)).
        normalizer: Text normalizer used for search and matching.
        prompt: Permission prompt for local roots, or None (non-interactive).
        session: HTTP session shared by WebDAV sources, or None for one per source.
        directory_handles: Live DirectoryHandle per local root id.
    """

    def __init__(
        self,
        config: Config,
        database: Database,
        extractor: MetadataExtractor | None = None,
        prompt: PermissionPrompt | None = None,
        session: requests.Session | None = None
    ) -> None:
        self.config = config
        self.database = database
        self.handles = DisplayHandleRegistry()
        self.cache = TrackCache(database, self.handles)
        self.extractor = extractor or MetadataExtractor()
        self.normalizer = TextNormalizer(config.matching.fold_traditional_chinese)
        self.prompt = prompt
        self.session = session
        self.directory_handles: dict[str, DirectoryHandle] = {}

    @classmethod
    def from_config(
        cls,
        config: Config,
        extractor: MetadataExtractor | None = None,
        prompt: PermissionPrompt | None = None,
        session: requests.Session | None = None
    ) -> "LibraryContext":
        """Open (creating if needed) the database and cache directory named by config."""
        database_path = config.library.database_path
        database_path.parent.mkdir(parents=True, exist_ok=True)
        config.library.cache_directory.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Opening library database {database_path}")
        return cls(config, Database(database_path), extractor, prompt, session)

    @property
    def cache_directory(self) -> Path:
        return self.config.library.cache_directory

    def close(self) -> None:
        self.handles.revoke_all()
        self.directory_handles.clear()
        self.database.close()
