"""
Core module for medialib.

This module provides the foundational components used throughout the library:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - database: Thread-safe SQLite database for persistent storage
    - logger: Logging system with multiple outputs

Usage:
    from medialib.core import (
        Config, load_config,
        Database,
        setup_logging, get_logger,
        MediaLibError, ConfigError, DatabaseError
    )
"""

from medialib.core.config import (
    Config,
    LibraryConfig,
    LoggingConfig,
    MatchingConfig,
    SyncConfig,
    WebDAVConfig,
    load_config,
)
from medialib.core.database import Database
from medialib.core.exceptions import (
    ConfigError,
    DatabaseError,
    FolderNotFoundError,
    LibraryImportError,
    MediaLibError,
    MetadataExtractionError,
    PlaylistNotFoundError,
    PermissionDeniedError,
    SourceError,
    SourceUnreachableError,
    SyncInProgressError,
)
from medialib.core.logger import (
    get_logger,
    log_extraction_failure,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    # Config
    "Config",
    "LibraryConfig",
    "SyncConfig",
    "WebDAVConfig",
    "MatchingConfig",
    "LoggingConfig",
    "load_config",
    # Database
    "Database",
    # Exceptions
    "MediaLibError",
    "ConfigError",
    "DatabaseError",
    "SourceError",
    "PermissionDeniedError",
    "SourceUnreachableError",
    "MetadataExtractionError",
    "SyncInProgressError",
    "FolderNotFoundError",
    "LibraryImportError",
    "PlaylistNotFoundError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_extraction_failure",
    "shutdown_logging",
]
