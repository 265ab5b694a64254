"""
Exception classes for medialib.

This module defines all custom exceptions used throughout the library.
Each exception carries a human-readable message plus an optional ``details``
dictionary with context for logging.

Exception Hierarchy:
    MediaLibError (base)
        ConfigError - Configuration file issues
        DatabaseError - SQLite persistence issues
        SourceError - Source root access issues
            PermissionDeniedError - Local directory access revoked
            SourceUnreachableError - WebDAV network/auth failure
        MetadataExtractionError - Single file could not be indexed
        SyncInProgressError - Another sync already holds the guard
        FolderNotFoundError - Unknown source root id
        LibraryImportError - Export document cannot be restored

Note:
    A disconnected source root is NOT an exception. It is a durable flag on
    the LibraryFolder record (see medialib.library.models).
"""


class MediaLibError(Exception):
    """
    Base exception for all medialib errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (paths, URLs, ids).

    Example:
        try:
            engine.sync_all()
        except MediaLibError as e:
            logger.error(f"Sync failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional context.
                     Common keys include:
                     - 'folder_id': Source root involved in the error
                     - 'path': File or directory path
                     - 'url': Remote URL that caused the error
                     - 'original_error': The underlying exception text
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(MediaLibError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - Explicit config path does not exist
        - config.yaml has invalid YAML syntax
        - Invalid field values (e.g., non-positive batch size)
    """
    pass


class DatabaseError(MediaLibError):
    """
    Raised when the SQLite library database cannot be opened or written.

    This is a CRITICAL error: without the cache we cannot tell which files
    were already indexed.
    """
    pass


class SourceError(MediaLibError):
    """
    Base class for failures reaching a source root.

    Root-level failures abort that root's portion of a sync but never
    abort sibling roots.
    """
    pass


class PermissionDeniedError(SourceError):
    """
    Raised when a local directory handle has no read permission.

    Recoverable: the user must explicitly reconnect the root. Public seams
    (sync engine, resolver) convert this into a PERMISSION_DENIED outcome
    instead of propagating it.
    """
    pass


class SourceUnreachableError(SourceError):
    """
    Raised when a WebDAV server cannot be reached or rejects the credentials.

    Attributes:
        status_code: HTTP status code if the server answered, else None.
        is_auth_error: True for 401/403 responses.

    Example:
        raise SourceUnreachableError(
            "PROPFIND failed with HTTP 401",
            details={'url': url},
            status_code=401
        )
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        status_code: int | None = None
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code
        self.is_auth_error = status_code in (401, 403)


class MetadataExtractionError(MediaLibError):
    """
    Raised when a single audio file cannot be turned into a Track.

    This is a NON-CRITICAL error. The sync engine logs it, counts the file
    as processed and writes no cache entry, so the file is retried on the
    next sync.
    """
    pass


class SyncInProgressError(MediaLibError):
    """
    Raised when a sync or import is requested while another one is running.

    Only one sync may be in flight per process.
    """
    pass


class FolderNotFoundError(MediaLibError):
    """Raised when a source root id is not registered."""
    pass


class LibraryImportError(MediaLibError):
    """
    Raised when an export document cannot be restored.

    Common causes:
        - Not valid JSON
        - Missing 'version' field or unsupported version
        - Arrays of the wrong shape
    """
    pass


class PlaylistNotFoundError(MediaLibError):
    """Raised when a playlist id does not exist."""
    pass
