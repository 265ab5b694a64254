"""
Source adapter interface.

A source root is reached through exactly one Source implementation,
selected explicitly from LibraryFolder.kind when the root is registered
(see medialib.sources.create_source). Both variants expose the same
capability set:

    check_access()     -> AccessState, never raises
    list_directory()   -> entries of one directory
    enumerate_tree()   -> every file below the root, depth-first
    read_file()        -> bytes of one file (optionally a byte range)
    local_copy()       -> filesystem path usable by the tag parser / player
    test_connection()  -> ConnectionResult, never raises

Operations other than check_access() and test_connection() raise
PermissionDeniedError / SourceUnreachableError when the root cannot be
accessed. Callers are expected to call check_access() first.

list_directory() raises for a subdirectory too. Whether such a failure
concerns that directory alone or the whole root is decided by
is_directory_failure().
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator

from medialib.core.exceptions import SourceError, SourceUnreachableError
from medialib.core.logger import get_logger
from medialib.library.models import FileRef, SourceKind


logger = get_logger(__name__)


def is_directory_failure(error: SourceError) -> bool:
    """
    Whether a failed listing below the root concerns only that directory.

    A local directory without read permission, or a WebDAV collection
    answering 403/404, is one unreadable directory. A network failure or
    any other HTTP status means the server as a whole is in trouble.
    """
    if isinstance(error, SourceUnreachableError):
        return error.status_code in (403, 404)
    return True


class AccessState(str, Enum):
    """Result of checking a root before touching it."""
    GRANTED = "granted"
    PERMISSION_DENIED = "permission_denied"
    UNREACHABLE = "unreachable"


@dataclass
class ConnectionResult:
    """Structured outcome of test_connection(), suitable for inline display."""
    success: bool
    message: str


class Source(ABC):
    """
    Capability set shared by every source root.

    Attributes:
        folder_id: Id of the LibraryFolder this source serves.
        kind: SourceKind of the implementation.
    """

    kind: SourceKind

    def __init__(self, folder_id: str) -> None:
        self.folder_id = folder_id

    @abstractmethod
    def check_access(self, interactive: bool = False) -> AccessState:
        """
        Verify the root can be read right now.

        Args:
            interactive: Allow asking the user (local permission prompt).
        """

    @abstractmethod
    def list_directory(self, relative_path: str = "") -> list[FileRef]:
        """List one directory, sorted by name."""

    @abstractmethod
    def read_file(self, ref: FileRef, byte_range: tuple[int, int] | None = None) -> bytes:
        """
        Read a file's bytes.

        Args:
            ref: File to read.
            byte_range: Optional inclusive (start, end) byte range.
        """

    @abstractmethod
    def local_copy(self, ref: FileRef) -> Path:
        """Return a local filesystem path holding the file's content."""

    @abstractmethod
    def test_connection(self) -> ConnectionResult:
        """Probe the root without raising."""

    def enumerate_tree(self, relative_path: str = "") -> Iterator[FileRef]:
        """
        Yield every file below relative_path, depth-first.

        Directories are descended sequentially, one branch at a time.
        Unreadable subdirectories are left out.
        """
        try:
            entries = self.list_directory(relative_path)
        except SourceError as e:
            if not relative_path or not is_directory_failure(e):
                raise
            logger.warning(f"Skipping unreadable directory {relative_path}: {e.message}")
            return

        for entry in entries:
            if entry.is_dir:
                yield from self.enumerate_tree(entry.relative_path)
            else:
                yield entry

    def locate(self, file_name: str, size: int | None = None) -> FileRef | None:
        """
        Find a file anywhere below the root by name (and size, if given).

        Used to re-locate a cached track whose stored relative path no
        longer exists.
        """
        for ref in self.enumerate_tree():
            if ref.name == file_name and (size is None or ref.size == size):
                return ref
        return None
