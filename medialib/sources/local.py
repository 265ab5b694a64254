"""
Local directory source.

A local root is reached through a DirectoryHandle: a process-local grant
of read access to one directory. Handles do not survive a restart or an
export/import cycle. A fresh handle starts in the PROMPT state, and
reading requires the user to grant access again through the injected
permission prompt. Access is re-validated before every operation, since
the directory can also disappear or become unreadable at any time.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Callable

from medialib.core.exceptions import PermissionDeniedError, SourceError
from medialib.core.logger import get_logger
from medialib.library.models import FileRef, SourceKind
from medialib.sources.base import AccessState, ConnectionResult, Source
from medialib.utils.helpers import join_relative


logger = get_logger(__name__)


# Called with the directory path; returns True when the user grants access
PermissionPrompt = Callable[[Path], bool]


class PermissionState(str, Enum):
    GRANTED = "granted"
    PROMPT = "prompt"
    DENIED = "denied"


class DirectoryHandle:
    """
    Read grant for one local directory.

    Attributes:
        path: Absolute directory path.
    """

    def __init__(self, path: Path, granted: bool = False) -> None:
        self.path = path
        self._granted = granted

    @property
    def name(self) -> str:
        return self.path.name

    def query_permission(self) -> PermissionState:
        """Current permission without asking the user."""
        if not self.path.is_dir() or not os.access(self.path, os.R_OK | os.X_OK):
            return PermissionState.DENIED
        return PermissionState.GRANTED if self._granted else PermissionState.PROMPT

    def request_permission(self, prompt: PermissionPrompt | None) -> PermissionState:
        """
        Ask the user for access if it is not already granted.

        Args:
            prompt: UI callback. Without one, a PROMPT state cannot be
                    upgraded and the result is DENIED.
        """
        state = self.query_permission()
        if state != PermissionState.PROMPT:
            return state

        if prompt is not None and prompt(self.path):
            self._granted = True
            return PermissionState.GRANTED

        return PermissionState.DENIED

    def revoke(self) -> None:
        self._granted = False


class LocalDirectorySource(Source):
    """Source backed by a DirectoryHandle."""

    kind = SourceKind.LOCAL

    def __init__(
        self,
        folder_id: str,
        handle: DirectoryHandle,
        prompt: PermissionPrompt | None = None
    ) -> None:
        super().__init__(folder_id)
        self.handle = handle
        self._prompt = prompt

    @property
    def root(self) -> Path:
        return self.handle.path

    def check_access(self, interactive: bool = False) -> AccessState:
        state = self.handle.query_permission()
        if state == PermissionState.PROMPT and interactive:
            state = self.handle.request_permission(self._prompt)

        if state == PermissionState.GRANTED:
            return AccessState.GRANTED
        return AccessState.PERMISSION_DENIED

    def _require_access(self) -> None:
        if self.handle.query_permission() != PermissionState.GRANTED:
            raise PermissionDeniedError(
                f"No read permission for {self.root}",
                details={"folder_id": self.folder_id, "path": str(self.root)}
            )

    def _resolve(self, relative_path: str) -> Path:
        target = (self.root / relative_path).resolve()
        root = self.root.resolve()
        if target != root and root not in target.parents:
            raise PermissionDeniedError(
                f"Path escapes the library root: {relative_path}",
                details={"folder_id": self.folder_id, "path": relative_path}
            )
        return target

    def list_directory(self, relative_path: str = "") -> list[FileRef]:
        self._require_access()
        directory = self._resolve(relative_path)

        entries: list[FileRef] = []
        try:
            with os.scandir(directory) as it:
                for entry in it:
                    try:
                        is_dir = entry.is_dir()
                        stat = entry.stat()
                    except OSError as e:
                        logger.warning(f"Skipping unreadable entry {entry.path}: {e}")
                        continue
                    entries.append(FileRef(
                        relative_path=join_relative(relative_path, entry.name),
                        name=entry.name,
                        size=0 if is_dir else stat.st_size,
                        last_modified=stat.st_mtime,
                        is_dir=is_dir,
                    ))
        except PermissionError as e:
            raise PermissionDeniedError(
                f"No read permission for {directory}",
                details={"folder_id": self.folder_id, "path": relative_path, "original_error": str(e)}
            ) from e
        except OSError as e:
            raise SourceError(
                f"Cannot list {directory}: {e}",
                details={"folder_id": self.folder_id, "path": relative_path, "original_error": str(e)}
            ) from e

        entries.sort(key=lambda e: e.name)
        return entries

    def read_file(self, ref: FileRef, byte_range: tuple[int, int] | None = None) -> bytes:
        self._require_access()
        path = self._resolve(ref.relative_path)
        with open(path, "rb") as f:
            if byte_range is None:
                return f.read()
            start, end = byte_range
            f.seek(start)
            return f.read(end - start + 1)

    def local_copy(self, ref: FileRef) -> Path:
        self._require_access()
        path = self._resolve(ref.relative_path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        return path

    def test_connection(self) -> ConnectionResult:
        state = self.handle.query_permission()
        if state == PermissionState.GRANTED:
            return ConnectionResult(True, f"Directory readable: {self.root}")
        if state == PermissionState.PROMPT:
            return ConnectionResult(False, f"Permission required for {self.root}")
        return ConnectionResult(False, f"Directory missing or unreadable: {self.root}")
