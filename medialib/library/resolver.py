"""
Track file resolution for playback.

A cached Track carries no live file reference. Before playing it, the
player asks the resolver to find the physical file again under the
track's root: first at the stored relative path, then anywhere below the
root by file name and size (the file may have been moved within the
root). Playback never reaches into the cache or the sources directly.
"""

from dataclasses import dataclass
from enum import Enum

from medialib.core.exceptions import PermissionDeniedError, SourceUnreachableError
from medialib.core.logger import get_logger
from medialib.library.context import LibraryContext
from medialib.library.folders import FolderRegistry
from medialib.library.models import FileRef, Track
from medialib.sources.base import AccessState, Source


logger = get_logger(__name__)


class ResolveStatus(str, Enum):
    FOUND = "found"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"


@dataclass
class ResolveResult:
    """
    Attributes:
        status: Outcome.
        track: The track, with file_path set when status is FOUND.
        message: Reason for a failed resolution.
    """
    status: ResolveStatus
    track: Track
    message: str = ""

    @property
    def found(self) -> bool:
        return self.status == ResolveStatus.FOUND


class TrackResolver:
    """Re-locates the files of cached tracks."""

    def __init__(self, context: LibraryContext, folders: FolderRegistry) -> None:
        self.context = context
        self.folders = folders

    def resolve(self, track: Track, interactive: bool = True) -> ResolveResult:
        """
        Rehydrate a playable file reference for a cached track.

        Args:
            track: Cached track.
            interactive: Allow a permission prompt for a local root.

        Returns:
            FOUND with track.file_path set, PERMISSION_DENIED when the root
            is disconnected or refuses access, NOT_FOUND otherwise.
        """
        folder = self.context.database.get_folder(track.folder_id)
        if folder is None:
            return ResolveResult(ResolveStatus.NOT_FOUND, track, f"Unknown library folder {track.folder_id}")

        access = self.folders.check_access(folder, interactive=interactive)
        if access == AccessState.PERMISSION_DENIED:
            return ResolveResult(ResolveStatus.PERMISSION_DENIED, track, f"No access to '{folder.name}'")
        if access == AccessState.UNREACHABLE:
            return ResolveResult(ResolveStatus.NOT_FOUND, track, f"'{folder.name}' is unreachable")

        source = self.folders.source_for(folder)
        stored = FileRef(
            relative_path=track.relative_path,
            name=track.file_name,
            size=track.size,
            last_modified=track.last_modified,
        )

        try:
            path = self._fetch(source, stored)
            if path is None:
                logger.debug(f"{track.relative_path} moved, searching '{folder.name}' for {track.file_name}")
                moved = source.locate(track.file_name, track.size)
                if moved is not None:
                    path = self._fetch(source, moved)
        except PermissionDeniedError as e:
            self.folders.mark_disconnected(folder.id)
            return ResolveResult(ResolveStatus.PERMISSION_DENIED, track, e.message)
        except SourceUnreachableError as e:
            return ResolveResult(ResolveStatus.NOT_FOUND, track, e.message)

        if path is None:
            return ResolveResult(ResolveStatus.NOT_FOUND, track, f"{track.file_name} not found in '{folder.name}'")

        track.file_path = path
        return ResolveResult(ResolveStatus.FOUND, track)

    def _fetch(self, source: Source, ref: FileRef):
        """Local path of ref, or None when the file is not there."""
        try:
            return source.local_copy(ref)
        except FileNotFoundError:
            return None
        except SourceUnreachableError as e:
            if e.status_code == 404:
                return None
            raise
