"""
Source root registry.

Registers, lists, reconnects and removes library folders, and builds the
Source adapter of each one. The adapter variant is fixed by the folder's
kind at registration; it is never guessed from the objects at hand.

Connectivity is explicit: a local root is usable only while this process
holds a granted DirectoryHandle for it. A fresh process knows the stored
path but must ask for permission again; an imported library does not
even know the path and must be reconnected with one.
"""

from pathlib import Path

from medialib.core.exceptions import FolderNotFoundError, PermissionDeniedError
from medialib.core.logger import get_logger
from medialib.library.context import LibraryContext
from medialib.library.models import MANUAL_FOLDER_PREFIX, LibraryFolder, SourceKind, WebDAVCredentials
from medialib.sources import create_source
from medialib.sources.base import AccessState, ConnectionResult, Source
from medialib.sources.local import DirectoryHandle, PermissionState
from medialib.sources.webdav import WebDAVSource
from medialib.utils.helpers import generate_id, now


logger = get_logger(__name__)


class FolderRegistry:
    """
    CRUD and connectivity for LibraryFolder records.

    Example:
        folders = FolderRegistry(context)
        folder = folders.add_local(Path("~/Music").expanduser())
        source = folders.source_for(folder)
    """

    def __init__(self, context: LibraryContext) -> None:
        self.context = context
        self.database = context.database

    # =========================================================================
    # Registration
    # =========================================================================

    def add_local(self, path: Path, name: str | None = None) -> LibraryFolder:
        """
        Register a local directory the user just picked.

        Picking a directory grants read access to it for this process.

        Raises:
            PermissionDeniedError: The directory does not exist or is unreadable.
        """
        path = path.expanduser().resolve()
        handle = DirectoryHandle(path, granted=True)
        if handle.query_permission() != PermissionState.GRANTED:
            raise PermissionDeniedError(
                f"Directory missing or unreadable: {path}",
                details={"path": str(path)}
            )

        folder = LibraryFolder(
            id=generate_id(),
            name=name or path.name or str(path),
            kind=SourceKind.LOCAL,
            local_path=str(path),
            added_at=now(),
        )
        self.database.upsert_folder(folder)
        self.context.directory_handles[folder.id] = handle
        logger.info(f"Registered local folder '{folder.name}' ({path})")
        return folder

    def add_manual(self, directory: Path, name: str | None = None) -> LibraryFolder:
        """
        Register a root for individually selected files.

        The root points at the directory holding the selection; full syncs
        skip it, so files next to the selection are never indexed.
        """
        directory = directory.expanduser().resolve()
        folder = LibraryFolder(
            id=generate_id(MANUAL_FOLDER_PREFIX),
            name=name or f"Imported from {directory.name or directory}",
            kind=SourceKind.LOCAL,
            local_path=str(directory),
            added_at=now(),
        )
        self.database.upsert_folder(folder)
        self.context.directory_handles[folder.id] = DirectoryHandle(directory, granted=True)
        logger.info(f"Registered manual import root '{folder.name}' ({directory})")
        return folder

    def add_webdav(self, credentials: WebDAVCredentials, name: str | None = None) -> LibraryFolder:
        """Register a WebDAV location."""
        folder = LibraryFolder(
            id=generate_id(),
            name=name or credentials.root_path.strip("/").rsplit("/", 1)[-1] or credentials.base_url,
            kind=SourceKind.WEBDAV,
            webdav=credentials,
            added_at=now(),
        )
        self.database.upsert_folder(folder)
        logger.info(f"Registered WebDAV folder '{folder.name}' ({credentials.base_url})")
        return folder

    def test_webdav(self, credentials: WebDAVCredentials) -> ConnectionResult:
        """Probe a WebDAV location before (or without) registering it."""
        probe = WebDAVSource(
            "probe", credentials, self.context.cache_directory,
            self.context.config.webdav, self.context.session
        )
        return probe.test_connection()

    # =========================================================================
    # Lookup
    # =========================================================================

    def list_folders(self) -> list[LibraryFolder]:
        return self.database.get_folders()

    def get(self, folder_id: str) -> LibraryFolder:
        """
        Raises:
            FolderNotFoundError: Unknown id.
        """
        folder = self.database.get_folder(folder_id)
        if folder is None:
            raise FolderNotFoundError(
                f"No library folder with id {folder_id}",
                details={"folder_id": folder_id}
            )
        return folder

    def handle_for(self, folder: LibraryFolder) -> DirectoryHandle | None:
        """
        Live handle of a local root.

        A root with a stored path but no handle in this process gets a new,
        not yet granted, handle.
        """
        handle = self.context.directory_handles.get(folder.id)
        if handle is None and folder.local_path:
            handle = DirectoryHandle(Path(folder.local_path))
            self.context.directory_handles[folder.id] = handle
        return handle

    def source_for(self, folder: LibraryFolder) -> Source:
        """
        Build the Source of a root.

        Raises:
            PermissionDeniedError: Local root without any known directory.
        """
        handle = self.handle_for(folder) if folder.kind == SourceKind.LOCAL else None
        return create_source(
            folder,
            self.context.cache_directory,
            webdav_config=self.context.config.webdav,
            handle=handle,
            prompt=self.context.prompt,
            session=self.context.session,
        )

    # =========================================================================
    # Connectivity
    # =========================================================================

    def check_access(self, folder: LibraryFolder, interactive: bool = False) -> AccessState:
        """
        Check a root before touching it and persist the outcome.

        Local roots losing permission are marked disconnected; an
        unreachable WebDAV server is transient and does not change the flag.
        A root already marked disconnected stays so until reconnect().
        """
        if folder.disconnected:
            return AccessState.PERMISSION_DENIED

        try:
            source = self.source_for(folder)
        except PermissionDeniedError:
            state = AccessState.PERMISSION_DENIED
        else:
            state = source.check_access(interactive=interactive)

        if state == AccessState.PERMISSION_DENIED:
            self.mark_disconnected(folder.id)
            folder.disconnected = True
        return state

    def mark_disconnected(self, folder_id: str) -> None:
        self.database.set_folder_connection(folder_id, disconnected=True)
        handle = self.context.directory_handles.get(folder_id)
        if handle is not None:
            handle.revoke()
        logger.warning(f"Folder {folder_id} is disconnected")

    def reconnect(self, folder_id: str, path: Path | None = None) -> LibraryFolder:
        """
        Explicitly reconnect a root.

        Local roots: a newly picked path is granted directly; otherwise the
        stored path is re-requested through the permission prompt.
        WebDAV roots: the server is probed.

        Raises:
            FolderNotFoundError: Unknown id.
            PermissionDeniedError: Access still not available.
            SourceUnreachableError: WebDAV server still unreachable.
        """
        folder = self.get(folder_id)

        if folder.kind == SourceKind.WEBDAV:
            source = self.source_for(folder)
            # propfind raises SourceUnreachableError with the server's reason
            source.propfind(source.root_path)
            self.database.set_folder_connection(folder.id, disconnected=False)
            folder.disconnected = False
            logger.info(f"Reconnected WebDAV folder '{folder.name}'")
            return folder

        if path is not None:
            path = path.expanduser().resolve()
            handle = DirectoryHandle(path, granted=True)
            state = handle.query_permission()
        elif folder.local_path:
            handle = DirectoryHandle(Path(folder.local_path))
            state = handle.request_permission(self.context.prompt)
        else:
            raise PermissionDeniedError(
                f"Folder '{folder.name}' has no known location; pick its directory again",
                details={"folder_id": folder.id}
            )

        if state != PermissionState.GRANTED:
            raise PermissionDeniedError(
                f"No read permission for {handle.path}",
                details={"folder_id": folder.id, "path": str(handle.path)}
            )

        self.context.directory_handles[folder.id] = handle
        self.database.set_folder_connection(folder.id, disconnected=False, local_path=str(handle.path))
        folder.local_path = str(handle.path)
        folder.disconnected = False
        logger.info(f"Reconnected local folder '{folder.name}' ({handle.path})")
        return folder

    def test_connection(self, folder_id: str) -> ConnectionResult:
        """Probe a registered root without raising."""
        folder = self.get(folder_id)
        try:
            source = self.source_for(folder)
        except PermissionDeniedError as e:
            return ConnectionResult(False, e.message)
        return source.test_connection()

    # =========================================================================
    # Removal
    # =========================================================================

    def clear_cache(self, folder_id: str) -> None:
        """Delete the downloaded files of a WebDAV root."""
        folder = self.get(folder_id)
        if folder.kind == SourceKind.WEBDAV:
            source = self.source_for(folder)
            source.clear_cache()

    def remove(self, folder_id: str) -> int:
        """
        Unregister a root and cascade-delete its tracks.

        Returns:
            Number of tracks removed.
        """
        folder = self.get(folder_id)
        if folder.kind == SourceKind.WEBDAV:
            self.clear_cache(folder_id)

        for fp in self.database.get_fingerprints_by_folder(folder_id):
            self.context.handles.revoke_key(fp)
        removed = self.database.delete_folder(folder_id)
        self.context.directory_handles.pop(folder_id, None)
        logger.info(f"Removed folder '{folder.name}' and {removed} tracks")
        return removed
