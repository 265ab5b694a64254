"""
Source adapters for medialib.

    - base: Source interface, AccessState, ConnectionResult
    - local: LocalDirectorySource over a process-local DirectoryHandle
    - webdav: WebDAVSource over PROPFIND / GET

The variant is chosen from LibraryFolder.kind, never inferred from the
capabilities of an object at call time.
"""

from pathlib import Path

import requests

from medialib.core.config import WebDAVConfig
from medialib.core.exceptions import PermissionDeniedError
from medialib.library.models import LibraryFolder, SourceKind
from medialib.sources.base import AccessState, ConnectionResult, Source
from medialib.sources.local import (
    DirectoryHandle,
    LocalDirectorySource,
    PermissionPrompt,
    PermissionState,
)
from medialib.sources.webdav import RemoteEntry, WebDAVSource, parse_multistatus


def create_source(
    folder: LibraryFolder,
    cache_root: Path,
    webdav_config: WebDAVConfig | None = None,
    handle: DirectoryHandle | None = None,
    prompt: PermissionPrompt | None = None,
    session: requests.Session | None = None
) -> Source:
    """
    Build the Source for a registered root.

    Args:
        folder: The root.
        cache_root: Download cache directory (WebDAV only).
        webdav_config: WebDAV client settings.
        handle: Live directory handle (local only).
        prompt: Permission prompt (local only).
        session: Optional HTTP session (WebDAV only).

    Raises:
        PermissionDeniedError: A local root without a live handle.
    """
    if folder.kind == SourceKind.LOCAL:
        if handle is None:
            raise PermissionDeniedError(
                f"Folder '{folder.name}' is disconnected",
                details={"folder_id": folder.id}
            )
        return LocalDirectorySource(folder.id, handle, prompt)

    return WebDAVSource(folder.id, folder.webdav, cache_root, webdav_config, session)


__all__ = [
    "AccessState",
    "ConnectionResult",
    "DirectoryHandle",
    "LocalDirectorySource",
    "PermissionPrompt",
    "PermissionState",
    "RemoteEntry",
    "Source",
    "WebDAVSource",
    "create_source",
    "parse_multistatus",
]
