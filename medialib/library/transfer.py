"""
Library export and import.

The whole library is serialized to one portable JSON document:

    {
        "version": 1,
        "exportedAt": 1760000000.0,
        "folders": [...],          # local_path never included
        "tracks": [...],           # Track.to_record() + "coverBlob" (base64)
        "artistMetadata": [...],   # name, base64 image, MIME, updatedAt
        "playlists": [...],        # id, name, fingerprints, createdAt
        "favorites": [...],        # fingerprints
        "history": [...]           # newest first
    }

Display handles and live directory handles cannot survive serialization
and are left out. Importing replaces the whole library in one transaction;
local roots come back disconnected and must be reconnected with their
directory before they can be synced or played from again.

WebDAV credentials, passwords included, are part of the document, so the
file is written with owner-only permissions.
"""

import base64
import binascii
import json
from pathlib import Path
from typing import Any

from medialib.core.exceptions import LibraryImportError
from medialib.core.logger import get_logger
from medialib.library.context import LibraryContext
from medialib.library.models import (
    ArtistMetadata,
    HistoryEntry,
    LibraryFolder,
    Playlist,
    SourceKind,
    Track,
    WebDAVCredentials,
)
from medialib.utils.helpers import now


logger = get_logger(__name__)


EXPORT_VERSION = 1


def _encode_blob(data: bytes | None) -> str | None:
    return base64.b64encode(data).decode("ascii") if data else None


def _decode_blob(value: str | None) -> bytes | None:
    if not value:
        return None
    return base64.b64decode(value, validate=True)


# =============================================================================
# Export
# =============================================================================

def _folder_record(folder: LibraryFolder) -> dict[str, Any]:
    return {
        "id": folder.id,
        "name": folder.name,
        "kind": folder.kind.value,
        "webdav": folder.webdav.to_record() if folder.webdav else None,
        "totalFilesCount": folder.total_files_count,
        "trackCount": folder.track_count,
        "lastSync": folder.last_sync,
        "addedAt": folder.added_at,
    }


def build_export(context: LibraryContext) -> dict[str, Any]:
    """Serialize every store of the library into an export document."""
    database = context.database

    tracks = []
    for track in database.get_all_tracks():
        record = track.to_record()
        record["coverBlob"] = _encode_blob(track.cover_blob)
        tracks.append(record)

    return {
        "version": EXPORT_VERSION,
        "exportedAt": now(),
        "folders": [_folder_record(f) for f in database.get_folders()],
        "tracks": tracks,
        "artistMetadata": [
            {
                "name": a.name,
                "imageBlob": _encode_blob(a.image_blob),
                "imageMime": a.image_mime,
                "updatedAt": a.updated_at,
            }
            for a in database.get_all_artist_metadata()
        ],
        "playlists": [
            {"id": p.id, "name": p.name, "fingerprints": p.fingerprints, "createdAt": p.created_at}
            for p in database.get_playlists()
        ],
        "favorites": database.get_favorites(),
        "history": [
            {
                "fingerprint": h.fingerprint,
                "name": h.name,
                "artist": h.artist,
                "album": h.album,
                "timestamp": h.timestamp,
            }
            for h in database.get_history()
        ],
    }


def export_library(context: LibraryContext, path: Path) -> dict[str, int]:
    """
    Write the export document to path.

    Returns:
        Number of exported entries per store.
    """
    document = build_export(context)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(document, f, ensure_ascii=False, indent=2)

    try:
        path.chmod(0o600)
    except OSError:
        logger.debug(f"Could not restrict permissions of {path}")

    counts = {key: len(document[key]) for key in
              ("folders", "tracks", "artistMetadata", "playlists", "favorites", "history")}
    logger.info(f"Exported library to {path}: {counts['tracks']} tracks, {counts['folders']} folders")
    return counts


# =============================================================================
# Import
# =============================================================================

def _require_list(document: dict[str, Any], key: str) -> list:
    value = document.get(key, [])
    if not isinstance(value, list):
        raise LibraryImportError(
            f"'{key}' must be an array",
            details={"field": key}
        )
    return value


def _parse_folder(record: dict[str, Any]) -> LibraryFolder:
    kind = SourceKind(record["kind"])
    local = kind == SourceKind.LOCAL
    return LibraryFolder(
        id=record["id"],
        name=record["name"],
        kind=kind,
        local_path=None,
        webdav=WebDAVCredentials.from_record(record["webdav"]) if not local else None,
        total_files_count=record.get("totalFilesCount") or 0,
        track_count=record.get("trackCount") or 0,
        last_sync=record.get("lastSync"),
        # No directory handle survives an import
        disconnected=local,
        added_at=record.get("addedAt") or 0.0,
    )


def parse_export(document: Any) -> dict[str, list]:
    """
    Validate an export document and turn it into model objects.

    Raises:
        LibraryImportError: Wrong shape, unsupported version or bad values.
    """
    if not isinstance(document, dict):
        raise LibraryImportError("Export document must be a JSON object")

    version = document.get("version")
    if not isinstance(version, int) or isinstance(version, bool):
        raise LibraryImportError("Export document has no version", details={"field": "version"})
    if version > EXPORT_VERSION:
        raise LibraryImportError(
            f"Unsupported export version {version}",
            details={"version": version, "supported": EXPORT_VERSION}
        )

    section = "folders"
    try:
        folders = [_parse_folder(r) for r in _require_list(document, "folders")]

        section = "tracks"
        tracks = [
            Track.from_record(r, cover_blob=_decode_blob(r.get("coverBlob")))
            for r in _require_list(document, "tracks")
        ]

        section = "artistMetadata"
        artists = [
            ArtistMetadata(
                name=r["name"],
                image_blob=_decode_blob(r["imageBlob"]) or b"",
                image_mime=r.get("imageMime"),
                updated_at=r.get("updatedAt") or 0.0,
            )
            for r in _require_list(document, "artistMetadata")
        ]

        section = "playlists"
        playlists = [
            Playlist(
                id=r["id"],
                name=r["name"],
                fingerprints=list(dict.fromkeys(r.get("fingerprints") or [])),
                created_at=r.get("createdAt") or 0.0,
            )
            for r in _require_list(document, "playlists")
        ]

        section = "favorites"
        favorites = [str(fp) for fp in _require_list(document, "favorites")]

        section = "history"
        history = [
            HistoryEntry(
                fingerprint=r["fingerprint"],
                name=r.get("name") or "",
                artist=r.get("artist") or "",
                album=r.get("album") or "",
                timestamp=float(r["timestamp"]),
            )
            for r in _require_list(document, "history")
        ]
    except (KeyError, TypeError, ValueError, binascii.Error) as e:
        raise LibraryImportError(
            f"Invalid entry in '{section}': {e}",
            details={"field": section, "original_error": repr(e)}
        ) from e

    return {
        "folders": folders,
        "tracks": tracks,
        "artists": [a for a in artists if a.image_blob],
        "playlists": playlists,
        "favorites": favorites,
        "history": history,
    }


def import_library(context: LibraryContext, path: Path) -> dict[str, int]:
    """
    Replace the library with the content of an export file.

    Returns:
        Number of imported entries per store.

    Raises:
        LibraryImportError: Unreadable file or invalid document. The
                            library is left unchanged.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except OSError as e:
        raise LibraryImportError(f"Cannot read {path}: {e}", details={"path": str(path)}) from e
    except json.JSONDecodeError as e:
        raise LibraryImportError(f"Not a JSON document: {e}", details={"path": str(path)}) from e

    parsed = parse_export(document)

    context.handles.revoke_all()
    context.directory_handles.clear()
    context.database.restore(**parsed)

    counts = {key: len(value) for key, value in parsed.items()}
    disconnected = sum(1 for f in parsed["folders"] if f.disconnected)
    logger.info(
        f"Imported {counts['tracks']} tracks and {counts['folders']} folders from {path}"
        + (f"; {disconnected} local folders need reconnecting" if disconnected else "")
    )
    return counts
