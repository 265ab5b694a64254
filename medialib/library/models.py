"""
Data models for the library engine.

Track is the unit of identity: two files are the same track iff their
fingerprints match (see medialib.library.fingerprint). Everything that
refers to a track from the outside (playlists, favorites, history) stores
the fingerprint, never a Track object.

Transient fields (cover_url display handles, file_path live references)
are excluded from equality and are never persisted or exported.
"""

import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


# Sentinel exposed by SyncEngine.syncing_folder_id during a full sync
ALL_ROOTS = "__all_roots__"

# Roots created from individually selected files rather than a directory
MANUAL_FOLDER_PREFIX = "manual_"

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"

ARTIST_SEPARATOR = "/"


def artist_key(name: str) -> str:
    """Lookup key of an artist name: width/case folded, whitespace collapsed."""
    return " ".join(unicodedata.normalize("NFKC", name).casefold().split())


class SourceKind(str, Enum):
    """How a source root is reached. Chosen once, at registration."""
    LOCAL = "local"
    WEBDAV = "webdav"


class ConnectionState(str, Enum):
    """Connectivity of a source root, checked before every access."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class SyncPhase(str, Enum):
    """Phases of a single sync run."""
    IDLE = "idle"
    SCANNING = "scanning"
    DIFFING = "diffing"
    PROCESSING_BATCHES = "processing_batches"
    RECONCILING = "reconciling"


@dataclass
class WebDAVCredentials:
    """
    Location and optional Basic-auth credentials of a WebDAV root.

    Attributes:
        base_url: Server URL, e.g. "https://nas.local/dav".
        root_path: Path of the music collection below base_url, e.g. "/Music".
        username: Basic-auth user, or None for anonymous access.
        password: Basic-auth password.
    """
    base_url: str
    root_path: str = "/"
    username: str | None = None
    password: str | None = None

    def to_record(self) -> dict[str, Any]:
        return {
            "baseUrl": self.base_url,
            "rootPath": self.root_path,
            "username": self.username,
            "password": self.password,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "WebDAVCredentials":
        return cls(
            base_url=record["baseUrl"],
            root_path=record.get("rootPath") or "/",
            username=record.get("username"),
            password=record.get("password"),
        )


@dataclass
class LibraryFolder:
    """
    One registered scan root.

    A root is backed either by a local directory or by a WebDAV location,
    never both. local_path is the live handle of a local root: it is not
    exported, and a root without it is disconnected until reconnected.

    Attributes:
        id: Opaque id generated at registration.
        name: Display name.
        kind: SourceKind selected at registration.
        local_path: Directory of a local root (None when the handle is lost).
        webdav: Credentials of a WebDAV root.
        total_files_count: Audio files seen by the last scan.
        track_count: Cached tracks belonging to this root.
        last_sync: Epoch seconds of the last completed sync, or None.
        disconnected: Durable flag; set when access is lost.
        added_at: Epoch seconds of registration.
    """
    id: str
    name: str
    kind: SourceKind
    local_path: str | None = None
    webdav: WebDAVCredentials | None = None
    total_files_count: int = 0
    track_count: int = 0
    last_sync: float | None = None
    disconnected: bool = False
    added_at: float = 0.0

    def __post_init__(self) -> None:
        if self.kind == SourceKind.LOCAL and self.webdav is not None:
            raise ValueError("A local root cannot carry WebDAV credentials")
        if self.kind == SourceKind.WEBDAV and (self.webdav is None or self.local_path is not None):
            raise ValueError("A WebDAV root needs credentials and no local path")

    @property
    def is_manual(self) -> bool:
        return self.id.startswith(MANUAL_FOLDER_PREFIX)

    @property
    def connection_state(self) -> ConnectionState:
        if self.disconnected:
            return ConnectionState.DISCONNECTED
        if self.kind == SourceKind.LOCAL and not self.local_path:
            return ConnectionState.DISCONNECTED
        return ConnectionState.CONNECTED


@dataclass
class FileRef:
    """
    A file or directory found on a source.

    Attributes:
        relative_path: POSIX path relative to the source root ("" for the root).
        name: Last path segment.
        size: Size in bytes (0 for directories).
        last_modified: Epoch seconds.
        is_dir: True for directories / WebDAV collections.
    """
    relative_path: str
    name: str
    size: int = 0
    last_modified: float = 0.0
    is_dir: bool = False


@dataclass
class Track:
    """A cached, content-addressed track record."""
    fingerprint: str
    name: str
    artist: str
    album: str
    file_name: str
    relative_path: str
    folder_id: str
    size: int
    last_modified: float = 0.0
    date_added: float = 0.0
    year: int | None = None
    genre: str | None = None
    duration: float | None = None
    bitrate: int | None = None
    track_number: int | None = None
    disc_number: int | None = None
    cover_blob: bytes | None = field(default=None, repr=False)
    cover_mime: str | None = None
    # Process-local display handle, re-derived from cover_blob on every read
    cover_url: str | None = field(default=None, compare=False, repr=False)
    # Live reference to a playable file, set by the resolver
    file_path: Path | None = field(default=None, compare=False, repr=False)

    @property
    def has_cover(self) -> bool:
        return bool(self.cover_blob)

    @property
    def artists(self) -> list[str]:
        return [a.strip() for a in self.artist.split(ARTIST_SEPARATOR) if a.strip()]

    def to_record(self) -> dict[str, Any]:
        """Persistable fields, without the cover blob and transient handles."""
        return {
            "fingerprint": self.fingerprint,
            "name": self.name,
            "artist": self.artist,
            "album": self.album,
            "fileName": self.file_name,
            "relativePath": self.relative_path,
            "folderId": self.folder_id,
            "size": self.size,
            "lastModified": self.last_modified,
            "dateAdded": self.date_added,
            "year": self.year,
            "genre": self.genre,
            "duration": self.duration,
            "bitrate": self.bitrate,
            "trackNumber": self.track_number,
            "discNumber": self.disc_number,
            "coverMime": self.cover_mime,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any], cover_blob: bytes | None = None) -> "Track":
        return cls(
            fingerprint=record["fingerprint"],
            name=record["name"],
            artist=record["artist"],
            album=record["album"],
            file_name=record["fileName"],
            relative_path=record.get("relativePath") or record["fileName"],
            folder_id=record["folderId"],
            size=record["size"],
            last_modified=record.get("lastModified") or 0.0,
            date_added=record.get("dateAdded") or 0.0,
            year=record.get("year"),
            genre=record.get("genre"),
            duration=record.get("duration"),
            bitrate=record.get("bitrate"),
            track_number=record.get("trackNumber"),
            disc_number=record.get("discNumber"),
            cover_blob=cover_blob,
            cover_mime=record.get("coverMime"),
        )


@dataclass
class ArtistMetadata:
    """Supplemental artist image keyed by normalized artist name."""
    name: str
    image_blob: bytes = field(repr=False)
    image_mime: str | None = None
    updated_at: float = 0.0
    image_url: str | None = field(default=None, compare=False, repr=False)


@dataclass
class ScanCandidate:
    """
    One audio file produced by the recursive scanner.

    Attributes:
        file_ref: The audio file.
        folder_id: Root that produced it.
        inherited_cover: Cover image bytes of the nearest directory (the file's
                         own or an ancestor) holding a cover file.
        inherited_artist_image: Artist image bytes of the nearest directory
                                holding an artist image.
    """
    file_ref: FileRef
    folder_id: str
    inherited_cover: bytes | None = field(default=None, repr=False)
    inherited_artist_image: bytes | None = field(default=None, repr=False)


@dataclass
class MatchResult:
    """Outcome of a text match. Ephemeral; consumed once by the caller."""
    matched: list[Track] = field(default_factory=list)
    unmatched: list[str] = field(default_factory=list)


@dataclass
class Playlist:
    """An ordered sequence of fingerprints."""
    id: str
    name: str
    fingerprints: list[str] = field(default_factory=list)
    created_at: float = 0.0


@dataclass
class HistoryEntry:
    """One playback history entry, denormalized for display."""
    fingerprint: str
    name: str
    artist: str
    album: str
    timestamp: float


@dataclass
class SyncProgress:
    """
    Progress event emitted by the sync engine after each batch.

    Attributes:
        phase: Current phase of the run.
        folder_id: Root being processed, or ALL_ROOTS.
        processed: Files processed so far (failures included).
        total: Files requiring processing in this run.
    """
    phase: SyncPhase
    folder_id: str | None
    processed: int = 0
    total: int = 0

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 100 if self.phase == SyncPhase.RECONCILING else 0
        return round(self.processed / self.total * 100)
