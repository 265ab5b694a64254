"""
Library engine for medialib.

    - models: Track, LibraryFolder and the other records
    - fingerprint: track identity
    - metadata / scanner: turning files into tracks
    - cache / blobs: the content-addressed track cache and display handles
    - sync: the incremental sync engine
    - folders / resolver / playlists / transfer: operations built on the cache

Only the data model is re-exported here; import the engine modules directly.
"""

from medialib.library.fingerprint import fingerprint, fingerprint_ref
from medialib.library.models import (
    ALL_ROOTS,
    ArtistMetadata,
    FileRef,
    HistoryEntry,
    LibraryFolder,
    MatchResult,
    Playlist,
    ScanCandidate,
    SourceKind,
    SyncPhase,
    SyncProgress,
    Track,
    WebDAVCredentials,
)

__all__ = [
    "ALL_ROOTS",
    "ArtistMetadata",
    "FileRef",
    "HistoryEntry",
    "LibraryFolder",
    "MatchResult",
    "Playlist",
    "ScanCandidate",
    "SourceKind",
    "SyncPhase",
    "SyncProgress",
    "Track",
    "WebDAVCredentials",
    "fingerprint",
    "fingerprint_ref",
]
