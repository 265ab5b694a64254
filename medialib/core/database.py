"""
Thread-safe SQLite database for medialib.

One table per concern, each keyed by a stable identifier:

Schema:
    library_folders:    Source roots (id, kind, location, counters, last_sync)
    tracks:             Content-addressed track cache, keyed by fingerprint,
                        cover image stored as a BLOB next to the record
    track_artists:      Secondary index (fingerprint, artist_key) for
                        grouped views by individual performer
    folder_files:       Files each root reported on its last complete scan
                        (folder_id, fingerprint, relative_path)
    artist_metadata:    Artist images keyed by normalized artist name
    playlists:          Playlist metadata (id, name, created_at)
    playlist_tracks:    Ordered fingerprints of each playlist
    favorites:          Set of favorite fingerprints
    history:            Playback history, one row per fingerprint

tracks.folder_id is a non-owning back-reference: it is not a foreign key,
and tracks are removed by delete_tracks_by_folder() when a root goes away.
A track belongs to one root even when several roots hold the same file;
folder_files lets a track move to another root holding a copy instead of
being deleted with its first root.

Usage:
    db = Database(config.library.database_path)

    stored = db.put_tracks(batch)          # one transaction per batch
    for track in db.get_tracks_by_folder(folder_id):
        ...
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any, Generator, Iterable

from medialib.core.exceptions import DatabaseError
from medialib.library.models import (
    ArtistMetadata,
    HistoryEntry,
    LibraryFolder,
    Playlist,
    SourceKind,
    Track,
    WebDAVCredentials,
    artist_key,
)
from medialib.utils.helpers import now


DATABASE_VERSION = 1


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS library_folders (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    kind TEXT NOT NULL,
    local_path TEXT,
    webdav TEXT,  -- JSON object (baseUrl, rootPath, username, password)
    total_files_count INTEGER DEFAULT 0,
    track_count INTEGER DEFAULT 0,
    last_sync REAL,
    disconnected INTEGER DEFAULT 0,
    added_at REAL
);

CREATE TABLE IF NOT EXISTS tracks (
    fingerprint TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    artist TEXT NOT NULL,
    album TEXT NOT NULL,
    file_name TEXT NOT NULL,
    relative_path TEXT NOT NULL,
    folder_id TEXT NOT NULL,
    size INTEGER NOT NULL,
    last_modified REAL,
    date_added REAL NOT NULL,
    year INTEGER,
    genre TEXT,
    duration REAL,
    bitrate INTEGER,
    track_number INTEGER,
    disc_number INTEGER,
    cover_blob BLOB,
    cover_mime TEXT
);

CREATE TABLE IF NOT EXISTS track_artists (
    fingerprint TEXT NOT NULL,
    artist_key TEXT NOT NULL,
    PRIMARY KEY (fingerprint, artist_key),
    FOREIGN KEY (fingerprint) REFERENCES tracks(fingerprint) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS folder_files (
    folder_id TEXT NOT NULL,
    fingerprint TEXT NOT NULL,
    relative_path TEXT NOT NULL,
    PRIMARY KEY (folder_id, fingerprint),
    FOREIGN KEY (folder_id) REFERENCES library_folders(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS artist_metadata (
    name TEXT PRIMARY KEY,
    image_blob BLOB NOT NULL,
    image_mime TEXT,
    updated_at REAL
);

CREATE TABLE IF NOT EXISTS playlists (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    created_at REAL
);

CREATE TABLE IF NOT EXISTS playlist_tracks (
    playlist_id TEXT NOT NULL,
    position INTEGER NOT NULL,
    fingerprint TEXT NOT NULL,
    PRIMARY KEY (playlist_id, position),
    FOREIGN KEY (playlist_id) REFERENCES playlists(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS favorites (
    fingerprint TEXT PRIMARY KEY,
    added_at REAL
);

CREATE TABLE IF NOT EXISTS history (
    fingerprint TEXT PRIMARY KEY,
    name TEXT,
    artist TEXT,
    album TEXT,
    timestamp REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tracks_album ON tracks(album);
CREATE INDEX IF NOT EXISTS idx_tracks_folder_id ON tracks(folder_id);
CREATE INDEX IF NOT EXISTS idx_tracks_date_added ON tracks(date_added);
CREATE INDEX IF NOT EXISTS idx_track_artists_key ON track_artists(artist_key);
CREATE INDEX IF NOT EXISTS idx_folder_files_fingerprint ON folder_files(fingerprint);
CREATE INDEX IF NOT EXISTS idx_history_timestamp ON history(timestamp);
"""

_TRACK_COLUMNS = (
    "fingerprint", "name", "artist", "album", "file_name", "relative_path",
    "folder_id", "size", "last_modified", "date_added", "year", "genre",
    "duration", "bitrate", "track_number", "disc_number", "cover_blob", "cover_mime",
)

_UPSERT_TRACK_SQL = f"""
    INSERT INTO tracks ({", ".join(_TRACK_COLUMNS)})
    VALUES ({", ".join("?" for _ in _TRACK_COLUMNS)})
    ON CONFLICT(fingerprint) DO UPDATE SET
        {", ".join(f"{c} = excluded.{c}" for c in _TRACK_COLUMNS if c not in ("fingerprint", "date_added"))}
"""


def _track_params(track: Track) -> tuple:
    return tuple(getattr(track, column) for column in _TRACK_COLUMNS)


def _track_from_row(row: sqlite3.Row) -> Track:
    return Track(**{column: row[column] for column in _TRACK_COLUMNS})


def _folder_from_row(row: sqlite3.Row) -> LibraryFolder:
    webdav = None
    if row["webdav"]:
        webdav = WebDAVCredentials.from_record(json.loads(row["webdav"]))
    return LibraryFolder(
        id=row["id"],
        name=row["name"],
        kind=SourceKind(row["kind"]),
        local_path=row["local_path"],
        webdav=webdav,
        total_files_count=row["total_files_count"] or 0,
        track_count=row["track_count"] or 0,
        last_sync=row["last_sync"],
        disconnected=bool(row["disconnected"]),
        added_at=row["added_at"] or 0.0,
    )


def _folder_params(folder: LibraryFolder) -> tuple:
    webdav = json.dumps(folder.webdav.to_record()) if folder.webdav else None
    return (
        folder.id, folder.name, folder.kind.value, folder.local_path, webdav,
        folder.total_files_count, folder.track_count, folder.last_sync,
        1 if folder.disconnected else 0, folder.added_at,
    )


class Database:
    """
    Thread-safe SQLite database holding every persisted store.

    Uses a single persistent connection with thread locking for safety.
    All public methods acquire self._lock before executing. Methods that
    write several rows do so in one transaction: either all rows are
    stored or none are.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

        if not db_path.parent.exists():
            raise DatabaseError(
                f"Parent directory does not exist: {db_path.parent}",
                details={"path": str(db_path.parent)}
            )

        try:
            self._init_database()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to initialize database: {e}",
                details={"path": str(db_path)}
            ) from e

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get the persistent database connection as a context manager.

        The connection is created once and reused for all operations.
        """
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # Thread safety is handled with _lock
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode = WAL")
        yield self._conn

    @contextmanager
    def _transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Lock, then run the body in one transaction (rolled back on error)."""
        with self._lock:
            with self._get_connection() as conn:
                try:
                    with conn:
                        yield conn
                except sqlite3.Error as e:
                    raise DatabaseError(
                        f"Database write failed: {e}",
                        details={"path": str(self.db_path), "original_error": str(e)}
                    ) from e

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __del__(self) -> None:
        """Ensure connection is closed on garbage collection."""
        if hasattr(self, '_conn') and self._conn is not None:
            try:
                self._conn.close()
            except sqlite3.Error:
                pass

    def _init_database(self) -> None:
        with self._get_connection() as conn:
            conn.executescript(_SCHEMA_SQL)

            cursor = conn.execute("SELECT version FROM schema_version LIMIT 1")
            row = cursor.fetchone()

            if row is None:
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (DATABASE_VERSION,))
            elif row[0] != DATABASE_VERSION:
                raise DatabaseError(
                    f"Database version mismatch: expected {DATABASE_VERSION}, got {row[0]}",
                    details={"expected": DATABASE_VERSION, "actual": row[0]}
                )
            conn.commit()

    # =========================================================================
    # Source Roots
    # =========================================================================

    def upsert_folder(self, folder: LibraryFolder) -> None:
        """Create or fully replace a source root record."""
        with self._transaction() as conn:
            self._upsert_folder(conn, folder)

    def _upsert_folder(self, conn: sqlite3.Connection, folder: LibraryFolder) -> None:
        conn.execute("""
            INSERT INTO library_folders (
                id, name, kind, local_path, webdav, total_files_count,
                track_count, last_sync, disconnected, added_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                kind = excluded.kind,
                local_path = excluded.local_path,
                webdav = excluded.webdav,
                total_files_count = excluded.total_files_count,
                track_count = excluded.track_count,
                last_sync = excluded.last_sync,
                disconnected = excluded.disconnected
        """, _folder_params(folder))

    def get_folder(self, folder_id: str) -> LibraryFolder | None:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT * FROM library_folders WHERE id = ?", (folder_id,))
                row = cursor.fetchone()
                return _folder_from_row(row) if row else None

    def get_folders(self) -> list[LibraryFolder]:
        """All source roots in registration order."""
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT * FROM library_folders ORDER BY added_at, id")
                return [_folder_from_row(row) for row in cursor.fetchall()]

    def update_folder_stats(
        self,
        folder_id: str,
        total_files_count: int,
        track_count: int,
        last_sync: float
    ) -> None:
        """Persist the counters of a root after a sync."""
        with self._transaction() as conn:
            conn.execute("""
                UPDATE library_folders
                SET total_files_count = ?, track_count = ?, last_sync = ?
                WHERE id = ?
            """, (total_files_count, track_count, last_sync, folder_id))

    def set_folder_track_count(self, folder_id: str, track_count: int) -> None:
        with self._transaction() as conn:
            conn.execute("UPDATE library_folders SET track_count = ? WHERE id = ?", (track_count, folder_id))

    def set_folder_connection(self, folder_id: str, disconnected: bool, local_path: str | None = None) -> None:
        """
        Mark a root connected or disconnected.

        local_path replaces the stored directory of a local root when given.
        """
        with self._transaction() as conn:
            if local_path is None:
                conn.execute(
                    "UPDATE library_folders SET disconnected = ? WHERE id = ?",
                    (1 if disconnected else 0, folder_id)
                )
            else:
                conn.execute(
                    "UPDATE library_folders SET disconnected = ?, local_path = ? WHERE id = ?",
                    (1 if disconnected else 0, local_path, folder_id)
                )

    def delete_folder(self, folder_id: str) -> int:
        """
        Delete a root and every track it produced, in one transaction.

        Tracks whose file another root reported on its last complete scan
        move to that root instead of being deleted.

        Returns:
            Number of tracks removed.
        """
        with self._transaction() as conn:
            cursor = conn.execute("SELECT fingerprint FROM tracks WHERE folder_id = ?", (folder_id,))
            self._rehome_tracks(conn, folder_id, [row[0] for row in cursor.fetchall()])
            cursor = conn.execute("DELETE FROM tracks WHERE folder_id = ?", (folder_id,))
            conn.execute("DELETE FROM library_folders WHERE id = ?", (folder_id,))
            return cursor.rowcount

    # =========================================================================
    # Track Cache
    # =========================================================================

    def put_tracks(self, tracks: Iterable[Track]) -> list[Track]:
        """
        Insert or update tracks by fingerprint in one transaction.

        date_added is set on first insertion and kept on every later update.

        Returns:
            The tracks as stored, carrying their effective date_added.
        """
        tracks = list(tracks)
        if not tracks:
            return []

        stored: list[Track] = []
        with self._transaction() as conn:
            fingerprints = [t.fingerprint for t in tracks]
            existing = self._date_added_for(conn, fingerprints)
            timestamp = now()

            for track in tracks:
                date_added = existing.get(track.fingerprint) or track.date_added or timestamp
                track = replace(track, date_added=date_added)

                conn.execute(_UPSERT_TRACK_SQL, _track_params(track))
                conn.execute("DELETE FROM track_artists WHERE fingerprint = ?", (track.fingerprint,))
                conn.executemany(
                    "INSERT OR IGNORE INTO track_artists (fingerprint, artist_key) VALUES (?, ?)",
                    [(track.fingerprint, artist_key(a)) for a in track.artists]
                )
                stored.append(track)

        return stored

    def _date_added_for(self, conn: sqlite3.Connection, fingerprints: list[str]) -> dict[str, float]:
        placeholders = ", ".join("?" for _ in fingerprints)
        cursor = conn.execute(
            f"SELECT fingerprint, date_added FROM tracks WHERE fingerprint IN ({placeholders})",
            fingerprints
        )
        return {row[0]: row[1] for row in cursor.fetchall()}

    def _select_tracks(self, where: str = "", params: tuple = (), order: str = "name") -> list[Track]:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(f"SELECT * FROM tracks {where} ORDER BY {order}", params)
                return [_track_from_row(row) for row in cursor.fetchall()]

    def get_track(self, fingerprint: str) -> Track | None:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT * FROM tracks WHERE fingerprint = ?", (fingerprint,))
                row = cursor.fetchone()
                return _track_from_row(row) if row else None

    def get_all_tracks(self) -> list[Track]:
        return self._select_tracks()

    def get_tracks_by_folder(self, folder_id: str) -> list[Track]:
        return self._select_tracks("WHERE folder_id = ?", (folder_id,))

    def get_tracks_by_album(self, album: str) -> list[Track]:
        return self._select_tracks(
            "WHERE album = ?", (album,), order="disc_number, track_number, name"
        )

    def get_tracks_by_artist(self, artist: str) -> list[Track]:
        """Tracks crediting the artist, via the track_artists index."""
        return self._select_tracks(
            "WHERE fingerprint IN (SELECT fingerprint FROM track_artists WHERE artist_key = ?)",
            (artist_key(artist),)
        )

    def get_recent_tracks(self, limit: int | None = None) -> list[Track]:
        """Most recently added tracks first."""
        order = "date_added DESC, name"
        if limit is not None:
            order += f" LIMIT {int(limit)}"
        return self._select_tracks(order=order)

    def get_albums(self) -> list[str]:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT DISTINCT album FROM tracks ORDER BY album")
                return [row[0] for row in cursor.fetchall()]

    def get_artist_keys(self) -> list[str]:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT DISTINCT artist_key FROM track_artists ORDER BY artist_key")
                return [row[0] for row in cursor.fetchall()]

    def get_cover_index(self) -> dict[str, bool]:
        """
        Map every cached fingerprint to whether it has cover art.

        Used for diffing without loading track records or blobs.
        """
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    SELECT fingerprint, cover_blob IS NOT NULL AND length(cover_blob) > 0
                    FROM tracks
                """)
                return {row[0]: bool(row[1]) for row in cursor.fetchall()}

    def get_fingerprints_by_folder(self, folder_id: str) -> set[str]:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT fingerprint FROM tracks WHERE folder_id = ?", (folder_id,))
                return {row[0] for row in cursor.fetchall()}

    def count_tracks_by_folder(self, folder_id: str) -> int:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT COUNT(*) FROM tracks WHERE folder_id = ?", (folder_id,))
                return cursor.fetchone()[0]

    def delete_tracks_by_folder(self, folder_id: str) -> int:
        """Delete every track of a root. Returns the number removed."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM tracks WHERE folder_id = ?", (folder_id,))
            return cursor.rowcount

    def delete_tracks(self, fingerprints: Iterable[str]) -> int:
        """Delete tracks by fingerprint. Returns the number removed."""
        fingerprints = list(fingerprints)
        if not fingerprints:
            return 0
        with self._transaction() as conn:
            cursor = conn.executemany("DELETE FROM tracks WHERE fingerprint = ?", [(fp,) for fp in fingerprints])
            return cursor.rowcount

    # =========================================================================
    # Root Membership
    # =========================================================================

    def replace_folder_files(self, folder_id: str, files: dict[str, str]) -> None:
        """
        Record the files a root holds, replacing the previous record.

        Args:
            folder_id: The root.
            files: fingerprint -> relative path, from a complete scan.
        """
        with self._transaction() as conn:
            conn.execute("DELETE FROM folder_files WHERE folder_id = ?", (folder_id,))
            conn.executemany(
                "INSERT OR REPLACE INTO folder_files (folder_id, fingerprint, relative_path) VALUES (?, ?, ?)",
                [(folder_id, fp, path) for fp, path in files.items()]
            )

    def get_folder_files(self, folder_id: str) -> dict[str, str]:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "SELECT fingerprint, relative_path FROM folder_files WHERE folder_id = ?", (folder_id,)
                )
                return {row[0]: row[1] for row in cursor.fetchall()}

    def rehome_tracks(self, folder_id: str, fingerprints: Iterable[str]) -> set[str]:
        """
        Move tracks of a root to another root that holds the same file.

        Args:
            folder_id: Root the tracks currently belong to.
            fingerprints: Tracks to move.

        Returns:
            Fingerprints that were moved. The others have no copy elsewhere.
        """
        fingerprints = list(fingerprints)
        if not fingerprints:
            return set()
        with self._transaction() as conn:
            return self._rehome_tracks(conn, folder_id, fingerprints)

    def _rehome_tracks(self, conn: sqlite3.Connection, folder_id: str, fingerprints: list[str]) -> set[str]:
        moved: set[str] = set()
        for fp in fingerprints:
            row = conn.execute("""
                SELECT folder_id, relative_path FROM folder_files
                WHERE fingerprint = ? AND folder_id != ?
                ORDER BY folder_id LIMIT 1
            """, (fp, folder_id)).fetchone()
            if row is None:
                continue
            conn.execute(
                "UPDATE tracks SET folder_id = ?, relative_path = ? WHERE fingerprint = ? AND folder_id = ?",
                (row[0], row[1], fp, folder_id)
            )
            moved.add(fp)
        return moved

    # =========================================================================
    # Artist Metadata
    # =========================================================================

    def upsert_artist_metadata(self, entries: Iterable[ArtistMetadata]) -> None:
        """Store artist images, last writer wins per name, in one transaction."""
        entries = list(entries)
        if not entries:
            return
        with self._transaction() as conn:
            conn.executemany("""
                INSERT INTO artist_metadata (name, image_blob, image_mime, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    image_blob = excluded.image_blob,
                    image_mime = excluded.image_mime,
                    updated_at = excluded.updated_at
            """, [(e.name, e.image_blob, e.image_mime, e.updated_at) for e in entries])

    def get_artist_metadata(self, name: str) -> ArtistMetadata | None:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "SELECT name, image_blob, image_mime, updated_at FROM artist_metadata WHERE name = ?",
                    (name,)
                )
                row = cursor.fetchone()
                return ArtistMetadata(**dict(row)) if row else None

    def get_all_artist_metadata(self) -> list[ArtistMetadata]:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "SELECT name, image_blob, image_mime, updated_at FROM artist_metadata ORDER BY name"
                )
                return [ArtistMetadata(**dict(row)) for row in cursor.fetchall()]

    # =========================================================================
    # Playlists
    # =========================================================================

    def upsert_playlist(self, playlist: Playlist) -> None:
        """Create or replace a playlist, including its full track order."""
        with self._transaction() as conn:
            self._upsert_playlist(conn, playlist)

    def _upsert_playlist(self, conn: sqlite3.Connection, playlist: Playlist) -> None:
        conn.execute("""
            INSERT INTO playlists (id, name, created_at) VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET name = excluded.name
        """, (playlist.id, playlist.name, playlist.created_at))
        conn.execute("DELETE FROM playlist_tracks WHERE playlist_id = ?", (playlist.id,))
        conn.executemany(
            "INSERT INTO playlist_tracks (playlist_id, position, fingerprint) VALUES (?, ?, ?)",
            [(playlist.id, position, fp) for position, fp in enumerate(playlist.fingerprints)]
        )

    def get_playlist(self, playlist_id: str) -> Playlist | None:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT id, name, created_at FROM playlists WHERE id = ?", (playlist_id,))
                row = cursor.fetchone()
                if row is None:
                    return None
                return Playlist(
                    id=row["id"],
                    name=row["name"],
                    fingerprints=self._playlist_fingerprints(conn, playlist_id),
                    created_at=row["created_at"] or 0.0,
                )

    def _playlist_fingerprints(self, conn: sqlite3.Connection, playlist_id: str) -> list[str]:
        cursor = conn.execute(
            "SELECT fingerprint FROM playlist_tracks WHERE playlist_id = ? ORDER BY position",
            (playlist_id,)
        )
        return [row[0] for row in cursor.fetchall()]

    def get_playlists(self) -> list[Playlist]:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT id, name, created_at FROM playlists ORDER BY created_at, id")
                return [
                    Playlist(
                        id=row["id"],
                        name=row["name"],
                        fingerprints=self._playlist_fingerprints(conn, row["id"]),
                        created_at=row["created_at"] or 0.0,
                    )
                    for row in cursor.fetchall()
                ]

    def delete_playlist(self, playlist_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM playlists WHERE id = ?", (playlist_id,))
            return cursor.rowcount > 0

    # =========================================================================
    # Favorites & History
    # =========================================================================

    def add_favorite(self, fingerprint: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO favorites (fingerprint, added_at) VALUES (?, ?)",
                (fingerprint, now())
            )

    def remove_favorite(self, fingerprint: str) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM favorites WHERE fingerprint = ?", (fingerprint,))

    def get_favorites(self) -> list[str]:
        """Favorite fingerprints, oldest first."""
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT fingerprint FROM favorites ORDER BY added_at, fingerprint")
                return [row[0] for row in cursor.fetchall()]

    def record_history(self, entry: HistoryEntry, limit: int) -> None:
        """
        Record a playback, replacing any earlier entry of the same track.

        Only the newest `limit` entries are kept.
        """
        with self._transaction() as conn:
            conn.execute("""
                INSERT INTO history (fingerprint, name, artist, album, timestamp)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(fingerprint) DO UPDATE SET
                    name = excluded.name,
                    artist = excluded.artist,
                    album = excluded.album,
                    timestamp = excluded.timestamp
            """, (entry.fingerprint, entry.name, entry.artist, entry.album, entry.timestamp))
            conn.execute("""
                DELETE FROM history WHERE fingerprint NOT IN (
                    SELECT fingerprint FROM history ORDER BY timestamp DESC LIMIT ?
                )
            """, (limit,))

    def get_history(self, limit: int | None = None) -> list[HistoryEntry]:
        """History entries, most recent first."""
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "SELECT fingerprint, name, artist, album, timestamp FROM history "
                    "ORDER BY timestamp DESC LIMIT ?",
                    (-1 if limit is None else limit,)
                )
                return [HistoryEntry(**dict(row)) for row in cursor.fetchall()]

    def clear_history(self) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM history")

    # =========================================================================
    # Export / Import
    # =========================================================================

    def restore(
        self,
        folders: list[LibraryFolder],
        tracks: list[Track],
        artists: list[ArtistMetadata],
        playlists: list[Playlist],
        favorites: list[str],
        history: list[HistoryEntry]
    ) -> None:
        """
        Replace the whole content of every store in one transaction.

        Tracks keep the date_added carried by the records.
        """
        with self._transaction() as conn:
            for table in ("playlist_tracks", "playlists", "favorites", "history",
                          "artist_metadata", "track_artists", "tracks", "folder_files",
                          "library_folders"):
                conn.execute(f"DELETE FROM {table}")

            for folder in folders:
                self._upsert_folder(conn, folder)

            for track in tracks:
                conn.execute(_UPSERT_TRACK_SQL, _track_params(track))
                conn.executemany(
                    "INSERT OR IGNORE INTO track_artists (fingerprint, artist_key) VALUES (?, ?)",
                    [(track.fingerprint, artist_key(a)) for a in track.artists]
                )

            conn.executemany(
                "INSERT INTO artist_metadata (name, image_blob, image_mime, updated_at) VALUES (?, ?, ?, ?)",
                [(a.name, a.image_blob, a.image_mime, a.updated_at) for a in artists]
            )

            for playlist in playlists:
                self._upsert_playlist(conn, playlist)

            timestamp = now()
            conn.executemany(
                "INSERT OR IGNORE INTO favorites (fingerprint, added_at) VALUES (?, ?)",
                [(fp, timestamp + i * 1e-6) for i, fp in enumerate(favorites)]
            )
            conn.executemany(
                "INSERT OR REPLACE INTO history (fingerprint, name, artist, album, timestamp) "
                "VALUES (?, ?, ?, ?, ?)",
                [(h.fingerprint, h.name, h.artist, h.album, h.timestamp) for h in history]
            )

    def get_stats(self) -> dict[str, Any]:
        """Row counts of the main stores, for display."""
        with self._lock:
            with self._get_connection() as conn:
                stats = {}
                for table in ("library_folders", "tracks", "artist_metadata", "playlists", "favorites", "history"):
                    stats[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                return stats
