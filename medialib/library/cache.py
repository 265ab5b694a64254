"""
Content-addressed track cache.

TrackCache is the only way the rest of the library reads or writes Track
records. Records are keyed by fingerprint and persisted in the tracks
table together with their cover blob. On every read a fresh display
handle is derived from the blob (see medialib.library.blobs); handles are
never written back.

Secondary lookups (artist, album, root, date added) go through the
database indexes rather than a full scan.
"""

from typing import Callable, Iterable

from medialib.core.database import Database
from medialib.core.logger import get_logger
from medialib.library.blobs import DisplayHandleRegistry
from medialib.library.models import ArtistMetadata, Track, artist_key
from medialib.utils.helpers import now


logger = get_logger(__name__)


class TrackCache:
    """
    Track store keyed by fingerprint.

    Attributes:
        database: Backing SQLite database.
        handles: Registry issuing display handles for cover and artist images.
    """

    def __init__(self, database: Database, handles: DisplayHandleRegistry | None = None) -> None:
        self.database = database
        self.handles = handles or DisplayHandleRegistry()

    def _hydrate(self, track: Track) -> Track:
        if track.cover_blob:
            track.cover_url = self.handles.create(track.cover_blob, track.cover_mime, key=track.fingerprint)
        else:
            track.cover_url = None
        return track

    def _hydrate_all(self, tracks: list[Track]) -> list[Track]:
        return [self._hydrate(t) for t in tracks]

    # =========================================================================
    # Core contract
    # =========================================================================

    def put(self, tracks: Iterable[Track]) -> list[Track]:
        """
        Insert or replace tracks by fingerprint, as one durable unit.

        date_added of an already cached fingerprint is kept.

        Returns:
            The stored tracks, with display handles attached.
        """
        return self._hydrate_all(self.database.put_tracks(tracks))

    def get_all(self) -> list[Track]:
        return self._hydrate_all(self.database.get_all_tracks())

    def get_by_fingerprint(self, fingerprint: str) -> Track | None:
        track = self.database.get_track(fingerprint)
        return self._hydrate(track) if track else None

    def get_many(self, fingerprints: Iterable[str]) -> list[Track]:
        """Tracks in the given order, skipping fingerprints not in the cache."""
        tracks = []
        for fp in fingerprints:
            track = self.get_by_fingerprint(fp)
            if track is not None:
                tracks.append(track)
        return tracks

    def delete_by_folder(self, folder_id: str) -> int:
        """Remove every track of a root. Returns the number removed."""
        for fp in self.database.get_fingerprints_by_folder(folder_id):
            self.handles.revoke_key(fp)
        removed = self.database.delete_tracks_by_folder(folder_id)
        logger.debug(f"Removed {removed} tracks of {folder_id}")
        return removed

    def delete(self, fingerprints: Iterable[str]) -> int:
        fingerprints = list(fingerprints)
        for fp in fingerprints:
            self.handles.revoke_key(fp)
        return self.database.delete_tracks(fingerprints)

    # =========================================================================
    # Secondary lookups
    # =========================================================================

    def get_by_folder(self, folder_id: str) -> list[Track]:
        return self._hydrate_all(self.database.get_tracks_by_folder(folder_id))

    def get_by_artist(self, artist: str) -> list[Track]:
        return self._hydrate_all(self.database.get_tracks_by_artist(artist))

    def get_by_album(self, album: str) -> list[Track]:
        return self._hydrate_all(self.database.get_tracks_by_album(album))

    def get_recent(self, limit: int | None = None) -> list[Track]:
        """Tracks ordered by date_added, newest first."""
        return self._hydrate_all(self.database.get_recent_tracks(limit))

    def cover_index(self) -> dict[str, bool]:
        """fingerprint -> has cover, for every cached track."""
        return self.database.get_cover_index()

    def fingerprints_for_folder(self, folder_id: str) -> set[str]:
        return self.database.get_fingerprints_by_folder(folder_id)

    def count_for_folder(self, folder_id: str) -> int:
        return self.database.count_tracks_by_folder(folder_id)

    def record_folder_files(self, folder_id: str, files: dict[str, str]) -> None:
        """Remember what a complete scan of a root found (fingerprint -> relative path)."""
        self.database.replace_folder_files(folder_id, files)

    def rehome(self, folder_id: str, fingerprints: Iterable[str]) -> set[str]:
        """Hand tracks of a root over to other roots holding the same files."""
        return self.database.rehome_tracks(folder_id, fingerprints)

    def search(self, query: str, normalize: Callable[[str], str]) -> list[Track]:
        """Tracks whose normalized name, artist or album contains the normalized query."""
        needle = normalize(query)
        if not needle:
            return []
        return [
            track for track in self.get_all()
            if needle in normalize(track.name)
            or needle in normalize(track.artist)
            or needle in normalize(track.album)
        ]

    def group_by_album(self) -> dict[str, list[Track]]:
        """Album name -> tracks ordered by disc and track number."""
        groups: dict[str, list[Track]] = {}
        for album in self.database.get_albums():
            groups[album] = self.get_by_album(album)
        return groups

    def group_by_artist(self) -> dict[str, list[Track]]:
        """
        Individual performer -> tracks crediting them.

        A track with several performers appears under each of them. Keys
        use the spelling of the first track seen for that performer.
        """
        groups: dict[str, list[Track]] = {}
        names: dict[str, str] = {}
        for track in self.get_all():
            for artist in track.artists:
                key = artist_key(artist)
                display = names.setdefault(key, artist)
                groups.setdefault(display, []).append(track)
        return groups

    # =========================================================================
    # Artist metadata
    # =========================================================================

    def put_artist_images(self, images: dict[str, tuple[bytes, str | None]]) -> int:
        """
        Store artist images keyed by artist name (last writer wins).

        Args:
            images: artist name -> (image bytes, MIME type)

        Returns:
            Number of artists written.
        """
        timestamp = now()
        entries = [
            ArtistMetadata(name=artist_key(name), image_blob=blob, image_mime=mime, updated_at=timestamp)
            for name, (blob, mime) in images.items()
        ]
        self.database.upsert_artist_metadata(entries)
        return len(entries)

    def get_artist_metadata(self, name: str) -> ArtistMetadata | None:
        entry = self.database.get_artist_metadata(artist_key(name))
        if entry is not None:
            entry.image_url = self.handles.create(entry.image_blob, entry.image_mime, key=f"artist:{entry.name}")
        return entry

    def get_all_artist_metadata(self) -> list[ArtistMetadata]:
        entries = self.database.get_all_artist_metadata()
        for entry in entries:
            entry.image_url = self.handles.create(entry.image_blob, entry.image_mime, key=f"artist:{entry.name}")
        return entries
