"""
Playlists, favorites and playback history.

All three refer to tracks by fingerprint only, so they survive re-scans,
cache rebuilds and export/import. Track objects are materialized from the
cache on demand; fingerprints no longer in the cache are skipped when
materializing but kept in the stored sequence.
"""

from medialib.core.exceptions import PlaylistNotFoundError
from medialib.core.logger import get_logger
from medialib.library.context import LibraryContext
from medialib.library.models import HistoryEntry, MatchResult, Playlist, Track
from medialib.matching.matcher import TextMatcher
from medialib.utils.helpers import generate_id, now


logger = get_logger(__name__)


HISTORY_LIMIT = 100


class PlaylistManager:
    """
    Fingerprint-sequence playlists plus favorites and history.

    Example:
        playlists = PlaylistManager(context)
        playlist, result = playlists.create_from_text("Road trip", text)
        for line in result.unmatched:
            print(f"Not found: {line}")
    """

    def __init__(self, context: LibraryContext, history_limit: int = HISTORY_LIMIT) -> None:
        self.context = context
        self.database = context.database
        self.cache = context.cache
        self.history_limit = history_limit

    # =========================================================================
    # Playlists
    # =========================================================================

    def get(self, playlist_id: str) -> Playlist:
        playlist = self.database.get_playlist(playlist_id)
        if playlist is None:
            raise PlaylistNotFoundError(
                f"No playlist with id {playlist_id}",
                details={"playlist_id": playlist_id}
            )
        return playlist

    def list_playlists(self) -> list[Playlist]:
        return self.database.get_playlists()

    def create(self, name: str, fingerprints: list[str] | None = None) -> Playlist:
        playlist = Playlist(
            id=generate_id("pl_"),
            name=name,
            fingerprints=list(dict.fromkeys(fingerprints or [])),
            created_at=now(),
        )
        self.database.upsert_playlist(playlist)
        logger.info(f"Created playlist '{name}' with {len(playlist.fingerprints)} tracks")
        return playlist

    def rename(self, playlist_id: str, name: str) -> Playlist:
        playlist = self.get(playlist_id)
        playlist.name = name
        self.database.upsert_playlist(playlist)
        return playlist

    def delete(self, playlist_id: str) -> bool:
        return self.database.delete_playlist(playlist_id)

    def add_tracks(self, playlist_id: str, fingerprints: list[str]) -> int:
        """
        Append fingerprints not already in the playlist.

        Returns:
            Number of fingerprints added.
        """
        playlist = self.get(playlist_id)
        present = set(playlist.fingerprints)
        added = 0
        for fp in fingerprints:
            if fp not in present:
                playlist.fingerprints.append(fp)
                present.add(fp)
                added += 1
        if added:
            self.database.upsert_playlist(playlist)
        return added

    def remove_track(self, playlist_id: str, fingerprint: str) -> bool:
        playlist = self.get(playlist_id)
        if fingerprint not in playlist.fingerprints:
            return False
        playlist.fingerprints.remove(fingerprint)
        self.database.upsert_playlist(playlist)
        return True

    def move_before(self, playlist_id: str, fingerprint: str, target: str | None) -> Playlist:
        """
        Move one entry in front of another.

        Args:
            fingerprint: Entry to move.
            target: Entry to move in front of, or None to move to the end.
                    An unknown target also moves to the end.
        """
        playlist = self.get(playlist_id)
        if fingerprint not in playlist.fingerprints or fingerprint == target:
            return playlist

        order = [fp for fp in playlist.fingerprints if fp != fingerprint]
        if target is None or target not in order:
            order.append(fingerprint)
        else:
            order.insert(order.index(target), fingerprint)

        playlist.fingerprints = order
        self.database.upsert_playlist(playlist)
        return playlist

    def tracks(self, playlist_id: str) -> list[Track]:
        """Materialize a playlist from the cache, in playlist order."""
        return self.cache.get_many(self.get(playlist_id).fingerprints)

    # =========================================================================
    # Text import
    # =========================================================================

    def match_text(self, text: str, fuzzy: bool = False) -> MatchResult:
        """Match "Title - Artist" lines against the whole cache."""
        matcher = TextMatcher(self.cache.get_all(), self.context.normalizer)
        return matcher.match_text(text, fuzzy=fuzzy)

    def create_from_text(self, name: str, text: str, fuzzy: bool = False) -> tuple[Playlist, MatchResult]:
        """Create a playlist from "Title - Artist" lines."""
        result = self.match_text(text, fuzzy)
        playlist = self.create(name, [t.fingerprint for t in result.matched])
        if result.unmatched:
            logger.info(f"{len(result.unmatched)} lines did not match any track")
        return playlist, result

    def append_from_text(self, playlist_id: str, text: str, fuzzy: bool = False) -> MatchResult:
        result = self.match_text(text, fuzzy)
        self.add_tracks(playlist_id, [t.fingerprint for t in result.matched])
        return result

    # =========================================================================
    # Favorites
    # =========================================================================

    def add_favorite(self, fingerprint: str) -> None:
        self.database.add_favorite(fingerprint)

    def remove_favorite(self, fingerprint: str) -> None:
        self.database.remove_favorite(fingerprint)

    def toggle_favorite(self, fingerprint: str) -> bool:
        """Flip favorite status. Returns True when the track is now a favorite."""
        if fingerprint in set(self.database.get_favorites()):
            self.database.remove_favorite(fingerprint)
            return False
        self.database.add_favorite(fingerprint)
        return True

    def favorites(self) -> list[Track]:
        return self.cache.get_many(self.database.get_favorites())

    # =========================================================================
    # History
    # =========================================================================

    def record_play(self, track: Track) -> None:
        self.database.record_history(
            HistoryEntry(
                fingerprint=track.fingerprint,
                name=track.name,
                artist=track.artist,
                album=track.album,
                timestamp=now(),
            ),
            self.history_limit,
        )

    def history(self, limit: int | None = None) -> list[HistoryEntry]:
        return self.database.get_history(limit)

    def clear_history(self) -> None:
        self.database.clear_history()
