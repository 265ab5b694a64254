"""
Text Match Engine.

Resolves free-text track lists (one track per line, optionally written as
"Title - Artist") against the cached library. Used to build or extend
playlists from pasted text. The engine only reads tracks; it never
touches the cache.

Per line:
    1. Without a separator, the whole line is a title compared against every
       track. Exact mode requires identical titles; fuzzy mode also accepts
       containment, scored contains < starts-with < exact.
    2. With a separator (the LAST " - " wins, so titles containing " - "
       survive), candidates are narrowed through the artist index and every
       input artist must occur as a substring of one of the candidate's
       artists. Titles are scored the same way.
    3. Equal scores prefer the higher bitrate.
    4. At most one track per line; a track matched by several lines is
       returned once. Lines without a match are returned as written.
"""

from dataclasses import dataclass
from typing import Callable, Iterable

from medialib.core.logger import get_logger
from medialib.library.models import MatchResult, Track
from medialib.matching.normalize import TextNormalizer, split_artists


logger = get_logger(__name__)


SEPARATOR = " - "

SCORE_NONE = 0
SCORE_CONTAINS = 1
SCORE_STARTS_WITH = 2
SCORE_EXACT = 3


@dataclass
class _IndexedTrack:
    track: Track
    title: str
    artists: list[str]


def title_score(candidate: str, query: str, fuzzy: bool) -> int:
    """
    Score a normalized library title against a normalized query title.

    Returns:
        SCORE_EXACT, SCORE_STARTS_WITH, SCORE_CONTAINS or SCORE_NONE.
        Exact mode only ever returns SCORE_EXACT or SCORE_NONE.
    """
    if not query:
        return SCORE_NONE
    if candidate == query:
        return SCORE_EXACT
    if not fuzzy:
        return SCORE_NONE
    if candidate.startswith(query):
        return SCORE_STARTS_WITH
    if query in candidate:
        return SCORE_CONTAINS
    return SCORE_NONE


def _better(score: int, track: Track, best: tuple[int, Track] | None) -> bool:
    if best is None:
        return True
    best_score, best_track = best
    if score != best_score:
        return score > best_score
    return (track.bitrate or 0) > (best_track.bitrate or 0)


class TextMatcher:
    """
    Matches text lines against a fixed snapshot of tracks.

    Attributes:
        normalize: Text normalizer applied to both sides.

    Example:
        matcher = TextMatcher(cache.get_all())
        result = matcher.match_text("夜曲 - 周杰伦\\nYesterday", fuzzy=True)
    """

    def __init__(
        self,
        tracks: Iterable[Track],
        normalizer: Callable[[str], str] | None = None
    ) -> None:
        self.normalize = normalizer or TextNormalizer()
        self._entries: list[_IndexedTrack] = []
        self._artist_index: dict[str, list[_IndexedTrack]] = {}

        for track in tracks:
            entry = _IndexedTrack(
                track=track,
                title=self.normalize(track.name),
                artists=[self.normalize(a) for a in track.artists],
            )
            self._entries.append(entry)
            for artist in entry.artists:
                self._artist_index.setdefault(artist, []).append(entry)

    def _candidates_for(self, artist_tokens: list[str]) -> list[_IndexedTrack]:
        seen: set[int] = set()
        candidates: list[_IndexedTrack] = []

        for token in artist_tokens:
            hits = self._artist_index.get(token)
            if hits is None:
                # Token may be part of a longer indexed name
                hits = [
                    entry
                    for key, entries in self._artist_index.items()
                    if token in key
                    for entry in entries
                ]
            for entry in hits:
                if id(entry) not in seen:
                    seen.add(id(entry))
                    candidates.append(entry)

        return candidates

    def _match_title_only(self, title: str, fuzzy: bool) -> Track | None:
        best: tuple[int, Track] | None = None
        for entry in self._entries:
            score = title_score(entry.title, title, fuzzy)
            if score and _better(score, entry.track, best):
                best = (score, entry.track)
        return best[1] if best else None

    def _match_title_and_artist(self, title: str, artist_tokens: list[str], fuzzy: bool) -> Track | None:
        best: tuple[int, Track] | None = None
        for entry in self._candidates_for(artist_tokens):
            score = title_score(entry.title, title, fuzzy)
            if not score:
                continue
            if not all(any(token in artist for artist in entry.artists) for token in artist_tokens):
                continue
            if _better(score, entry.track, best):
                best = (score, entry.track)
        return best[1] if best else None

    def match_line(self, line: str, fuzzy: bool = False) -> Track | None:
        """Resolve one stripped, non-empty line to at most one track."""
        index = line.rfind(SEPARATOR)
        if index == -1:
            return self._match_title_only(self.normalize(line), fuzzy)

        title = self.normalize(line[:index])
        artist_part = line[index + len(SEPARATOR):]
        artist_tokens = [self.normalize(a) for a in split_artists(artist_part)]
        artist_tokens = [a for a in artist_tokens if a]
        if not artist_tokens:
            return self._match_title_only(title, fuzzy)

        return self._match_title_and_artist(title, artist_tokens, fuzzy)

    def match_text(self, text: str, fuzzy: bool = False) -> MatchResult:
        """
        Resolve every line of text.

        Args:
            text: One nominal track per line; blank lines are ignored.
            fuzzy: Accept containment matches in addition to exact titles.

        Returns:
            MatchResult with matched tracks (in first-match order, without
            duplicate fingerprints) and unmatched lines.
        """
        result = MatchResult()
        matched_fingerprints: set[str] = set()

        for raw_line in text.splitlines():
            line = raw_line.strip()
            if not line:
                continue

            track = self.match_line(line, fuzzy)
            if track is None:
                result.unmatched.append(line)
            elif track.fingerprint not in matched_fingerprints:
                matched_fingerprints.add(track.fingerprint)
                result.matched.append(track)

        logger.debug(
            f"Text match: {len(result.matched)} matched, {len(result.unmatched)} unmatched "
            f"(fuzzy={fuzzy})"
        )
        return result


def match_tracks(
    text: str,
    tracks: Iterable[Track],
    fuzzy: bool = False,
    normalizer: Callable[[str], str] | None = None
) -> MatchResult:
    """One-shot convenience wrapper around TextMatcher.match_text()."""
    return TextMatcher(tracks, normalizer).match_text(text, fuzzy)
