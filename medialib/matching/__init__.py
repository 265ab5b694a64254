"""
Text matching for medialib.

    - normalize: width/case (and optional Traditional Chinese) folding,
      artist splitting
    - matcher: the Text Match Engine used by playlist import/append
"""

from medialib.matching.matcher import TextMatcher, match_tracks, title_score
from medialib.matching.normalize import (
    TextNormalizer,
    join_artists,
    normalize_artist_field,
    split_artists,
)

__all__ = [
    "TextMatcher",
    "TextNormalizer",
    "join_artists",
    "match_tracks",
    "normalize_artist_field",
    "split_artists",
    "title_score",
]
