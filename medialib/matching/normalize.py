"""
Text normalization shared by metadata extraction and text matching.

normalize(): width folding (NFKC turns full-width "ＡＢＣ" into "ABC"),
case folding and whitespace collapsing, plus optional Traditional to
Simplified Chinese folding through zhconv.

split_artists(): splits a raw artist tag into individual performers.
"""

import re
import unicodedata

import zhconv


_WHITESPACE = re.compile(r'\s+')
_ARTIST_DELIMITERS = re.compile(r'\s*(?:/|&|,|;|\bfeat\.|\bft\.)\s*', re.IGNORECASE)
_LATIN = re.compile(r'[A-Za-z]')
_CJK = re.compile(r'[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af\uf900-\ufaff]')


class TextNormalizer:
    """
    Callable folding text so comparisons are width- and case-insensitive.

    Attributes:
        fold_traditional: Also map Traditional Chinese to Simplified.

    Example:
        normalize = TextNormalizer()
        normalize("ＹＥＳＴＥＲＤＡＹ ") == "yesterday"
    """

    def __init__(self, fold_traditional: bool = False) -> None:
        self.fold_traditional = fold_traditional

    def __call__(self, text: str | None) -> str:
        if not text:
            return ""
        folded = unicodedata.normalize('NFKC', text)
        if self.fold_traditional:
            folded = zhconv.convert(folded, 'zh-hans')
        return _WHITESPACE.sub(' ', folded.casefold()).strip()


def _is_pure_cjk(text: str) -> bool:
    return bool(_CJK.search(text)) and not _LATIN.search(text)


def split_artists(raw: str | None) -> list[str]:
    """
    Split an artist tag into individual performers.

    Splits on "/", "&", ",", ";", "feat." and "ft.". A part made only of
    CJK characters (no Latin letters) is further split on whitespace, since
    CJK tags commonly separate performers with spaces.

    Args:
        raw: Artist tag as read from the file.

    Returns:
        Performer names in original order, without duplicates or blanks.
    """
    if not raw:
        return []

    names: list[str] = []
    for part in _ARTIST_DELIMITERS.split(raw):
        part = part.strip()
        if not part:
            continue
        pieces = part.split() if _is_pure_cjk(part) else [part]
        for piece in pieces:
            if piece not in names:
                names.append(piece)
    return names


def join_artists(names: list[str]) -> str:
    """Join performer names into the stored "/"-separated form."""
    return "/".join(names)


def normalize_artist_field(raw: str | None) -> str:
    """split_artists() followed by join_artists(); "" for an empty tag."""
    return join_artists(split_artists(raw))
