"""
Recursive scanner.

Walks a source root depth-first and produces one ScanCandidate per audio
file. Each directory is listed once and its entries are classified
(case-insensitively) into:

    - audio files        (AUDIO_EXTENSIONS)
    - subdirectories
    - a cover image      (COVER_STEMS x IMAGE_EXTENSIONS, in priority order,
                          then any image named cover*/folder*/album*/art*)
    - an artist image    (ARTIST_IMAGE_STEMS x IMAGE_EXTENSIONS)

Cover and artist images are both inherited down the tree: a directory
without its own image passes its parent's to everything below it, and a
deeper directory's own image overrides the inherited one for its subtree.

Output order is the walk order (directories sorted by name), which is
stable across runs for an unchanged tree.
"""

import re
from dataclasses import dataclass, field
from typing import Callable

from medialib.core.exceptions import MediaLibError, SourceError
from medialib.core.logger import get_logger
from medialib.library.metadata import is_audio_file
from medialib.library.models import FileRef, ScanCandidate
from medialib.sources.base import Source, is_directory_failure


logger = get_logger(__name__)


COVER_STEMS = ('cover', 'folder', 'album', 'art', 'artwork', 'thumbnail', '.cover')
ARTIST_IMAGE_STEMS = ('artist', 'singer', 'band', 'performer')
IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.gif', '.webp', '.bmp')

_COVER_PREFIX = re.compile(r'^(cover|folder|album|art)', re.IGNORECASE)


def _is_image(name: str) -> bool:
    return name.lower().endswith(IMAGE_EXTENSIONS)


def _pick_by_stem(images: list[FileRef], stems: tuple[str, ...]) -> FileRef | None:
    by_name = {ref.name.lower(): ref for ref in images}
    for stem in stems:
        for ext in IMAGE_EXTENSIONS:
            ref = by_name.get(stem + ext)
            if ref is not None:
                return ref
    return None


def pick_cover(images: list[FileRef]) -> FileRef | None:
    """Choose the cover image of one directory, or None."""
    ref = _pick_by_stem(images, COVER_STEMS)
    if ref is not None:
        return ref
    artist_ref = pick_artist_image(images)
    return next((r for r in images if _COVER_PREFIX.match(r.name) and r is not artist_ref), None)


def pick_artist_image(images: list[FileRef]) -> FileRef | None:
    """Choose the artist image of one directory, or None."""
    return _pick_by_stem(images, ARTIST_IMAGE_STEMS)


@dataclass
class ScanResult:
    """
    Outcome of scanning one root.

    Attributes:
        candidates: Audio files in walk order.
        cancelled: The walk was stopped before the end.
        unreadable: Directories below the root that could not be listed.
                    Files inside them are missing from candidates.
        directories: Directories listed.
    """
    candidates: list[ScanCandidate] = field(default_factory=list)
    cancelled: bool = False
    unreadable: list[str] = field(default_factory=list)
    directories: int = 0

    @property
    def complete(self) -> bool:
        """True when every directory below the root was listed."""
        return not self.cancelled and not self.unreadable


class RecursiveScanner:
    """
    Depth-first walker over one source root.

    Example:
        result = RecursiveScanner(source).scan()
        for candidate in result.candidates:
            ...
    """

    def __init__(self, source: Source) -> None:
        self.source = source

    def _read_image(self, ref: FileRef) -> bytes | None:
        try:
            return self.source.read_file(ref) or None
        except (OSError, MediaLibError) as e:
            logger.warning(f"Cannot read image {ref.relative_path}: {e}")
            return None

    def _list(self, relative_path: str, result: ScanResult) -> list[FileRef] | None:
        """Entries of one directory, or None when a subdirectory cannot be listed."""
        try:
            return self.source.list_directory(relative_path)
        except SourceError as e:
            if not relative_path or not is_directory_failure(e):
                raise
            logger.warning(f"Skipping unreadable directory {relative_path}: {e.message}")
            result.unreadable.append(relative_path)
            return None

    def scan(self, cancelled: Callable[[], bool] | None = None) -> ScanResult:
        """
        Walk the whole root.

        A subdirectory that cannot be listed is recorded in
        ScanResult.unreadable and the walk goes on with its siblings.

        Args:
            cancelled: Polled before each directory; when it returns True
                       the walk stops and the result is marked cancelled.

        Raises:
            PermissionDeniedError / SourceUnreachableError: The root itself
            cannot be listed, or the server fails while walking.
        """
        result = ScanResult()
        self._walk("", None, None, result, cancelled)
        logger.debug(
            f"Scanned {self.source.folder_id}: {len(result.candidates)} audio files "
            f"in {result.directories} directories, {len(result.unreadable)} unreadable"
        )
        return result

    def _walk(
        self,
        relative_path: str,
        inherited_cover: bytes | None,
        inherited_artist_image: bytes | None,
        result: ScanResult,
        cancelled: Callable[[], bool] | None
    ) -> None:
        if cancelled is not None and cancelled():
            result.cancelled = True
            return

        entries = self._list(relative_path, result)
        if entries is None:
            return
        result.directories += 1

        audio = [e for e in entries if not e.is_dir and is_audio_file(e.name)]
        subdirs = [e for e in entries if e.is_dir]
        images = [e for e in entries if not e.is_dir and _is_image(e.name)]

        cover, artist_image = inherited_cover, inherited_artist_image
        if audio or subdirs:
            cover_ref = pick_cover(images)
            if cover_ref is not None:
                cover = self._read_image(cover_ref) or inherited_cover

            artist_ref = pick_artist_image(images)
            if artist_ref is not None:
                artist_image = self._read_image(artist_ref) or inherited_artist_image

        for ref in audio:
            result.candidates.append(ScanCandidate(
                file_ref=ref,
                folder_id=self.source.folder_id,
                inherited_cover=cover,
                inherited_artist_image=artist_image,
            ))

        for subdir in subdirs:
            self._walk(subdir.relative_path, cover, artist_image, result, cancelled)
            if result.cancelled:
                return
