"""
Track identity.

A fingerprint is derived from the file name and byte size only; file
content is never read. This keeps diffing free of I/O at the cost of
treating two different files with identical name and size as the same
track. That collision is an accepted, documented limitation.

The fingerprint is the sole deduplication key across the scan, the cache,
playlists, favorites and history.
"""

from medialib.library.models import FileRef


def fingerprint(name: str, size: int) -> str:
    """
    Derive the identity of a file.

    Args:
        name: File name including extension (no directory part).
        size: Size in bytes.

    Returns:
        "<name>-<size>", e.g. "01 - Song.mp3-5242880".
    """
    return f"{name}-{size}"


def fingerprint_ref(ref: FileRef) -> str:
    """Fingerprint of a scanned file reference."""
    return fingerprint(ref.name, ref.size)
