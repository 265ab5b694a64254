"""
Utility functions and helpers for medialib
Common functions for path sanitizing, ids and timestamps
"""

import re
import time
import uuid
from datetime import datetime, timezone
from pathlib import PurePosixPath


# Characters not allowed in Windows filenames plus control characters
_ILLEGAL_PATH_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')

_RESERVED_NAMES = {
    'CON', 'PRN', 'AUX', 'NUL',
    'COM1', 'COM2', 'COM3', 'COM4', 'COM5', 'COM6', 'COM7', 'COM8', 'COM9',
    'LPT1', 'LPT2', 'LPT3', 'LPT4', 'LPT5', 'LPT6', 'LPT7', 'LPT8', 'LPT9'
}


def sanitize_path_segment(segment: str) -> str:
    """
    Sanitize a single path segment for cross-platform compatibility

    Args:
        segment: One directory or file name

    Returns:
        Sanitized segment, "_" if nothing usable remains
    """
    cleaned = _ILLEGAL_PATH_CHARS.sub('', segment).strip().rstrip(' .')

    if not cleaned or cleaned in ('.', '..'):
        return "_"

    stem = cleaned.split('.')[0].upper()
    if stem in _RESERVED_NAMES:
        cleaned = f"_{cleaned}"

    return cleaned


def sanitize_relative_path(relative_path: str, max_segments: int = 12) -> PurePosixPath:
    """
    Turn an untrusted relative path into a safe, bounded relative path

    Every segment is sanitized and only the last max_segments segments
    are kept, so deeply nested remote trees cannot produce over-long
    local paths.

    Args:
        relative_path: POSIX-style path, may contain "/" and "\\"
        max_segments: Number of trailing segments to keep

    Returns:
        Relative PurePosixPath, never absolute and never containing ".."
    """
    parts = [p for p in re.split(r'[/\\]+', relative_path) if p not in ('', '.')]
    segments = [sanitize_path_segment(p) for p in parts][-max_segments:]

    if not segments:
        return PurePosixPath("_")

    return PurePosixPath(*segments)


def join_relative(parent: str, name: str) -> str:
    """Join a relative POSIX path and a child name ("" is the root)"""
    return f"{parent}/{name}" if parent else name


def generate_id(prefix: str = "") -> str:
    """Generate an opaque id, optionally prefixed (e.g. "manual_")"""
    return f"{prefix}{uuid.uuid4().hex[:12]}"


def now() -> float:
    """Current time as epoch seconds"""
    return time.time()


def format_timestamp(timestamp: float | None) -> str:
    """
    Format an epoch timestamp for display

    Args:
        timestamp: Epoch seconds or None

    Returns:
        "YYYY-MM-DD HH:MM:SS" in local time, "never" for None
    """
    if not timestamp:
        return "never"
    dt = datetime.fromtimestamp(timestamp, tz=timezone.utc).astimezone()
    return dt.strftime('%Y-%m-%d %H:%M:%S')


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in human-readable format

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"

    size = float(size_bytes)
    for unit in ('KB', 'MB', 'GB'):
        size /= 1024
        if size < 1024:
            return f"{size:.1f} {unit}"
    return f"{size / 1024:.1f} TB"
