"""Utility helpers for medialib."""

from medialib.utils.helpers import (
    format_file_size,
    format_timestamp,
    generate_id,
    join_relative,
    now,
    sanitize_path_segment,
    sanitize_relative_path,
)

__all__ = [
    "format_file_size",
    "format_timestamp",
    "generate_id",
    "join_relative",
    "now",
    "sanitize_path_segment",
    "sanitize_relative_path",
]
