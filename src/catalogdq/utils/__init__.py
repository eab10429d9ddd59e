"""Common utility functions for catalogdq.

This module consolidates shared utility functions used across the codebase,
including hashing, timestamps and atomic file writes.
"""

from catalogdq.utils.files import write_json_atomic
from catalogdq.utils.hashing import calculate_file_sha256, format_sha256
from catalogdq.utils.timestamps import ensure_utc, get_iso_timestamp, parse_iso_timestamp

__all__ = [
    "get_iso_timestamp",
    "parse_iso_timestamp",
    "ensure_utc",
    "calculate_file_sha256",
    "format_sha256",
    "write_json_atomic",
]
