"""Timestamp utilities for catalogdq.

All timestamps written by the engine are UTC ISO8601 strings with a
trailing ``Z``.
"""

from datetime import UTC, datetime

__all__ = ["get_iso_timestamp", "parse_iso_timestamp", "ensure_utc"]


def get_iso_timestamp() -> str:
    """Get current UTC timestamp in ISO8601 format with microseconds.

    Returns
    -------
    str
        ISO8601 timestamp (e.g., "2026-02-03T12:34:56.123456Z").
    """
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def parse_iso_timestamp(iso_str: str) -> datetime:
    """Parse an ISO8601 string into a timezone-aware UTC datetime.

    Handles both ``Z`` and ``+00:00`` suffixes; naive values are
    assumed to be UTC.
    """
    return ensure_utc(datetime.fromisoformat(iso_str.replace("Z", "+00:00")))


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
