"""Helper utilities for audit logging.

For timestamp and hashing utilities, see catalogdq.utils.
"""

import importlib.metadata
import secrets
from datetime import UTC, datetime

__all__ = ["generate_run_id", "get_package_version"]


def generate_run_id() -> str:
    """Generate unique run identifier.

    Returns
    -------
    str
        Run ID in format: ISO8601_timestamp__random_suffix.
    """
    timestamp = datetime.now(UTC).isoformat().replace("+00:00", "Z")
    suffix = secrets.token_hex(4)
    return f"{timestamp}__{suffix}"


def get_package_version() -> str:
    """Get installed catalogdq version, or "unknown" in a source checkout."""
    try:
        return importlib.metadata.version("catalogdq")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"
