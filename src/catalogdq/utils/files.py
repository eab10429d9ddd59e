"""Atomic file writes.

Checkpoints and store snapshots must never be observed half-written, so
they go through a temp file that is fsynced and renamed over the target.
"""

import json
import os
from pathlib import Path
from typing import Any

__all__ = ["write_json_atomic"]


def write_json_atomic(path: Path, data: Any, *, indent: int | None = 2) -> None:
    """Serialize *data* as JSON and atomically replace *path*.

    Parameters
    ----------
    path : Path
        Destination file.
    data : Any
        JSON-serializable payload.
    indent : int | None, optional
        Indentation passed to ``json.dump``, by default 2.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + ".tmp")

    with temp_path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, ensure_ascii=False, sort_keys=True)
        f.write("\n")
        f.flush()
        os.fsync(f.fileno())

    temp_path.replace(path)
