"""JSON document helpers shared by the pattern store and healing logs.

Writes go through a sibling temp file and an atomic rename so readers
never observe a partially written document.
"""

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Any

from mender.utils.time import Clock, epoch_millis


def read_json_document(path: Path) -> dict[str, Any] | None:
    """Read a JSON object from ``path``.

    Args:
        path: File to read.

    Returns:
        The decoded object, or None when the file does not exist.

    Raises:
        ValueError: If the content is not valid JSON or not a JSON object.
            ``json.JSONDecodeError`` is a ValueError subclass.
        OSError: If the file exists but cannot be read.
    """
    if not path.exists():
        return None
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def atomic_write_json(
    path: Path,
    data: dict[str, Any],
    clock: Clock = time.time,
) -> None:
    """Write ``data`` to ``path`` atomically.

    The document is written to ``<path>.tmp.<millis>``, flushed to disk
    and renamed into place. On any failure the temp file is removed and
    the error is re-raised unchanged.

    Args:
        path: Destination file. Parent directories are created.
        data: JSON-serializable object.
        clock: Clock used to stamp the temp file name.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f"{path.name}.tmp.{epoch_millis(clock)}")
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise
