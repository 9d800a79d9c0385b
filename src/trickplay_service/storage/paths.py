"""Per-item metadata layout and atomic file replacement."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

TRICKPLAY_DIR = "trickplay"


def item_trickplay_dir(metadata_dir: Path, item_id: str) -> Path:
    """
    Directory holding an item's trickplay files.

    Items are sharded by the first two characters of their id:
    <metadata_dir>/library/ab/abcdef.../trickplay
    """
    if not item_id or "/" in item_id or "\\" in item_id or item_id in (".", ".."):
        raise ValueError(f"Invalid item id: {item_id!r}")
    return Path(metadata_dir) / "library" / item_id[:2] / item_id / TRICKPLAY_DIR


def atomic_write(path: Path, data: bytes) -> None:
    """Replace path with data so readers see either the old file or the new one, never a mix."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
