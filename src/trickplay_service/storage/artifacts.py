"""Preview artifact files on the metadata filesystem."""

from __future__ import annotations

import logging
from pathlib import Path

from ..errors import ArtifactWriteError
from ..library.types import VideoItem
from .paths import atomic_write, item_trickplay_dir

logger = logging.getLogger(__name__)

ARTIFACT_FILENAME = "preview.bif"


class ArtifactStore:
    """Locates, writes and deletes each item's binary preview artifact."""

    def __init__(self, metadata_dir: Path):
        self.metadata_dir = Path(metadata_dir)

    def path_for(self, item: VideoItem) -> Path:
        return item_trickplay_dir(self.metadata_dir, item.id) / ARTIFACT_FILENAME

    def exists(self, item: VideoItem) -> bool:
        return self.path_for(item).is_file()

    def delete(self, item: VideoItem) -> bool:
        """Remove the artifact. Returns False if there was nothing to remove."""
        path = self.path_for(item)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Deleted preview artifact {path}")
        return True

    def write(self, item: VideoItem, data: bytes) -> Path:
        """
        Replace the artifact with data.

        Raises:
            ArtifactWriteError: If the file could not be written
        """
        path = self.path_for(item)
        try:
            atomic_write(path, data)
        except OSError as e:
            raise ArtifactWriteError(f"Failed to write artifact {path}: {e}") from e
        logger.info(f"Wrote preview artifact {path} ({len(data)} bytes)")
        return path

    def open(self, item: VideoItem) -> bytes | None:
        """Read the stored artifact, or None if there is none."""
        try:
            return self.path_for(item).read_bytes()
        except FileNotFoundError:
            return None
