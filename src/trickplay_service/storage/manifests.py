"""Manifest sidecars recording how each artifact was generated."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from ..bif.codec import FORMAT_VERSION
from ..config import GenerationConfig
from ..errors import ManifestWriteError
from ..library.types import VideoItem
from .paths import atomic_write, item_trickplay_dir

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"


@dataclass
class PreviewManifest:
    """Generation parameters of the artifact stored next to this manifest."""

    image_width_resolution: int
    image_interval: int
    image_quality: int | None = None
    frame_count: int | None = None
    format_version: int = FORMAT_VERSION
    generated_at: str = field(default_factory=lambda: datetime.utcnow().isoformat() + "Z")

    @classmethod
    def for_config(cls, config: GenerationConfig, frame_count: int) -> PreviewManifest:
        return cls(
            image_width_resolution=config.width,
            image_interval=config.interval_ms,
            image_quality=config.quality,
            frame_count=frame_count,
        )

    @property
    def fingerprint(self) -> tuple[int, int, int | None]:
        return (self.image_width_resolution, self.image_interval, self.image_quality)

    def matches(self, config: GenerationConfig) -> bool:
        return self.format_version == FORMAT_VERSION and self.fingerprint == config.fingerprint

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PreviewManifest:
        """Create from dictionary."""
        return cls(
            image_width_resolution=int(data["imageWidthResolution"]),
            image_interval=int(data["imageInterval"]),
            image_quality=data.get("imageQuality"),
            frame_count=data.get("frameCount"),
            format_version=data.get("formatVersion", FORMAT_VERSION),
            generated_at=data.get("generatedAt", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (camelCase, as served to clients)."""
        return {
            "formatVersion": self.format_version,
            "imageWidthResolution": self.image_width_resolution,
            "imageInterval": self.image_interval,
            "imageQuality": self.image_quality,
            "frameCount": self.frame_count,
            "generatedAt": self.generated_at,
        }


class ManifestStore:
    """Reads and writes manifests and answers staleness queries."""

    def __init__(self, metadata_dir: Path):
        self.metadata_dir = Path(metadata_dir)

    def path_for(self, item: VideoItem) -> Path:
        return item_trickplay_dir(self.metadata_dir, item.id) / MANIFEST_FILENAME

    def exists(self, item: VideoItem) -> bool:
        return self.path_for(item).is_file()

    def read(self, item: VideoItem) -> PreviewManifest | None:
        """Load the manifest, or None if missing or unreadable."""
        path = self.path_for(item)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return PreviewManifest.from_dict(data)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable manifest {path}: {e}")
            return None

    def matches(self, item: VideoItem, config: GenerationConfig) -> bool:
        """True only if a manifest exists and was generated with exactly this config."""
        manifest = self.read(item)
        return manifest is not None and manifest.matches(config)

    def write(self, item: VideoItem, config: GenerationConfig, frame_count: int) -> PreviewManifest:
        """
        Atomically replace the manifest.

        Raises:
            ManifestWriteError: If the file could not be written
        """
        manifest = PreviewManifest.for_config(config, frame_count)
        path = self.path_for(item)
        payload = json.dumps(manifest.to_dict(), indent=2).encode("utf-8")
        try:
            atomic_write(path, payload)
        except OSError as e:
            raise ManifestWriteError(f"Failed to write manifest {path}: {e}") from e
        logger.info(f"Wrote manifest {path}")
        return manifest

    def delete(self, item: VideoItem) -> bool:
        path = self.path_for(item)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True
