"""Shared test helpers: item builders, fake JPEGs and a fake frame sampler."""

from __future__ import annotations

import asyncio
from pathlib import Path

from trickplay_service.bif.codec import Frame
from trickplay_service.config import GenerationConfig
from trickplay_service.errors import ExtractionError, GenerationCancelled
from trickplay_service.library.catalog import item_id_for_path
from trickplay_service.library.types import MediaSource, VideoItem


def fake_jpeg(seed: int, size: int = 32) -> bytes:
    """Minimal SOI/APP0/SOS/EOI byte string that the MJPEG splitter accepts."""
    body = bytes((seed + i) % 0xFF for i in range(size))
    app0 = b"\xff\xe0" + (2 + 4).to_bytes(2, "big") + b"JFIF"
    sos = b"\xff\xda" + (2 + 2).to_bytes(2, "big") + b"\x01\x00"
    return b"\xff\xd8" + app0 + sos + body + b"\xff\xd9"


def make_video(tmp_path: Path, name: str, duration_ms: int = 60_000, **overrides) -> VideoItem:
    """Create a placeholder file on disk and a matching catalog item."""
    path = tmp_path / "library" / f"{name}.mkv"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"not really a video")
    item_id = overrides.pop("id", item_id_for_path(path))
    fields = {
        "id": item_id,
        "name": name,
        "path": str(path),
        "duration_ms": duration_ms,
        "media_sources": [MediaSource(id=item_id, path=str(path), container="matroska")],
    }
    fields.update(overrides)
    return VideoItem(**fields)


class FakeSampler:
    """Stands in for FrameSampler without running ffmpeg."""

    def __init__(self, delay: float = 0.0, fail_paths: set[str] | None = None):
        self.delay = delay
        self.fail_paths = fail_paths or set()
        self.calls: list[tuple[str, GenerationConfig, int]] = []
        self.active = 0
        self.max_active = 0

    async def collect(
        self,
        source_path: str,
        config: GenerationConfig,
        expected_frames: int,
        cancel_event: asyncio.Event | None = None,
    ) -> list[Frame]:
        self.calls.append((source_path, config, expected_frames))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if cancel_event is not None and cancel_event.is_set():
                raise GenerationCancelled(f"Extraction cancelled for {source_path}")
            if source_path in self.fail_paths:
                raise ExtractionError(f"ffmpeg exited with code 1 for {source_path}")
            return [
                Frame(timestamp_ms=i * config.interval_ms, data=fake_jpeg(i + config.width))
                for i in range(expected_frames)
            ]
        finally:
            self.active -= 1


class ConfigHolder:
    """Mutable source of GenerationConfig snapshots."""

    def __init__(self, config: GenerationConfig):
        self.config = config

    def __call__(self) -> GenerationConfig:
        return self.config
