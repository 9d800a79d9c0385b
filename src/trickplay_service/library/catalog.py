"""Host library catalog access."""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from pathlib import Path
from typing import Iterable, Protocol

from ..metadata.ffprobe import is_video_file, probe_file
from .types import ItemType, MediaProtocol, MediaSource, VideoItem, VideoType

logger = logging.getLogger(__name__)

DISC_FOLDERS = {"VIDEO_TS": VideoType.DVD, "BDMV": VideoType.BLURAY}


class LibraryCatalog(Protocol):
    """The narrow slice of the host catalog the pipeline depends on."""

    async def list_video_items(self) -> list[VideoItem]:
        ...

    async def get_item(self, item_id: str) -> VideoItem | None:
        ...

    async def refresh(self) -> int:
        """Re-read the host library. Returns the number of items."""
        ...


class StaticCatalog:
    """Catalog over a fixed set of items."""

    def __init__(self, items: Iterable[VideoItem] = ()):
        self._items: dict[str, VideoItem] = {item.id: item for item in items}

    async def list_video_items(self) -> list[VideoItem]:
        return [item for item in self._items.values() if item.item_type == ItemType.VIDEO]

    async def get_item(self, item_id: str) -> VideoItem | None:
        return self._items.get(item_id)

    async def refresh(self) -> int:
        return len(self._items)


def item_id_for_path(path: str | Path) -> str:
    """Stable item id derived from the resolved file path."""
    return uuid.uuid5(uuid.NAMESPACE_URL, str(Path(path).resolve())).hex


class FilesystemCatalog(StaticCatalog):
    """Catalog built by scanning library folders and probing each video with ffprobe."""

    def __init__(self, roots: Iterable[Path], ffprobe_path: str = "ffprobe"):
        super().__init__()
        self.roots = list(roots)
        self.ffprobe_path = ffprobe_path

    async def refresh(self) -> int:
        """Rescan all library roots. Returns the number of items found."""
        items = await asyncio.to_thread(self._scan)
        self._items = {item.id: item for item in items}
        logger.info(f"Library scan found {len(items)} items under {len(self.roots)} roots")
        return len(items)

    def _scan(self) -> list[VideoItem]:
        items: list[VideoItem] = []
        for root in self.roots:
            if not root.is_dir():
                logger.warning(f"Library root does not exist: {root}")
                continue
            for dirpath, dirnames, filenames in os.walk(root):
                disc_type = next((DISC_FOLDERS[d] for d in dirnames if d in DISC_FOLDERS), None)
                if disc_type is not None:
                    items.append(self._disc_item(Path(dirpath), disc_type))
                    dirnames[:] = []
                    continue
                for filename in sorted(filenames):
                    if is_video_file(filename):
                        items.append(self._file_item(Path(dirpath) / filename))
        return items

    def _disc_item(self, folder: Path, video_type: VideoType) -> VideoItem:
        item_id = item_id_for_path(folder)
        return VideoItem(
            id=item_id,
            name=folder.name,
            path=str(folder),
            video_type=video_type,
            media_sources=[MediaSource(id=item_id, path=str(folder))],
        )

    def _file_item(self, path: Path) -> VideoItem:
        item_id = item_id_for_path(path)
        suffix = path.suffix.lower()

        if suffix == ".strm":
            try:
                target = path.read_text(encoding="utf-8", errors="replace").strip()
            except OSError as e:
                # os.walk lists dangling symlinks
                logger.warning(f"Failed to read shortcut {path}: {e}")
                return VideoItem(
                    id=item_id,
                    name=path.stem,
                    path=str(path),
                    protocol=MediaProtocol.OTHER,
                    is_shortcut=True,
                    is_complete_media=False,
                    media_sources=[MediaSource(id=item_id, path=str(path), protocol=MediaProtocol.OTHER)],
                )
            protocol = MediaProtocol.HTTP if target.startswith(("http://", "https://")) else MediaProtocol.OTHER
            return VideoItem(
                id=item_id,
                name=path.stem,
                path=target,
                protocol=protocol,
                is_shortcut=True,
                media_sources=[MediaSource(id=item_id, path=target, protocol=protocol)],
            )

        if suffix == ".iso":
            return VideoItem(
                id=item_id,
                name=path.stem,
                path=str(path),
                video_type=VideoType.ISO,
                media_sources=[MediaSource(id=item_id, path=str(path))],
            )

        try:
            probe = probe_file(path, ffprobe_path=self.ffprobe_path)
        except (FileNotFoundError, RuntimeError) as e:
            logger.warning(f"Failed to probe {path}: {e}")
            return VideoItem(
                id=item_id,
                name=path.stem,
                path=str(path),
                is_complete_media=False,
                media_sources=[MediaSource(id=item_id, path=str(path))],
            )

        return VideoItem(
            id=item_id,
            name=path.stem,
            path=str(path),
            duration_ms=probe.duration_ms,
            media_sources=[
                MediaSource(
                    id=item_id,
                    path=str(path),
                    container=probe.container,
                    video_codec=probe.video_codec,
                )
            ],
        )
