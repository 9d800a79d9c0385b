"""Library item type definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ItemType(str, Enum):
    """Catalog item classification."""

    VIDEO = "video"
    AUDIO = "audio"
    OTHER = "other"


class VideoType(str, Enum):
    """Physical container kind of a video item."""

    VIDEO_FILE = "video_file"
    ISO = "iso"
    BLURAY = "bluray"
    DVD = "dvd"


class MediaProtocol(str, Enum):
    """How a media source is reached."""

    FILE = "file"
    HTTP = "http"
    RTSP = "rtsp"
    OTHER = "other"


@dataclass
class MediaSource:
    """One physical file representation of a library item."""

    id: str
    path: str
    protocol: MediaProtocol = MediaProtocol.FILE
    container: str | None = None
    video_codec: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MediaSource:
        """Create from dictionary."""
        return cls(
            id=data["id"],
            path=data["path"],
            protocol=MediaProtocol(data.get("protocol", "file")),
            container=data.get("container"),
            video_codec=data.get("videoCodec", data.get("video_codec")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (camelCase)."""
        return {
            "id": self.id,
            "path": self.path,
            "protocol": self.protocol.value,
            "container": self.container,
            "videoCodec": self.video_codec,
        }


@dataclass
class VideoItem:
    """A library item as exposed by the host catalog. Never mutated by the pipeline."""

    id: str
    name: str
    path: str
    duration_ms: int | None = None
    item_type: ItemType = ItemType.VIDEO
    video_type: VideoType = VideoType.VIDEO_FILE
    protocol: MediaProtocol = MediaProtocol.FILE
    is_shortcut: bool = False
    is_complete_media: bool = True
    media_sources: list[MediaSource] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VideoItem:
        """Create from dictionary."""
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            path=data["path"],
            duration_ms=data.get("durationMs", data.get("duration_ms")),
            item_type=ItemType(data.get("itemType", data.get("item_type", "video"))),
            video_type=VideoType(data.get("videoType", data.get("video_type", "video_file"))),
            protocol=MediaProtocol(data.get("protocol", "file")),
            is_shortcut=data.get("isShortcut", data.get("is_shortcut", False)),
            is_complete_media=data.get("isCompleteMedia", data.get("is_complete_media", True)),
            media_sources=[
                MediaSource.from_dict(s)
                for s in data.get("mediaSources", data.get("media_sources", []))
            ],
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (camelCase)."""
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "durationMs": self.duration_ms,
            "itemType": self.item_type.value,
            "videoType": self.video_type.value,
            "protocol": self.protocol.value,
            "isShortcut": self.is_shortcut,
            "isCompleteMedia": self.is_complete_media,
            "mediaSources": [s.to_dict() for s in self.media_sources],
        }
