"""Decide whether a library item can have a trickplay preview."""

from __future__ import annotations

import os
from typing import Callable

from .types import ItemType, MediaProtocol, VideoItem, VideoType

DISC_VIDEO_TYPES = {VideoType.ISO, VideoType.BLURAY, VideoType.DVD}


def ineligibility_reason(
    item: VideoItem,
    interval_ms: int,
    file_exists: Callable[[str], bool] = os.path.isfile,
) -> str | None:
    """
    Return why an item cannot get a preview, or None if it is eligible.

    Args:
        item: Catalog item
        interval_ms: Sampling interval the run will use
        file_exists: Filesystem probe, injectable for tests

    Returns:
        A short reason string, or None
    """
    if item.item_type != ItemType.VIDEO:
        return "not a video"
    if item.video_type in DISC_VIDEO_TYPES:
        return f"disc container ({item.video_type.value})"
    if item.is_shortcut:
        return "shortcut"
    if not item.is_complete_media:
        return "incomplete media"
    if item.duration_ms is None:
        return "unknown duration"
    if item.duration_ms < interval_ms:
        return f"shorter than one interval ({item.duration_ms}ms < {interval_ms}ms)"
    if item.protocol != MediaProtocol.FILE:
        return f"remote protocol ({item.protocol.value})"
    if not file_exists(item.path):
        return "file missing on disk"
    return None


def is_eligible(
    item: VideoItem,
    interval_ms: int,
    file_exists: Callable[[str], bool] = os.path.isfile,
) -> bool:
    return ineligibility_reason(item, interval_ms, file_exists) is None
