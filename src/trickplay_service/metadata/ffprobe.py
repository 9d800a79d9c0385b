"""Probe library files with ffprobe."""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = {
    ".mp4", ".m4v", ".mkv", ".mov", ".avi", ".webm", ".wmv",
    ".ts", ".m2ts", ".mpg", ".mpeg", ".flv", ".ogv", ".iso", ".strm",
}


@dataclass
class ProbeResult:
    """Subset of ffprobe output the catalog needs."""

    duration: float | None = None
    width: int | None = None
    height: int | None = None
    video_codec: str | None = None
    format_name: str | None = None

    @property
    def duration_ms(self) -> int | None:
        if self.duration is None:
            return None
        return int(self.duration * 1000)

    @property
    def container(self) -> str | None:
        # ffprobe reports demuxer aliases, e.g. "mov,mp4,m4a,3gp,3g2,mj2"
        if not self.format_name:
            return None
        return self.format_name.split(",")[0]


def probe_file(file_path: str | Path, ffprobe_path: str = "ffprobe", timeout: int = 30) -> ProbeResult:
    """
    Probe a media file.

    Raises:
        FileNotFoundError: If file doesn't exist
        RuntimeError: If ffprobe is missing, times out or fails
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    cmd = [
        ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(path),
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        raise RuntimeError(f"ffprobe timed out for {file_path}")
    except FileNotFoundError:
        raise RuntimeError("ffprobe not found. Please install ffmpeg.")

    if result.returncode != 0:
        raise RuntimeError(f"ffprobe failed: {result.stderr}")

    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"Failed to parse ffprobe output: {e}")

    return parse_probe_output(data)


def parse_probe_output(data: dict[str, Any]) -> ProbeResult:
    """Parse ffprobe JSON output into a ProbeResult."""
    result = ProbeResult()

    format_info = data.get("format", {})
    result.format_name = format_info.get("format_name")
    if "duration" in format_info:
        result.duration = _safe_float(format_info["duration"])

    for stream in data.get("streams", []):
        if stream.get("codec_type") != "video":
            continue
        # Attached pictures (cover art) are reported as video streams
        if stream.get("disposition", {}).get("attached_pic"):
            continue
        result.video_codec = stream.get("codec_name")
        result.width = _safe_int(stream.get("width"))
        result.height = _safe_int(stream.get("height"))
        if result.duration is None and "duration" in stream:
            result.duration = _safe_float(stream["duration"])
        break

    return result


def is_video_file(filename: str | Path) -> bool:
    return Path(filename).suffix.lower() in VIDEO_EXTENSIONS


def _safe_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def _safe_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None
