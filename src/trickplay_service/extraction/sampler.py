"""Sample preview frames from a video with ffmpeg."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from pathlib import Path
from typing import AsyncIterator

from ..bif.codec import Frame
from ..config import GenerationConfig
from ..errors import ExtractionError, GenerationCancelled

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024
# How often a blocked read wakes up to look at the cancel event and deadline
POLL_SECONDS = 0.5
STDERR_TAIL_LINES = 20

SOI = b"\xff\xd8"


class MjpegSplitter:
    """Split a concatenated MJPEG byte stream into individual JPEG images.

    Marker segments are skipped by their declared length and entropy-coded data
    is scanned for the next real marker, so 0xFFD9 byte pairs inside tables do
    not end a frame early.
    """

    def __init__(self):
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[bytes]:
        self._buffer.extend(chunk)
        images = []
        while True:
            start = self._buffer.find(SOI)
            if start < 0:
                # Keep a trailing 0xFF, it may be the first half of the next SOI
                keep = 1 if self._buffer.endswith(b"\xff") else 0
                del self._buffer[: len(self._buffer) - keep]
                break
            if start:
                del self._buffer[:start]
            end = self._frame_end(self._buffer)
            if end is None:
                break
            images.append(bytes(self._buffer[:end]))
            del self._buffer[:end]
        return images

    @staticmethod
    def _frame_end(buf: bytearray) -> int | None:
        """Index just past the EOI marker of the image starting at 0, or None if incomplete."""
        pos = 2
        n = len(buf)
        while True:
            if pos + 2 > n:
                return None
            if buf[pos] != 0xFF:
                raise ExtractionError(f"Malformed JPEG stream: expected marker at byte {pos}")
            marker = buf[pos + 1]
            if marker == 0xFF:
                pos += 1
                continue
            if marker == 0xD9:
                return pos + 2
            if 0xD0 <= marker <= 0xD7 or marker == 0x01:
                pos += 2
                continue
            if pos + 4 > n:
                return None
            seg_end = pos + 2 + int.from_bytes(buf[pos + 2:pos + 4], "big")
            if marker != 0xDA:
                pos = seg_end
                continue

            # Start of scan: walk the entropy-coded data to the next marker
            pos = seg_end
            while True:
                idx = buf.find(b"\xff", pos)
                if idx < 0 or idx + 1 >= n:
                    return None
                following = buf[idx + 1]
                if following == 0x00 or 0xD0 <= following <= 0xD7:
                    pos = idx + 2
                elif following == 0xFF:
                    pos = idx + 1
                else:
                    pos = idx
                    break


class FrameSampler:
    """Runs one ffmpeg process per call and yields timestamped JPEG frames."""

    def __init__(self, ffmpeg_path: str = "ffmpeg"):
        self.ffmpeg_path = ffmpeg_path

    def build_command(
        self,
        source_path: str,
        interval_ms: int,
        width: int,
        quality: int = 4,
        hwaccel: str | None = None,
        threads: int = 1,
        max_frames: int | None = None,
    ) -> list[str]:
        cmd = [self.ffmpeg_path, "-hide_banner", "-loglevel", "error", "-nostdin"]
        if hwaccel:
            cmd += ["-hwaccel", hwaccel]
        cmd += [
            "-threads", str(threads),
            "-i", source_path,
            "-an", "-sn", "-dn",
            # Height follows the source aspect ratio, rounded to an even number
            "-vf", f"fps=1000/{interval_ms},scale={width}:-2",
        ]
        if max_frames:
            cmd += ["-frames:v", str(max_frames)]
        cmd += ["-c:v", "mjpeg", "-q:v", str(quality), "-f", "image2pipe", "pipe:1"]
        return cmd

    async def sample(
        self,
        source_path: str,
        interval_ms: int,
        width: int,
        *,
        quality: int = 4,
        hwaccel: str | None = None,
        threads: int = 1,
        max_frames: int | None = None,
        timeout_seconds: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[Frame]:
        """
        Yield frames as ffmpeg emits them; frame i is stamped i * interval_ms.

        The ffmpeg process is killed and reaped on every exit path, including
        when the consumer stops iterating early.

        Raises:
            ExtractionError: Source unreadable, ffmpeg missing/failed/timed out, or no frames
            GenerationCancelled: cancel_event was set during extraction
        """
        if not Path(source_path).is_file():
            raise ExtractionError(f"Source not readable: {source_path}")

        cmd = self.build_command(source_path, interval_ms, width, quality, hwaccel, threads, max_frames)
        logger.debug(f"Running {' '.join(cmd)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            raise ExtractionError("ffmpeg not found. Please install ffmpeg.")

        stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        stderr_task = asyncio.create_task(_drain_stderr(proc.stderr, stderr_tail))
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_seconds if timeout_seconds else None
        splitter = MjpegSplitter()
        count = 0

        try:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    raise GenerationCancelled(f"Extraction cancelled for {source_path}")
                if deadline is not None and loop.time() > deadline:
                    raise ExtractionError(f"ffmpeg timed out after {timeout_seconds}s for {source_path}")

                try:
                    chunk = await asyncio.wait_for(proc.stdout.read(READ_CHUNK_SIZE), timeout=POLL_SECONDS)
                except asyncio.TimeoutError:
                    continue
                if not chunk:
                    break

                for image in splitter.feed(chunk):
                    yield Frame(timestamp_ms=count * interval_ms, data=image)
                    count += 1

            returncode = await proc.wait()
            await stderr_task
            if returncode != 0:
                detail = " | ".join(stderr_tail) or "no output"
                raise ExtractionError(f"ffmpeg exited with code {returncode} for {source_path}: {detail}")
            if splitter.pending:
                logger.warning(f"Discarded {splitter.pending} trailing bytes from ffmpeg for {source_path}")
            if count == 0:
                raise ExtractionError(f"ffmpeg produced no frames for {source_path}")
        finally:
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()
            if not stderr_task.done():
                stderr_task.cancel()

    async def collect(
        self,
        source_path: str,
        config: GenerationConfig,
        expected_frames: int,
        cancel_event: asyncio.Event | None = None,
    ) -> list[Frame]:
        """
        Materialize exactly expected_frames frames for one source.

        ffmpeg's fps filter can land one frame either side of the target; extra
        frames are dropped and a short run is padded with the last frame.
        """
        frames: list[Frame] = []
        stream = self.sample(
            source_path,
            config.interval_ms,
            config.width,
            quality=config.quality,
            hwaccel=config.hwaccel,
            threads=config.threads,
            max_frames=expected_frames,
            timeout_seconds=config.timeout_seconds,
            cancel_event=cancel_event,
        )
        try:
            async for frame in stream:
                frames.append(frame)
                if len(frames) >= expected_frames:
                    break
        finally:
            await stream.aclose()

        if len(frames) < expected_frames:
            logger.warning(
                f"ffmpeg produced {len(frames)} of {expected_frames} frames for {source_path}, "
                f"padding with the last frame"
            )
            last = frames[-1].data
            frames.extend(
                Frame(timestamp_ms=i * config.interval_ms, data=last)
                for i in range(len(frames), expected_frames)
            )
        return frames


async def _drain_stderr(stream: asyncio.StreamReader, tail: deque[str]) -> None:
    while True:
        line = await stream.readline()
        if not line:
            return
        tail.append(line.decode(errors="replace").rstrip())
