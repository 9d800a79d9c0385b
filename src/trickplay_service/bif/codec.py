"""Binary preview index (BIF) encoding and decoding.

Layout, all integers little-endian uint32:

    0   magic            89 42 49 46 0D 0A 1A 0A
    8   version          FORMAT_VERSION
    12  frame count      N
    16  interval hint    milliseconds, 0 when frames are irregular
    20  reserved         zero up to HEADER_SIZE
    64  index            N entries of (timestamp_ms, offset, length)
    ..  payloads         image bytes, concatenated in index order

Offsets are absolute from the start of the file, so a reader can seek straight
to any frame without parsing the ones before it.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Sequence

from ..errors import CorruptArtifactError

MAGIC = b"\x89BIF\r\n\x1a\n"
FORMAT_VERSION = 1
HEADER_SIZE = 64
UINT32_MAX = 0xFFFFFFFF

_HEADER = struct.Struct("<8sIII")
_ENTRY = struct.Struct("<III")


@dataclass(frozen=True)
class Frame:
    """One sampled preview image."""

    timestamp_ms: int
    data: bytes


@dataclass(frozen=True)
class IndexEntry:
    timestamp_ms: int
    offset: int
    length: int


@dataclass(frozen=True)
class BifHeader:
    """Parsed header and index of an artifact."""

    version: int
    frame_count: int
    interval_ms: int
    entries: tuple[IndexEntry, ...]

    @property
    def payload_offset(self) -> int:
        return HEADER_SIZE + self.frame_count * _ENTRY.size

    @property
    def total_length(self) -> int:
        """Byte length the artifact must have according to its own index."""
        return self.payload_offset + sum(e.length for e in self.entries)


def encode(frames: Sequence[Frame], interval_ms: int = 0) -> bytes:
    """
    Pack frames into a single artifact.

    Raises:
        ValueError: If frames is empty, a payload is empty, timestamps are not
            strictly increasing, or a value does not fit the format
    """
    if not frames:
        raise ValueError("Cannot encode an artifact with no frames")
    if not 0 <= interval_ms <= UINT32_MAX:
        raise ValueError(f"Interval out of range: {interval_ms}")

    previous = -1
    for i, frame in enumerate(frames):
        if not frame.data:
            raise ValueError(f"Frame {i} has an empty payload")
        if frame.timestamp_ms <= previous:
            raise ValueError(
                f"Frame timestamps must be strictly increasing "
                f"(frame {i}: {frame.timestamp_ms}ms after {previous}ms)"
            )
        previous = frame.timestamp_ms
    if previous > UINT32_MAX:
        raise ValueError(f"Timestamp out of range: {previous}")

    payload_offset = HEADER_SIZE + len(frames) * _ENTRY.size
    total = payload_offset + sum(len(f.data) for f in frames)
    if total > UINT32_MAX:
        raise ValueError(f"Artifact too large: {total} bytes")

    header = _HEADER.pack(MAGIC, FORMAT_VERSION, len(frames), interval_ms)
    parts = [header, b"\x00" * (HEADER_SIZE - len(header))]

    offset = payload_offset
    for frame in frames:
        parts.append(_ENTRY.pack(frame.timestamp_ms, offset, len(frame.data)))
        offset += len(frame.data)

    parts.extend(frame.data for frame in frames)
    return b"".join(parts)


def validate(data: bytes) -> BifHeader:
    """
    Parse and check the header and index without copying payloads.

    Raises:
        CorruptArtifactError: If the buffer is not a well-formed artifact
    """
    if len(data) < HEADER_SIZE:
        raise CorruptArtifactError(f"Artifact truncated: {len(data)} bytes, header needs {HEADER_SIZE}")

    magic, version, count, interval_ms = _HEADER.unpack_from(data, 0)
    if magic != MAGIC:
        raise CorruptArtifactError("Bad magic number")
    if version != FORMAT_VERSION:
        raise CorruptArtifactError(f"Unsupported version {version}")
    if count == 0:
        raise CorruptArtifactError("Artifact declares no frames")

    payload_offset = HEADER_SIZE + count * _ENTRY.size
    if payload_offset > len(data):
        raise CorruptArtifactError(
            f"Frame count {count} needs {payload_offset - HEADER_SIZE} index bytes, "
            f"only {len(data) - HEADER_SIZE} available"
        )

    entries = []
    previous = -1
    for i in range(count):
        timestamp_ms, offset, length = _ENTRY.unpack_from(data, HEADER_SIZE + i * _ENTRY.size)
        if offset < payload_offset or offset + length > len(data):
            raise CorruptArtifactError(f"Frame {i} reads past buffer (offset={offset}, length={length})")
        if timestamp_ms <= previous:
            raise CorruptArtifactError(f"Frame {i} timestamp {timestamp_ms}ms is not increasing")
        previous = timestamp_ms
        entries.append(IndexEntry(timestamp_ms, offset, length))

    header = BifHeader(version=version, frame_count=count, interval_ms=interval_ms, entries=tuple(entries))
    if header.total_length != len(data):
        raise CorruptArtifactError(
            f"Index declares {header.total_length} bytes but artifact has {len(data)}"
        )
    return header


def decode(data: bytes) -> list[Frame]:
    """
    Unpack an artifact produced by encode().

    Raises:
        CorruptArtifactError: If the buffer is not a well-formed artifact
    """
    header = validate(data)
    return [Frame(e.timestamp_ms, bytes(data[e.offset:e.offset + e.length])) for e in header.entries]
