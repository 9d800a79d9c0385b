"""Frame extraction through ffmpeg."""

from .sampler import FrameSampler, MjpegSplitter

__all__ = ["FrameSampler", "MjpegSplitter"]
