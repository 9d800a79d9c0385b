"""Exception types raised by the trickplay pipeline."""

from __future__ import annotations


class TrickplayError(Exception):
    """Base class for trickplay generation errors."""


class ExtractionError(TrickplayError):
    """ffmpeg could not produce frames for a source."""


class CorruptArtifactError(TrickplayError):
    """A stored preview artifact does not decode."""


class ArtifactWriteError(TrickplayError):
    """Writing or replacing a preview artifact failed."""


class ManifestWriteError(TrickplayError):
    """Writing or replacing a manifest failed."""


class GenerationCancelled(TrickplayError):
    """Cooperative cancellation was observed during a run."""
