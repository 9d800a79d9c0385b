"""Preview generation orchestration."""

from .orchestrator import TrickplayOrchestrator
from .types import ArtifactLookup, BatchResult, GenerationOutcome, GenerationStatus, LookupStatus

__all__ = [
    "TrickplayOrchestrator",
    "ArtifactLookup",
    "BatchResult",
    "GenerationOutcome",
    "GenerationStatus",
    "LookupStatus",
]
