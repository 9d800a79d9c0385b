"""Generation result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class GenerationStatus(str, Enum):
    """Terminal state of one (item, media source) generation attempt."""

    SKIPPED_INELIGIBLE = "skipped_ineligible"
    SKIPPED_SUB_ITEM = "skipped_sub_item"
    SKIPPED_CURRENT = "skipped_current"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class GenerationOutcome:
    """What happened to one media source of an item."""

    item_id: str
    status: GenerationStatus
    source_id: str | None = None
    frame_count: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result = {
            "itemId": self.item_id,
            "sourceId": self.source_id,
            "status": self.status.value,
            "frameCount": self.frame_count,
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class BatchResult:
    """Summary of a batch run over the catalog."""

    total: int = 0
    processed: int = 0
    generated: int = 0
    failed: int = 0
    cancelled: bool = False
    failed_item_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "processed": self.processed,
            "generated": self.generated,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "failedItemIds": self.failed_item_ids,
        }


class LookupStatus(str, Enum):
    """Result of an on-demand artifact request."""

    READY = "ready"
    PENDING = "pending"
    NOT_FOUND = "not_found"


@dataclass
class ArtifactLookup:
    status: LookupStatus
    data: bytes | None = None
