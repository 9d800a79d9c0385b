"""Library items, eligibility and catalog access."""

from .catalog import FilesystemCatalog, LibraryCatalog, StaticCatalog, item_id_for_path
from .eligibility import ineligibility_reason, is_eligible
from .types import ItemType, MediaProtocol, MediaSource, VideoItem, VideoType

__all__ = [
    "FilesystemCatalog",
    "LibraryCatalog",
    "StaticCatalog",
    "item_id_for_path",
    "ineligibility_reason",
    "is_eligible",
    "ItemType",
    "MediaProtocol",
    "MediaSource",
    "VideoItem",
    "VideoType",
]
