"""Content domain: record model, snapshot file and memory cache."""

from strata.content.cache import MemoryCache
from strata.content.models import (
    ContentDraft,
    ContentFilter,
    ContentKind,
    ContentPatch,
    ContentRecord,
    DateWindow,
    DeleteResult,
    ListPage,
    Placement,
    PlacementScope,
    PlacementSurface,
    PublicationStatus,
    SortOrder,
    Tier,
    WriteResult,
)
from strata.content.snapshot import SnapshotStore

__all__ = [
    "ContentDraft",
    "ContentFilter",
    "ContentKind",
    "ContentPatch",
    "ContentRecord",
    "DateWindow",
    "DeleteResult",
    "ListPage",
    "MemoryCache",
    "Placement",
    "PlacementScope",
    "PlacementSurface",
    "PublicationStatus",
    "SnapshotStore",
    "SortOrder",
    "Tier",
    "WriteResult",
]
