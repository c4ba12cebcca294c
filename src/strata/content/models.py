"""Content domain models: pure Pydantic v2 data types.

A single ContentRecord shape is shared by every tier (memory cache,
snapshot file, remote source).  Articles and events differ only in how
``effective_date`` is derived: an event's scheduled date, or the
creation time for everything else.
"""

from __future__ import annotations

import math
import secrets
import string
import time
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from strata.shared.slugify import create_slug

LOCAL_ID_PREFIX = "local-"
_ID_ALPHABET = string.ascii_lowercase + string.digits


def make_record_id(kind: str, *, local: bool = False) -> str:
    """Time-based id with a random suffix, e.g. ``event-1718000000000-k3j9x0a1b``.

    Local ids carry the ``local-`` prefix so unreconciled records can be
    recognised from the id alone.
    """
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    record_id = f"{kind}-{int(time.time() * 1000)}-{suffix}"
    return LOCAL_ID_PREFIX + record_id if local else record_id


class ContentKind(StrEnum):
    """What a record describes."""

    ARTICLE = "article"
    EVENT = "event"


class PublicationStatus(StrEnum):
    PUBLISHED = "published"
    DRAFT = "draft"


class PlacementSurface(StrEnum):
    TRENDING = "trending"
    FEATURED = "featured"


class PlacementScope(StrEnum):
    HOME = "home"
    EDMONTON = "edmonton"
    CALGARY = "calgary"


class Placement(StrEnum):
    """A promotional slot: one surface within one scope."""

    TRENDING_HOME = "trending_home"
    TRENDING_EDMONTON = "trending_edmonton"
    TRENDING_CALGARY = "trending_calgary"
    FEATURED_HOME = "featured_home"
    FEATURED_EDMONTON = "featured_edmonton"
    FEATURED_CALGARY = "featured_calgary"

    @classmethod
    def of(cls, surface: PlacementSurface, scope: PlacementScope) -> Placement:
        return cls(f"{surface.value}_{scope.value}")

    @classmethod
    def parse(cls, value: str) -> Placement:
        """Accept ``trending_home``, ``trending:home`` or ``trendingHome``."""
        text = value.strip()
        for sep in (":", "-", " "):
            text = text.replace(sep, "_")
        for scope in PlacementScope:
            camel = scope.value.capitalize()
            if text.endswith(camel) and "_" not in text:
                text = text[: -len(camel)] + "_" + scope.value
        return cls(text.lower())

    @property
    def surface(self) -> PlacementSurface:
        return PlacementSurface(self.value.split("_", 1)[0])

    @property
    def scope(self) -> PlacementScope:
        return PlacementScope(self.value.split("_", 1)[1])


class Tier(StrEnum):
    """Where a read was served from."""

    CACHE = "cache"
    SNAPSHOT = "snapshot"
    SOURCE = "source"


class SortOrder(StrEnum):
    NEWEST = "newest"
    OLDEST = "oldest"
    TITLE = "title"
    EFFECTIVE_DATE = "effective_date"


class DateWindow(StrEnum):
    """Calendar windows for event listings, relative to today."""

    TODAY = "today"
    THIS_WEEK = "this-week"
    THIS_WEEKEND = "this-weekend"
    THIS_MONTH = "this-month"
    NEXT_MONTH = "next-month"


def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        value = value.strip()
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


class ContentRecord(BaseModel):
    """The unit of cached content, identical in shape across tiers.

    ``id`` is assigned once and never rewritten by another tier.  Records
    whose id starts with ``local-`` were created while the remote source
    was unreachable and have not been reconciled with it yet.
    """

    id: str
    kind: ContentKind = ContentKind.ARTICLE
    title: str
    body: str | None = None
    excerpt: str = ""
    category: str = ""
    categories: list[str] = Field(default_factory=list)
    location_tags: list[str] = Field(default_factory=list)
    freeform_tags: list[str] = Field(default_factory=list)
    status: PublicationStatus = PublicationStatus.PUBLISHED
    placements: dict[Placement, bool] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    effective_date: datetime | None = None
    event_end_date: datetime | None = None
    image_ref: str | None = None
    author: str = ""
    organizer: str = ""
    website_url: str = ""

    @field_validator("categories", "location_tags", "freeform_tags")
    @classmethod
    def _unique_tags(cls, value: list[str]) -> list[str]:
        return _dedupe(value)

    @field_validator("created_at", "updated_at", "effective_date", "event_end_date")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @model_validator(mode="after")
    def _derive_effective_date(self) -> ContentRecord:
        if self.kind == ContentKind.EVENT:
            if self.effective_date is None:
                raise ValueError(f"event '{self.id}' has no scheduled date")
        elif self.effective_date is None:
            self.effective_date = self.created_at
        return self

    @property
    def slug(self) -> str:
        return create_slug(self.title)

    @property
    def is_reconciled(self) -> bool:
        """False while the record only exists in local tiers."""
        return not self.id.startswith(LOCAL_ID_PREFIX)

    @property
    def is_published(self) -> bool:
        return self.status == PublicationStatus.PUBLISHED

    @property
    def image_is_embedded(self) -> bool:
        return bool(self.image_ref and self.image_ref.startswith("data:"))

    def is_placed(self, placement: Placement) -> bool:
        return self.placements.get(placement, False)

    def all_categories(self) -> list[str]:
        return _dedupe([self.category, *self.categories])


class ContentDraft(BaseModel):
    """Input for creating a record; the id and timestamps are assigned later."""

    kind: ContentKind = ContentKind.ARTICLE
    title: str = ""
    body: str | None = None
    excerpt: str = ""
    category: str = ""
    categories: list[str] = Field(default_factory=list)
    location_tags: list[str] = Field(default_factory=list)
    freeform_tags: list[str] = Field(default_factory=list)
    status: PublicationStatus = PublicationStatus.PUBLISHED
    placements: dict[Placement, bool] = Field(default_factory=dict)
    effective_date: datetime | None = None
    event_end_date: datetime | None = None
    image_ref: str | None = None
    author: str = ""
    organizer: str = ""
    website_url: str = ""

    def to_record(self, record_id: str, now: datetime) -> ContentRecord:
        return ContentRecord(
            id=record_id,
            created_at=now,
            updated_at=now,
            **self.model_dump(),
        )


class ContentPatch(BaseModel):
    """Partial update.  Only fields explicitly set are applied."""

    kind: ContentKind | None = None
    title: str | None = None
    body: str | None = None
    excerpt: str | None = None
    category: str | None = None
    categories: list[str] | None = None
    location_tags: list[str] | None = None
    freeform_tags: list[str] | None = None
    status: PublicationStatus | None = None
    placements: dict[Placement, bool] | None = None
    effective_date: datetime | None = None
    event_end_date: datetime | None = None
    image_ref: str | None = None
    author: str | None = None
    organizer: str | None = None
    website_url: str | None = None

    def changes(self) -> dict[str, Any]:
        """Fields the caller actually supplied."""
        return self.model_dump(exclude_unset=True)

    def apply_to(self, record: ContentRecord, now: datetime) -> ContentRecord:
        """Return a new record with this patch applied.

        Placements merge key-by-key; every other supplied field replaces
        the prior value.  The result is re-validated.
        """
        data = record.model_dump()
        changes = self.changes()
        if "placements" in changes and changes["placements"] is not None:
            merged = dict(record.placements)
            merged.update(changes.pop("placements"))
            data["placements"] = merged
        data.update({k: v for k, v in changes.items() if k != "placements"})
        data["updated_at"] = now
        if data["kind"] == ContentKind.ARTICLE and "effective_date" not in changes:
            data["effective_date"] = data["created_at"]
        return ContentRecord.model_validate(data)


class ContentFilter(BaseModel):
    """Listing filter.  An unset ``status`` means published only."""

    model_config = ConfigDict(populate_by_name=True)

    kind: ContentKind | None = None
    category: str | None = None
    location: str | None = None
    status: str | None = None
    search: str | None = None
    placement: Placement | None = Field(default=None, alias="placementFlag")
    date_window: DateWindow | None = None

    @field_validator("placement", mode="before")
    @classmethod
    def _parse_placement(cls, value: Any) -> Any:
        if isinstance(value, str) and value:
            return Placement.parse(value)
        return value or None

    @field_validator("status")
    @classmethod
    def _check_status(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip().lower()
        allowed = {s.value for s in PublicationStatus} | {"all"}
        if value not in allowed:
            raise ValueError(f"unknown status '{value}'")
        return value


class ListPage(BaseModel):
    """One page of a listing plus pagination metadata."""

    items: list[ContentRecord]
    total: int
    page: int
    page_size: int
    served_from: Tier | None = None

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1


class WriteResult(BaseModel):
    """Outcome of a create or update.

    ``reconciled`` is False when the remote source could not be written
    and the change currently lives only in the local snapshot.
    """

    record: ContentRecord
    reconciled: bool
    warnings: list[str] = Field(default_factory=list)


class DeleteResult(BaseModel):
    deleted: bool
    reconciled: bool = True


class SnapshotStats(BaseModel):
    exists: bool
    size_kb: int = 0
    record_count: int = 0
    last_modified: datetime | None = None


class SyncStatus(BaseModel):
    last_sync: datetime | None = None
    is_running: bool = False
    last_error: str | None = None
    record_count: int = 0
