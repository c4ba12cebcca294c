"""Shared fixtures: an in-memory source and a fake monotonic clock."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from strata.content.models import (
    ContentDraft,
    ContentFilter,
    ContentPatch,
    ContentRecord,
    SortOrder,
    make_record_id,
)
from strata.content.query import filter_records, sort_records
from strata.integrations.supabase import SourcePage
from strata.shared.errors import NotFoundError, UnavailableError


class FakeClock:
    """Manually advanced stand-in for ``time.monotonic``."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSource:
    """In-memory stand-in for SourceConnector.

    Flip ``available`` to False to make every call raise UnavailableError.
    """

    def __init__(self, records: list[ContentRecord] | None = None) -> None:
        self.records: dict[str, ContentRecord] = {r.id: r for r in records or []}
        self.available = True
        self.calls: list[str] = []
        self.timeouts: list[float | None] = []

    def add(self, *records: ContentRecord) -> None:
        for record in records:
            self.records[record.id] = record

    def _enter(self, name: str, timeout: float | None = None) -> None:
        self.calls.append(name)
        self.timeouts.append(timeout)
        if not self.available:
            raise UnavailableError(f"fake source down during {name}")

    def query(
        self,
        flt: ContentFilter | None = None,
        sort: SortOrder = SortOrder.NEWEST,
        page: int = 1,
        page_size: int = 20,
        *,
        timeout: float | None = None,
    ) -> SourcePage:
        self._enter("query", timeout)
        matched = sort_records(filter_records(self.records.values(), flt), sort)
        start = (page - 1) * page_size
        return SourcePage(records=matched[start : start + page_size], total=len(matched))

    def fetch_by_id(self, record_id: str, *, timeout: float | None = None) -> ContentRecord:
        self._enter("fetch_by_id", timeout)
        if record_id not in self.records:
            raise NotFoundError(record_id, tier="source")
        return self.records[record_id]

    def fetch_all(self, *, timeout: float | None = None) -> list[ContentRecord]:
        self._enter("fetch_all", timeout)
        return sort_records(self.records.values(), SortOrder.NEWEST)

    def create(self, draft: ContentDraft, *, timeout: float | None = None) -> ContentRecord:
        self._enter("create", timeout)
        record = draft.to_record(make_record_id(draft.kind.value), datetime.now(tz=UTC))
        self.records[record.id] = record
        return record

    def insert(self, record: ContentRecord, *, timeout: float | None = None) -> ContentRecord:
        self._enter("insert", timeout)
        canonical = record.model_copy(update={"id": make_record_id(record.kind.value)})
        self.records[canonical.id] = canonical
        return canonical

    def update(
        self, record_id: str, patch: ContentPatch, *, timeout: float | None = None
    ) -> ContentRecord:
        self._enter("update", timeout)
        if record_id not in self.records:
            raise NotFoundError(record_id, tier="source")
        record = patch.apply_to(self.records[record_id], datetime.now(tz=UTC))
        self.records[record_id] = record
        return record

    def delete(self, record_id: str, *, timeout: float | None = None) -> None:
        self._enter("delete", timeout)
        if self.records.pop(record_id, None) is None:
            raise NotFoundError(record_id, tier="source")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()
