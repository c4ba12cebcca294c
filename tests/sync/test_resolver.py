"""Tests for the ReadResolver tier fallback."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import pytest

from strata.content.cache import MemoryCache
from strata.content.models import (
    ContentFilter,
    ContentKind,
    ContentRecord,
    DateWindow,
    PublicationStatus,
    SortOrder,
    Tier,
)
from strata.content.snapshot import SnapshotStore
from strata.shared.errors import FatalError, InvalidContentError, NotFoundError
from strata.sync.resolver import Deadline, ReadResolver

_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


def _make_record(
    record_id: str = "article-1",
    title: str = "Best Of Edmonton 2024",
    minutes: int = 0,
    **kwargs: object,
) -> ContentRecord:
    created = _NOW + timedelta(minutes=minutes)
    return ContentRecord(
        id=record_id,
        title=title,
        created_at=created,
        updated_at=created,
        **kwargs,  # type: ignore[arg-type]
    )


@pytest.fixture
def snapshot(tmp_path: Path) -> SnapshotStore:
    return SnapshotStore(tmp_path / "snapshot.json")


@pytest.fixture
def cache(clock) -> MemoryCache:
    return MemoryCache(ttl=60, clock=clock)


@pytest.fixture
def resolver(source, snapshot, cache, clock) -> ReadResolver:
    return ReadResolver(
        source,
        snapshot,
        cache,
        budget=5,
        point_timeout=2,
        clock=clock,
        today=lambda: date(2024, 6, 12),
    )


class TestDeadline:
    def test_counts_down(self, clock):
        deadline = Deadline(5, clock)
        clock.advance(2)
        assert deadline.remaining() == 3

    def test_never_negative(self, clock):
        deadline = Deadline(1, clock)
        clock.advance(10)
        assert deadline.remaining() == 0


class TestListContent:
    def test_loads_snapshot_then_serves_cache(self, resolver, snapshot):
        snapshot.replace_all([_make_record()])

        first = resolver.list_content()
        second = resolver.list_content()

        assert first.served_from == Tier.SNAPSHOT
        assert second.served_from == Tier.CACHE
        assert [r.id for r in second.items] == ["article-1"]

    def test_cache_expiry_rereads_snapshot(self, resolver, snapshot, clock):
        snapshot.replace_all([_make_record("a")])
        resolver.list_content()
        snapshot.replace_all([_make_record("a"), _make_record("b", minutes=1)])

        assert [r.id for r in resolver.list_content().items] == ["a"]
        clock.advance(61)
        assert [r.id for r in resolver.list_content().items] == ["b", "a"]

    def test_max_age_forces_reload(self, resolver, snapshot, clock):
        snapshot.replace_all([_make_record()])
        resolver.list_content()
        clock.advance(10)
        assert resolver.list_content(max_age=5).served_from == Tier.SNAPSHOT

    def test_never_consults_source(self, resolver, source):
        source.add(_make_record())
        page = resolver.list_content()
        assert page.total == 0
        assert source.calls == []

    def test_filter_and_sort(self, resolver, snapshot):
        snapshot.replace_all(
            [
                _make_record("b", title="Banana", category="Food"),
                _make_record("a", title="apple", category="food"),
                _make_record("c", title="Cherry", category="Music"),
            ]
        )
        page = resolver.list_content(ContentFilter(category="Food"), SortOrder.TITLE)
        assert [r.id for r in page.items] == ["a", "b"]

    def test_date_window_uses_injected_today(self, resolver, snapshot):
        snapshot.replace_all(
            [
                _make_record(
                    "soon",
                    kind=ContentKind.EVENT,
                    effective_date=datetime(2024, 6, 12, 20, tzinfo=UTC),
                ),
                _make_record(
                    "later",
                    kind=ContentKind.EVENT,
                    effective_date=datetime(2024, 9, 1, 20, tzinfo=UTC),
                ),
            ]
        )
        page = resolver.list_content(ContentFilter(date_window=DateWindow.TODAY))
        assert [r.id for r in page.items] == ["soon"]

    def test_invalid_pagination(self, resolver):
        with pytest.raises(InvalidContentError):
            resolver.list_content(page=0)

    def test_corrupt_snapshot_is_fatal(self, resolver, snapshot):
        snapshot.path.write_text("not json", encoding="utf-8")
        with pytest.raises(FatalError):
            resolver.list_content()


class TestGetById:
    def test_from_snapshot(self, resolver, snapshot, source):
        snapshot.replace_all([_make_record()])
        record, tier = resolver.locate("article-1")
        assert record.id == "article-1"
        assert tier == Tier.SNAPSHOT
        assert source.calls == []

    def test_returns_drafts(self, resolver, snapshot):
        snapshot.replace_all([_make_record(status=PublicationStatus.DRAFT)])
        assert resolver.get_by_id("article-1").status == PublicationStatus.DRAFT

    def test_falls_through_to_source(self, resolver, source):
        source.add(_make_record("remote"))
        record, tier = resolver.locate("remote")
        assert tier == Tier.SOURCE
        assert source.timeouts == [2]

    def test_source_timeout_clipped_to_budget(self, source, snapshot, cache, clock):
        source.add(_make_record("remote"))
        resolver = ReadResolver(source, snapshot, cache, budget=1, point_timeout=2, clock=clock)
        resolver.get_by_id("remote")
        assert source.timeouts == [1]

    def test_unavailable_source_is_not_found(self, resolver, source):
        source.available = False
        with pytest.raises(NotFoundError):
            resolver.get_by_id("remote")

    def test_missing_everywhere(self, resolver):
        with pytest.raises(NotFoundError):
            resolver.get_by_id("nope")

    def test_corrupt_snapshot_still_tries_source(self, resolver, snapshot, source):
        snapshot.path.write_text("not json", encoding="utf-8")
        source.add(_make_record("remote"))
        assert resolver.get_by_id("remote").id == "remote"

    def test_idempotent(self, resolver, snapshot):
        snapshot.replace_all([_make_record()])
        assert resolver.get_by_id("article-1") == resolver.get_by_id("article-1")


class TestGetBySlug:
    def test_case_insensitive(self, resolver, snapshot):
        snapshot.replace_all([_make_record()])
        assert resolver.get_by_slug("best-of-edmonton-2024").id == "article-1"
        assert resolver.get_by_slug("BEST-OF-EDMONTON-2024").id == "article-1"

    def test_drafts_excluded_by_default(self, resolver, snapshot, source):
        snapshot.replace_all([_make_record(status=PublicationStatus.DRAFT)])
        with pytest.raises(NotFoundError):
            resolver.get_by_slug("best-of-edmonton-2024")
        assert resolver.get_by_slug("best-of-edmonton-2024", include_drafts=True).id == "article-1"

    def test_scans_recent_source_records(self, resolver, source):
        source.add(_make_record("remote", title="Only In Source"))
        assert resolver.get_by_slug("only-in-source").id == "remote"

    def test_source_down_is_not_found(self, resolver, source):
        source.available = False
        with pytest.raises(NotFoundError):
            resolver.get_by_slug("anything")

    def test_fuzzy_match(self, resolver, snapshot):
        snapshot.replace_all([_make_record(title="Edmonton Folk Music Festival 2024")])
        with pytest.raises(NotFoundError):
            resolver.get_by_slug("edmonton-folk-festival-2024")
        record = resolver.get_by_slug("edmonton-folk-festival-2024", fuzzy=True)
        assert record.id == "article-1"

    def test_fuzzy_rejects_weak_match(self, resolver, snapshot):
        snapshot.replace_all([_make_record(title="Edmonton Folk Music Festival")])
        with pytest.raises(NotFoundError):
            resolver.get_by_slug("calgary-stampede-rodeo-edmonton", fuzzy=True)

    def test_empty_slug(self, resolver):
        with pytest.raises(NotFoundError):
            resolver.get_by_slug(" / ")


class TestGetByIdAuthoritative:
    def test_reads_source_skipping_cache(self, resolver, source, cache):
        cache.set([_make_record(title="Stale Title")])
        source.add(_make_record(title="Fresh Title"))
        assert resolver.get_by_id_authoritative("article-1").title == "Fresh Title"

    def test_falls_back_to_snapshot(self, resolver, source, snapshot, cache):
        snapshot.replace_all([_make_record(title="Snapshot Title")])
        cache.set([_make_record(title="Cached Title")])
        source.available = False
        assert resolver.get_by_id_authoritative("article-1").title == "Snapshot Title"

    def test_source_not_found_is_final(self, resolver, snapshot):
        snapshot.replace_all([_make_record()])
        with pytest.raises(NotFoundError):
            resolver.get_by_id_authoritative("article-1")

    def test_local_record_from_snapshot(self, resolver, source, snapshot):
        snapshot.replace_all([_make_record("local-article-1")])
        assert resolver.get_by_id_authoritative("local-article-1").id == "local-article-1"
        assert source.calls == []
