"""Tests for MemoryCache TTL behaviour using a fake clock."""

from datetime import UTC, datetime

import pytest

from strata.content.cache import MemoryCache
from strata.content.models import ContentRecord

_NOW = datetime(2024, 6, 1, tzinfo=UTC)


def _records(*ids: str) -> list[ContentRecord]:
    return [ContentRecord(id=i, title=i, created_at=_NOW, updated_at=_NOW) for i in ids]


class TestMemoryCache:
    def test_empty_returns_none(self, clock):
        cache = MemoryCache(ttl=60, clock=clock)
        assert cache.get() is None
        assert cache.age is None

    def test_hit_within_ttl(self, clock):
        cache = MemoryCache(ttl=60, clock=clock)
        cache.set(_records("a"))
        clock.advance(59)
        assert [r.id for r in cache.get() or []] == ["a"]

    def test_expires_at_ttl(self, clock):
        cache = MemoryCache(ttl=60, clock=clock)
        cache.set(_records("a"))
        clock.advance(60)
        assert cache.get() is None

    def test_max_age_tightens_ttl(self, clock):
        cache = MemoryCache(ttl=60, clock=clock)
        cache.set(_records("a"))
        clock.advance(10)
        assert cache.get(max_age=5) is None
        assert cache.get(max_age=30) is not None

    def test_max_age_cannot_extend_ttl(self, clock):
        cache = MemoryCache(ttl=60, clock=clock)
        cache.set(_records("a"))
        clock.advance(90)
        assert cache.get(max_age=120) is None

    def test_invalidate(self, clock):
        cache = MemoryCache(ttl=60, clock=clock)
        cache.set(_records("a"))
        cache.invalidate()
        assert cache.get() is None

    def test_set_resets_age(self, clock):
        cache = MemoryCache(ttl=60, clock=clock)
        cache.set(_records("a"))
        clock.advance(50)
        cache.set(_records("b"))
        clock.advance(20)
        assert [r.id for r in cache.get() or []] == ["b"]
        assert cache.age == 20

    def test_returned_list_is_a_copy(self, clock):
        cache = MemoryCache(ttl=60, clock=clock)
        cache.set(_records("a"))
        (cache.get() or []).clear()
        assert len(cache.get() or []) == 1

    def test_mutating_returned_record_leaves_cache_intact(self, clock):
        cache = MemoryCache(ttl=60, clock=clock)
        cache.set(_records("a"))
        served = (cache.get() or [])[0]
        served.title = "changed by caller"
        served.location_tags.append("Calgary")
        cached = (cache.get() or [])[0]
        assert cached.title == "a"
        assert cached.location_tags == []

    def test_mutating_stored_record_leaves_cache_intact(self, clock):
        cache = MemoryCache(ttl=60, clock=clock)
        records = _records("a")
        cache.set(records)
        records[0].title = "changed after set"
        assert (cache.get() or [])[0].title == "a"

    def test_zero_ttl_never_hits(self, clock):
        cache = MemoryCache(ttl=0, clock=clock)
        cache.set(_records("a"))
        assert cache.get() is None

    def test_negative_ttl_rejected(self):
        with pytest.raises(ValueError):
            MemoryCache(ttl=-1)
