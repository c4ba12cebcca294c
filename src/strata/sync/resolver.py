"""Read resolver: serve reads from the fastest tier that has the data.

Per request: memory cache, then the snapshot file, then (single-record
lookups only) the remote source.  Each request carries a time budget;
the source is only consulted while budget remains, and its timeout is
clipped to what is left.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, date, datetime

from strata.content.cache import MemoryCache
from strata.content.models import (
    LOCAL_ID_PREFIX,
    ContentFilter,
    ContentRecord,
    ListPage,
    SortOrder,
    Tier,
)
from strata.content.query import DEFAULT_PAGE_SIZE, build_page, check_pagination
from strata.content.snapshot import SnapshotStore
from strata.integrations.supabase import SourceConnector
from strata.shared.errors import FatalError, NotFoundError, SnapshotError, UnavailableError
from strata.shared.slugify import create_slug, normalize_slug

logger = logging.getLogger(__name__)

DEFAULT_BUDGET_SECONDS = 5.0
DEFAULT_POINT_TIMEOUT = 2.0
SLUG_SCAN_SIZE = 100
FUZZY_SLUG_THRESHOLD = 0.7


class Deadline:
    """Remaining time for one read request."""

    def __init__(self, budget: float, clock: Callable[[], float]) -> None:
        self._clock = clock
        self._expires = clock() + budget

    def remaining(self) -> float:
        return max(0.0, self._expires - self._clock())


def _slug_overlap(requested: str, candidate: str) -> float:
    wanted = [w for w in requested.split("-") if w]
    if not wanted:
        return 0.0
    have = [w for w in candidate.split("-") if w]
    hits = [w for w in wanted if any(w in h or h in w for h in have)]
    return len(hits) / len(wanted)


class ReadResolver:
    """Single entry point for reads."""

    def __init__(
        self,
        source: SourceConnector,
        snapshot: SnapshotStore,
        cache: MemoryCache,
        budget: float = DEFAULT_BUDGET_SECONDS,
        point_timeout: float = DEFAULT_POINT_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        today: Callable[[], date] | None = None,
    ) -> None:
        self._source = source
        self._snapshot = snapshot
        self._cache = cache
        self._budget = budget
        self._point_timeout = point_timeout
        self._clock = clock
        self._today = today or (lambda: datetime.now(tz=UTC).date())

    # ── Tiers ────────────────────────────────────────────────────

    def _local_records(self, max_age: float | None = None) -> tuple[list[ContentRecord], Tier]:
        """Cache first, then snapshot (which repopulates the cache)."""
        cached = self._cache.get(max_age)
        if cached is not None:
            logger.debug("Served %d records from memory cache", len(cached))
            return cached, Tier.CACHE
        try:
            records = self._snapshot.load_all()
        except SnapshotError as exc:
            raise FatalError(f"Snapshot unreadable: {exc}") from exc
        self._cache.set(records)
        logger.debug("Loaded %d records from snapshot", len(records))
        return records, Tier.SNAPSHOT

    def _local_or_empty(self) -> tuple[list[ContentRecord], Tier]:
        try:
            return self._local_records()
        except FatalError:
            logger.warning("Local tiers unavailable; trying source", exc_info=True)
            return [], Tier.SNAPSHOT

    def _source_timeout(self, deadline: Deadline) -> float | None:
        remaining = deadline.remaining()
        if remaining <= 0:
            logger.debug("Read budget exhausted before reaching source")
            return None
        return min(remaining, self._point_timeout)

    # ── Listings ─────────────────────────────────────────────────

    def list_content(
        self,
        flt: ContentFilter | None = None,
        sort: SortOrder = SortOrder.NEWEST,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        *,
        max_age: float | None = None,
    ) -> ListPage:
        """Filter the locally held list.  Never consults the source.

        ``max_age`` lets a call site demand a fresher cache than the TTL.
        """
        check_pagination(page, page_size)
        records, tier = self._local_records(max_age)
        return build_page(records, flt, sort, page, page_size, served_from=tier, today=self._today())

    # ── Single records ───────────────────────────────────────────

    def locate(self, record_id: str) -> tuple[ContentRecord, Tier]:
        """Find a record by id and report which tier served it.

        Local misses fall through to the source, so a record deleted
        with ``reconciled=False`` is served again from there.
        """
        deadline = Deadline(self._budget, self._clock)
        records, tier = self._local_or_empty()
        for record in records:
            if record.id == record_id:
                return record, tier

        timeout = self._source_timeout(deadline)
        if timeout is None:
            raise NotFoundError(record_id)
        try:
            return self._source.fetch_by_id(record_id, timeout=timeout), Tier.SOURCE
        except UnavailableError as exc:
            logger.warning("Source unavailable looking up %s: %s", record_id, exc)
            raise NotFoundError(record_id) from exc

    def get_by_id(self, record_id: str) -> ContentRecord:
        """Any status, including drafts (admin-facing)."""
        return self.locate(record_id)[0]

    def get_by_slug(
        self, slug: str, *, include_drafts: bool = False, fuzzy: bool = False
    ) -> ContentRecord:
        """Find a record whose title slugifies to ``slug``, ignoring case.

        With ``fuzzy`` a record whose slug shares at least 70% of the
        requested words is accepted when there is no exact match.
        """
        wanted = normalize_slug(slug)
        if not wanted:
            raise NotFoundError(slug)
        deadline = Deadline(self._budget, self._clock)

        def visible(record: ContentRecord) -> bool:
            return include_drafts or record.is_published

        records, _ = self._local_or_empty()
        candidates = [r for r in records if visible(r)]
        for record in candidates:
            if create_slug(record.title) == wanted:
                return record

        timeout = self._source_timeout(deadline)
        if timeout is not None:
            try:
                recent = self._source.query(
                    ContentFilter(status="all" if include_drafts else None),
                    SortOrder.NEWEST,
                    1,
                    SLUG_SCAN_SIZE,
                    timeout=timeout,
                ).records
            except UnavailableError as exc:
                logger.warning("Source unavailable looking up slug %s: %s", wanted, exc)
                recent = []
            for record in recent:
                if visible(record) and create_slug(record.title) == wanted:
                    return record

        if fuzzy:
            best = max(candidates, key=lambda r: _slug_overlap(wanted, r.slug), default=None)
            if best is not None and _slug_overlap(wanted, best.slug) >= FUZZY_SLUG_THRESHOLD:
                logger.debug("Fuzzy slug match %s -> %s", wanted, best.slug)
                return best
        raise NotFoundError(wanted)

    def get_by_id_authoritative(self, record_id: str) -> ContentRecord:
        """Read straight from the source; fall back to the snapshot if it is down.

        Skips the memory cache entirely.  A NotFoundError from the source
        is final, except for records that only exist locally.
        """
        if not record_id.startswith(LOCAL_ID_PREFIX):
            try:
                return self._source.fetch_by_id(record_id, timeout=self._point_timeout)
            except UnavailableError as exc:
                logger.warning("Source unavailable for authoritative read of %s: %s",
                               record_id, exc)
        try:
            records = self._snapshot.load_all()
        except SnapshotError as exc:
            raise FatalError(f"Snapshot unreadable: {exc}") from exc
        for record in records:
            if record.id == record_id:
                return record
        raise NotFoundError(record_id, tier="snapshot")
