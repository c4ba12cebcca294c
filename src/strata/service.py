"""ContentService: the read/write/control surface page renderers and the
admin UI call into.

Construct one per process with ``build_service(config)``; it owns the
process-wide MemoryCache shared by every request.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ValidationError

from strata.config import StrataConfig
from strata.content.cache import MemoryCache
from strata.content.models import (
    ContentDraft,
    ContentFilter,
    ContentPatch,
    ContentRecord,
    DeleteResult,
    ListPage,
    SnapshotStats,
    SortOrder,
    SyncStatus,
    WriteResult,
)
from strata.content.query import DEFAULT_PAGE_SIZE
from strata.content.snapshot import SnapshotStore
from strata.integrations.revalidation import create_revalidator
from strata.integrations.supabase import SourceConnector
from strata.shared.errors import InvalidContentError, SnapshotError, UnavailableError
from strata.sync.reconciler import Reconciler
from strata.sync.resolver import ReadResolver

logger = logging.getLogger(__name__)


def _coerce(model: type[BaseModel], value: Any) -> Any:
    if value is None or isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        raise InvalidContentError([err["msg"] for err in exc.errors()]) from exc


class ContentService:
    """Facade over the resolver (reads) and reconciler (writes)."""

    def __init__(
        self,
        resolver: ReadResolver,
        reconciler: Reconciler,
        cache: MemoryCache,
        snapshot: SnapshotStore,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.resolver = resolver
        self.reconciler = reconciler
        self.cache = cache
        self.snapshot = snapshot
        self._now = now or (lambda: datetime.now(tz=UTC))
        self._sync_lock = threading.Lock()
        self._status = SyncStatus()

    # ── Reads ────────────────────────────────────────────────────

    def list_content(
        self,
        flt: ContentFilter | dict[str, Any] | None = None,
        sort: SortOrder | str = SortOrder.NEWEST,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        *,
        max_age: float | None = None,
    ) -> ListPage:
        try:
            order = SortOrder(sort)
        except ValueError as exc:
            raise InvalidContentError([f"Unknown sort '{sort}'"]) from exc
        return self.resolver.list_content(
            _coerce(ContentFilter, flt), order, page, page_size, max_age=max_age
        )

    def get_by_id(self, record_id: str) -> ContentRecord:
        return self.resolver.get_by_id(record_id)

    def get_by_slug(self, slug: str, *, include_drafts: bool = False) -> ContentRecord:
        return self.resolver.get_by_slug(slug, include_drafts=include_drafts)

    def get_by_id_authoritative(self, record_id: str) -> ContentRecord:
        return self.resolver.get_by_id_authoritative(record_id)

    # ── Writes ───────────────────────────────────────────────────

    def create_content(self, draft: ContentDraft | dict[str, Any]) -> WriteResult:
        return self.reconciler.create(_coerce(ContentDraft, draft))

    def update_content(self, record_id: str, patch: ContentPatch | dict[str, Any]) -> WriteResult:
        return self.reconciler.update(record_id, _coerce(ContentPatch, patch))

    def delete_content(self, record_id: str) -> DeleteResult:
        return self.reconciler.delete(record_id)

    # ── Control ──────────────────────────────────────────────────

    def invalidate_caches(self) -> None:
        """Drop the memory cache.  The snapshot is left alone."""
        self.cache.invalidate()
        logger.info("Memory cache invalidated")

    def force_resync(self) -> SyncStatus:
        """Re-pull everything from the source into the snapshot.

        An unavailable source is reported in the returned status rather
        than raised; the snapshot is left as it was.
        """
        if not self._sync_lock.acquire(blocking=False):
            logger.info("Resync already running, skipping")
            return self.sync_status()
        try:
            self._status = self._status.model_copy(update={"is_running": True})
            try:
                records = self.reconciler.resync()
            except UnavailableError as exc:
                logger.warning("Resync failed: %s", exc)
                self._status = self._status.model_copy(
                    update={"is_running": False, "last_error": str(exc)}
                )
                return self.sync_status()
            except Exception:
                self._status = self._status.model_copy(update={"is_running": False})
                raise
            self._status = SyncStatus(
                last_sync=self._now(),
                is_running=False,
                last_error=None,
                record_count=len(records),
            )
            return self.sync_status()
        finally:
            self._sync_lock.release()

    def resync_if_stale(self, max_age: timedelta) -> SyncStatus:
        """Resync only when the last successful resync is older than ``max_age``."""
        last = self._status.last_sync
        if last is not None and self._now() - last < max_age:
            return self.sync_status()
        return self.force_resync()

    def push_pending(self) -> dict[str, ContentRecord]:
        return self.reconciler.push_pending()

    def sync_status(self) -> SyncStatus:
        return self._status.model_copy()

    def snapshot_stats(self) -> SnapshotStats:
        try:
            return self.snapshot.stats()
        except SnapshotError:
            logger.warning("Snapshot stats unavailable", exc_info=True)
            return SnapshotStats(exists=self.snapshot.path.exists())


def build_service(config: StrataConfig) -> ContentService:
    """Wire every tier from configuration."""
    snapshot = SnapshotStore(config.snapshot_path)
    cache = MemoryCache(ttl=config.cache.ttl_seconds)
    source = SourceConnector(config.source)
    if not source.is_configured:
        logger.warning("Source not configured; running from the snapshot only")
    revalidator = create_revalidator(config.revalidation)
    resolver = ReadResolver(
        source,
        snapshot,
        cache,
        budget=config.reads.budget_seconds,
        point_timeout=config.source.point_timeout,
    )
    reconciler = Reconciler(source, snapshot, cache, revalidator)
    return ContentService(resolver, reconciler, cache, snapshot)
