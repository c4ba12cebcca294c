"""Reconciler: makes one logical mutation durable across tiers.

Write order for every mutation:

1. the remote source (authoritative, may be unavailable),
2. the snapshot file (always; the only step whose failure is fatal),
3. memory cache invalidation,
4. revalidation of the affected public pages.

When the source is unavailable the mutation still lands in the snapshot
and the caller gets ``reconciled=False``.  Records created that way carry
a ``local-`` id until ``push_pending`` hands them to the source.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import ValidationError

from strata.content.cache import MemoryCache
from strata.content.models import (
    LOCAL_ID_PREFIX,
    ContentDraft,
    ContentPatch,
    ContentRecord,
    DeleteResult,
    PlacementScope,
    WriteResult,
    make_record_id,
)
from strata.content.snapshot import SnapshotStore
from strata.content.validation import quality_warnings, validate_record
from strata.integrations.revalidation import NullRevalidator, Revalidator
from strata.integrations.supabase import SourceConnector
from strata.shared.errors import (
    FatalError,
    InvalidContentError,
    NotFoundError,
    SnapshotError,
    UnavailableError,
)

logger = logging.getLogger(__name__)

SITE_WIDE_PATHS = [
    "/",
    *(f"/{s.value}" for s in PlacementScope if s != PlacementScope.HOME),
    "/articles",
    "/events",
]


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _validation_issues(exc: ValidationError) -> list[str]:
    return [err["msg"] for err in exc.errors()]


class Reconciler:
    """Single write path shared by create, update, delete and resync."""

    def __init__(
        self,
        source: SourceConnector,
        snapshot: SnapshotStore,
        cache: MemoryCache,
        revalidator: Revalidator | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._source = source
        self._snapshot = snapshot
        self._cache = cache
        self._revalidator = revalidator or NullRevalidator()
        self._now = now

    # ── Private helpers ──────────────────────────────────────────

    def _persist(self, record: ContentRecord) -> None:
        try:
            self._snapshot.upsert(record)
        except SnapshotError as exc:
            logger.error("Snapshot write failed for %s", record.id)
            raise FatalError(f"Could not persist '{record.id}' to the snapshot: {exc}") from exc

    def _after_write(self, record: ContentRecord | None) -> None:
        self._cache.invalidate()
        if record is None:
            self._revalidator.revalidate(list(SITE_WIDE_PATHS))
        else:
            self._revalidator.revalidate_record(record)

    def _find_local(self, record_id: str) -> ContentRecord | None:
        try:
            records = self._snapshot.load_all()
        except SnapshotError as exc:
            raise FatalError(f"Snapshot unreadable: {exc}") from exc
        return next((r for r in records if r.id == record_id), None)

    def _find_remote(self, record_id: str) -> ContentRecord:
        """Fetch a record the snapshot lacks so a patch can be checked against it."""
        try:
            return self._source.fetch_by_id(record_id)
        except UnavailableError as exc:
            logger.warning("Record %s not in snapshot and source unavailable: %s", record_id, exc)
            raise NotFoundError(record_id) from exc

    def _local_record(self, draft: ContentDraft) -> ContentRecord:
        try:
            record = draft.to_record(make_record_id(draft.kind.value, local=True), self._now())
        except ValidationError as exc:
            raise InvalidContentError(_validation_issues(exc)) from exc
        return validate_record(record)

    def _patched(self, existing: ContentRecord, patch: ContentPatch) -> ContentRecord:
        try:
            record = patch.apply_to(existing, self._now())
        except ValidationError as exc:
            raise InvalidContentError(_validation_issues(exc)) from exc
        return validate_record(record)

    # ── Mutations ────────────────────────────────────────────────

    def create(self, draft: ContentDraft) -> WriteResult:
        """Create a record in the source, falling back to the snapshot alone."""
        local = self._local_record(draft)
        warnings = quality_warnings(local)

        reconciled = True
        try:
            record = self._source.create(draft)
        except UnavailableError as exc:
            logger.warning("Source unavailable for create; keeping '%s' locally as %s: %s",
                           draft.title, local.id, exc)
            record = local
            reconciled = False

        self._persist(record)
        self._after_write(record)
        logger.info("Created %s %s (reconciled=%s)", record.kind, record.id, reconciled)
        return WriteResult(record=record, reconciled=reconciled, warnings=warnings)

    def update(self, record_id: str, patch: ContentPatch) -> WriteResult:
        """Apply ``patch`` to the source and snapshot.

        Fields absent from the patch keep their prior values.  The patched
        record is validated before the source is written, including for
        records the snapshot does not hold yet.  Raises NotFoundError when
        neither reachable tier knows the record.
        """
        if not patch.changes():
            raise InvalidContentError(["Update contains no changes"])
        if "title" in patch.changes() and not (patch.title or "").strip():
            raise InvalidContentError(["Title is required"])

        existing = self._find_local(record_id)
        if existing is None:
            existing = self._find_remote(record_id)
        candidate = self._patched(existing, patch)

        record = candidate
        reconciled = False
        if candidate.is_reconciled:
            try:
                record = self._source.update(record_id, patch)
                reconciled = True
            except UnavailableError as exc:
                logger.warning("Source unavailable for update of %s; updating snapshot only: %s",
                               record_id, exc)
            except NotFoundError:
                logger.warning("Record %s missing from source; updating snapshot only", record_id)

        self._persist(record)
        self._after_write(record)
        logger.info("Updated %s (reconciled=%s)", record_id, reconciled)
        return WriteResult(record=record, reconciled=reconciled, warnings=quality_warnings(record))

    def delete(self, record_id: str) -> DeleteResult:
        """Delete from the source and, regardless of that outcome, the snapshot.

        A record deleted locally while the source is down stays live in
        the source, so a later resync brings it back.  Until then an id
        lookup that misses the local tiers also reaches the source, and
        returns the record again once the source answers.
        """
        removed_remote = False
        reconciled = True
        if not record_id.startswith(LOCAL_ID_PREFIX):
            try:
                self._source.delete(record_id)
                removed_remote = True
            except NotFoundError:
                logger.info("Record %s not present in source", record_id)
            except (UnavailableError, InvalidContentError) as exc:
                logger.warning("Source delete failed for %s; removing locally only: %s",
                               record_id, exc)
                reconciled = False

        removed: ContentRecord | None = None
        try:
            removed = self._snapshot.remove(record_id)
        except NotFoundError:
            logger.info("Record %s not present in snapshot", record_id)
        except SnapshotError as exc:
            raise FatalError(f"Could not remove '{record_id}' from the snapshot: {exc}") from exc

        deleted = removed_remote or removed is not None
        if deleted:
            self._after_write(removed)
        else:
            self._cache.invalidate()
        logger.info("Deleted %s (deleted=%s, reconciled=%s)", record_id, deleted, reconciled)
        return DeleteResult(deleted=deleted, reconciled=reconciled)

    # ── Bulk operations ──────────────────────────────────────────

    def resync(self) -> list[ContentRecord]:
        """Replace the snapshot with a full pull from the source.

        Records still waiting for reconciliation are kept at the head of
        the new snapshot.  Raises UnavailableError if the pull fails;
        the snapshot is left untouched in that case.
        """
        records = self._source.fetch_all()
        try:
            pending = [r for r in self._snapshot.load_all() if not r.is_reconciled]
        except SnapshotError:
            logger.warning("Existing snapshot unreadable; resync replaces it wholesale",
                           exc_info=True)
            pending = []
        if pending:
            logger.info("Keeping %d unreconciled local records", len(pending))

        combined = pending + records
        try:
            self._snapshot.replace_all(combined)
        except SnapshotError as exc:
            raise FatalError(f"Could not write resynced snapshot: {exc}") from exc
        self._after_write(None)
        logger.info("Resynced snapshot with %d records", len(combined))
        return combined

    def push_pending(self) -> dict[str, ContentRecord]:
        """Hand locally created records to the source.

        Returns a mapping of local id to the authoritative record.  Stops
        at the first UnavailableError; rejected records stay local.
        """
        try:
            records = self._snapshot.load_all()
        except SnapshotError as exc:
            raise FatalError(f"Snapshot unreadable: {exc}") from exc

        pushed: dict[str, ContentRecord] = {}
        for record in records:
            if record.is_reconciled:
                continue
            try:
                pushed[record.id] = self._source.insert(record)
            except UnavailableError as exc:
                logger.warning("Source unavailable; %d records pushed before stopping: %s",
                               len(pushed), exc)
                break
            except InvalidContentError as exc:
                logger.warning("Source rejected local record %s: %s", record.id, exc)

        if not pushed:
            return pushed

        merged = [pushed.get(r.id, r) for r in records]
        try:
            self._snapshot.replace_all(merged)
        except SnapshotError as exc:
            raise FatalError(f"Could not write reconciled records: {exc}") from exc
        self._cache.invalidate()
        for record in pushed.values():
            self._revalidator.revalidate_record(record)
        logger.info("Pushed %d local records to source", len(pushed))
        return pushed
