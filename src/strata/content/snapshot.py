"""File-resident snapshot of all known-live content.

The snapshot is a single JSON list of records, newest first, written
with indent so it stays readable and hand-editable between runs.  Every
write goes to a temporary file in the same directory and is moved into
place with ``os.replace`` so readers never see a half-written list.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from datetime import UTC, datetime
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from strata.content.models import ContentRecord, SnapshotStats
from strata.shared.errors import NotFoundError, SnapshotError

logger = logging.getLogger(__name__)

SNAPSHOT_FILENAME = ".strata-snapshot.json"
MAX_BODY_LENGTH = 100_000
SIZE_WARNING_KB = 500

_records_adapter = TypeAdapter(list[ContentRecord])


class SnapshotStore:
    """Durable, ordered collection of content records.

    Reads always go to disk; callers that want to avoid repeated reads
    sit a MemoryCache in front.  I/O failures surface as SnapshotError
    and are never retried here.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._write_lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    # ── Private helpers ──────────────────────────────────────────

    def _read(self) -> list[ContentRecord]:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise SnapshotError(f"Cannot read snapshot {self._path}: {exc}") from exc
        if not raw.strip():
            return []
        try:
            return _records_adapter.validate_json(raw)
        except ValidationError as exc:
            raise SnapshotError(f"Corrupt snapshot at {self._path}: {exc}") from exc

    def _write(self, records: list[ContentRecord]) -> None:
        payload = _records_adapter.dump_json(
            [_trim_body(r) for r in records], indent=2
        )
        tmp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "wb",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self._path)
        except OSError as exc:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise SnapshotError(f"Cannot write snapshot {self._path}: {exc}") from exc

        size_kb = round(len(payload) / 1024)
        if size_kb > SIZE_WARNING_KB:
            logger.warning("Snapshot %s is %d KB (%d records)", self._path, size_kb, len(records))

    # ── Read operations ──────────────────────────────────────────

    def load_all(self) -> list[ContentRecord]:
        """Return every record; an absent snapshot is an empty list."""
        return self._read()

    def stats(self) -> SnapshotStats:
        try:
            info = self._path.stat()
        except FileNotFoundError:
            return SnapshotStats(exists=False)
        except OSError as exc:
            raise SnapshotError(f"Cannot stat snapshot {self._path}: {exc}") from exc
        return SnapshotStats(
            exists=True,
            size_kb=round(info.st_size / 1024),
            record_count=len(self._read()),
            last_modified=datetime.fromtimestamp(info.st_mtime, tz=UTC),
        )

    # ── Write operations ─────────────────────────────────────────

    def replace_all(self, records: list[ContentRecord]) -> None:
        """Atomically overwrite the whole collection.

        Later duplicates of an id are dropped so the snapshot never holds
        two records with the same id.
        """
        seen: set[str] = set()
        unique: list[ContentRecord] = []
        for record in records:
            if record.id in seen:
                logger.warning("Dropping duplicate record id %s from snapshot", record.id)
                continue
            seen.add(record.id)
            unique.append(record)
        with self._write_lock:
            self._write(unique)

    def upsert(self, record: ContentRecord) -> None:
        """Replace the record with the same id in place, or prepend it."""
        with self._write_lock:
            records = self._read()
            for index, existing in enumerate(records):
                if existing.id == record.id:
                    records[index] = record
                    break
            else:
                records.insert(0, record)
            self._write(records)

    def remove(self, record_id: str) -> ContentRecord:
        """Remove a record by id and return it.

        Raises NotFoundError (nothing written) if no record matched.
        """
        with self._write_lock:
            records = self._read()
            kept = [r for r in records if r.id != record_id]
            if len(kept) == len(records):
                raise NotFoundError(record_id, tier="snapshot")
            self._write(kept)
        return next(r for r in records if r.id == record_id)


def _trim_body(record: ContentRecord) -> ContentRecord:
    if record.body is not None and len(record.body) > MAX_BODY_LENGTH:
        logger.debug("Truncating body of %s to %d characters", record.id, MAX_BODY_LENGTH)
        return record.model_copy(update={"body": record.body[:MAX_BODY_LENGTH]})
    return record
