"""Source connector: the authoritative content table behind a
PostgREST-style HTTP API (Supabase).

Every call carries an explicit timeout.  Transport failures, timeouts
and server errors all surface as UnavailableError so callers can fall
back to a local tier; nothing is retried here.
"""

from __future__ import annotations

import json
import logging
import os
import re
import socket
import urllib.error
import urllib.parse
import urllib.request
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ValidationError

from strata.content.models import (
    ContentDraft,
    ContentFilter,
    ContentKind,
    ContentPatch,
    ContentRecord,
    Placement,
    PublicationStatus,
    SortOrder,
    make_record_id,
)
from strata.shared.errors import InvalidContentError, NotFoundError, UnavailableError

logger = logging.getLogger(__name__)

_CONTENT_RANGE_RE = re.compile(r"(?:\d+-\d+|\*)/(\d+|\*)")
_IMAGE_PREFIXES = ("http://", "https://", "data:", "/")
_INVALID_STATUSES = {400, 409, 422}

_SORT_COLUMNS: dict[SortOrder, str] = {
    SortOrder.NEWEST: "created_at.desc",
    SortOrder.OLDEST: "created_at.asc",
    SortOrder.TITLE: "title.asc",
    SortOrder.EFFECTIVE_DATE: "event_date.asc.nullslast,created_at.asc",
}


class SourceConfig(BaseModel):
    """Connection settings for the authoritative store."""

    url: str = ""
    api_key: str = ""
    table: str = "articles"
    read_timeout: float = 3.0
    point_timeout: float = 2.0
    write_timeout: float = 10.0
    sync_timeout: float = 30.0
    sync_page_size: int = 1000

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.api_key)

    @classmethod
    def from_env(cls) -> SourceConfig:
        """Create config from environment variables."""
        return cls(
            url=os.environ.get("SUPABASE_URL", ""),
            api_key=os.environ.get("SUPABASE_KEY", ""),
            table=os.environ.get("STRATA_SOURCE_TABLE", "articles"),
        )


class SourcePage(BaseModel):
    """A page of query results plus the total match count."""

    records: list[ContentRecord]
    total: int


# ── Row mapping ──────────────────────────────────────────────────────────


def _clean_image(value: Any) -> str | None:
    if not value or not isinstance(value, str) or value in ("null", "undefined"):
        return None
    if not value.startswith(_IMAGE_PREFIXES):
        logger.debug("Ignoring unusable image reference %.40s", value)
        return None
    return value


def _split_location(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value]
    if not value:
        return []
    return [part.strip() for part in str(value).split(",") if part.strip()]


def row_to_record(row: dict[str, Any]) -> ContentRecord:
    """Map a table row onto a ContentRecord.

    Raises ValidationError for rows that cannot form a valid record
    (for example an event without a date).
    """
    kind = row.get("type") or ContentKind.ARTICLE.value
    created = row.get("created_at")
    return ContentRecord(
        id=str(row["id"]),
        kind=kind,
        title=row.get("title") or "",
        body=row.get("content"),
        excerpt=row.get("excerpt") or "",
        category=row.get("category") or "",
        categories=row.get("categories") or [],
        location_tags=_split_location(row.get("location")),
        freeform_tags=row.get("tags") or [],
        status=row.get("status") or PublicationStatus.PUBLISHED.value,
        placements={p: bool(row.get(p.value)) for p in Placement if row.get(p.value)},
        created_at=created,
        updated_at=row.get("updated_at") or created,
        effective_date=row.get("event_date") if kind == ContentKind.EVENT.value else None,
        event_end_date=row.get("event_end_date"),
        image_ref=_clean_image(row.get("image_url") or row.get("image")),
        author=row.get("author") or "",
        organizer=row.get("organizer") or "",
        website_url=row.get("website_url") or "",
    )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def record_to_row(record: ContentRecord) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": record.id,
        "title": record.title,
        "content": record.body,
        "excerpt": record.excerpt,
        "category": record.category,
        "categories": record.categories or ([record.category] if record.category else []),
        "location": ", ".join(record.location_tags),
        "tags": record.freeform_tags,
        "type": record.kind.value,
        "status": record.status.value,
        "image_url": record.image_ref,
        "author": record.author,
        "organizer": record.organizer,
        "website_url": record.website_url,
        "created_at": _iso(record.created_at),
        "updated_at": _iso(record.updated_at),
        "event_date": _iso(record.effective_date) if record.kind == ContentKind.EVENT else None,
        "event_end_date": _iso(record.event_end_date),
    }
    for placement in Placement:
        row[placement.value] = record.is_placed(placement)
    return row


def patch_to_row(patch: ContentPatch, now: datetime) -> dict[str, Any]:
    """Translate only the supplied fields of a patch into columns."""
    changes = patch.changes()
    row: dict[str, Any] = {"updated_at": now.isoformat()}
    simple = {
        "title": "title",
        "body": "content",
        "excerpt": "excerpt",
        "category": "category",
        "categories": "categories",
        "freeform_tags": "tags",
        "image_ref": "image_url",
        "author": "author",
        "organizer": "organizer",
        "website_url": "website_url",
    }
    for field, column in simple.items():
        if field in changes:
            row[column] = changes[field]
    if "kind" in changes and changes["kind"] is not None:
        row["type"] = ContentKind(changes["kind"]).value
    if "status" in changes and changes["status"] is not None:
        row["status"] = PublicationStatus(changes["status"]).value
    if "location_tags" in changes:
        row["location"] = ", ".join(changes["location_tags"] or [])
    if "effective_date" in changes:
        row["event_date"] = _iso(changes["effective_date"])
    if "event_end_date" in changes:
        row["event_end_date"] = _iso(changes["event_end_date"])
    for placement, flag in (changes.get("placements") or {}).items():
        row[Placement(placement).value] = bool(flag)
    return row


def filter_params(flt: ContentFilter) -> list[tuple[str, str]]:
    """PostgREST query parameters for a listing filter."""
    params: list[tuple[str, str]] = []
    if flt.kind is not None:
        params.append(("type", f"eq.{flt.kind.value}"))
    if flt.status != "all":
        params.append(("status", f"eq.{flt.status or PublicationStatus.PUBLISHED.value}"))
    if flt.category and flt.category.lower() != "all":
        params.append(("category", f"ilike.{flt.category}"))
    if flt.location and flt.location.lower() != "all":
        params.append(("location", f"ilike.*{flt.location}*"))
    if flt.search:
        term = flt.search.replace(",", " ").replace("(", " ").replace(")", " ")
        params.append(("or", f"(title.ilike.*{term}*,excerpt.ilike.*{term}*)"))
    if flt.placement is not None:
        params.append((flt.placement.value, "is.true"))
    if flt.date_window is not None:
        logger.debug("Date windows are not pushed down to the source; ignoring %s", flt.date_window)
    return params


def _parse_total(content_range: str | None, fallback: int) -> int:
    if not isinstance(content_range, str) or not content_range:
        return fallback
    match = _CONTENT_RANGE_RE.search(content_range)
    if not match or match.group(1) == "*":
        return fallback
    return int(match.group(1))


# ── Client ───────────────────────────────────────────────────────────────


class SourceConnector:
    """Client for the authoritative content table.

    Handles key authentication and row mapping via urllib.
    """

    def __init__(self, config: SourceConfig) -> None:
        self.config = config
        self.base_url = config.url.rstrip("/")

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured

    def _table_url(self, params: list[tuple[str, str]] | None = None) -> str:
        url = f"{self.base_url}/rest/v1/{self.config.table}"
        if params:
            url += "?" + urllib.parse.urlencode(params, safe="(),*.:", quote_via=urllib.parse.quote)
        return url

    def _request(
        self,
        method: str,
        url: str,
        *,
        timeout: float,
        data: Any = None,
        prefer: str | None = None,
    ) -> tuple[Any, str | None]:
        """Make an authenticated request and return (json body, Content-Range)."""
        if not self.is_configured:
            raise UnavailableError("Source connector is not configured")

        headers = {
            "apikey": self.config.api_key,
            "Authorization": f"Bearer {self.config.api_key}",
            "Accept": "application/json",
        }
        body = None
        if data is not None:
            body = json.dumps(data).encode("utf-8")
            headers["Content-Type"] = "application/json"
        if prefer:
            headers["Prefer"] = prefer

        req = urllib.request.Request(url, data=body, method=method, headers=headers)
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                raw = resp.read()
                content_range = resp.headers.get("Content-Range") if resp.headers else None
        except urllib.error.HTTPError as exc:
            detail = _error_detail(exc)
            if exc.code in _INVALID_STATUSES:
                raise InvalidContentError([f"Source rejected {method}: {detail}"]) from exc
            raise UnavailableError(f"Source returned HTTP {exc.code} for {method}: {detail}") from exc
        except (urllib.error.URLError, TimeoutError, socket.timeout, ConnectionError) as exc:
            raise UnavailableError(f"Source unreachable for {method} ({timeout}s): {exc}") from exc

        if not raw:
            return None, content_range
        try:
            return json.loads(raw.decode("utf-8")), content_range
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise UnavailableError(f"Undecodable response from source for {method}") from exc

    def _single(self, payload: Any, record_id: str) -> ContentRecord:
        rows = payload if isinstance(payload, list) else [payload] if payload else []
        if not rows:
            raise NotFoundError(record_id, tier="source")
        try:
            return row_to_record(rows[0])
        except (ValidationError, KeyError) as exc:
            raise UnavailableError(f"Malformed row for '{record_id}' from source") from exc

    def _written(self, payload: Any, sent: ContentRecord) -> ContentRecord:
        """The stored representation of an insert, or ``sent`` if none came back.

        The id is assigned client-side, so an empty or unparseable body
        after a successful POST still means ``sent`` exists in the source.
        """
        rows = payload if isinstance(payload, list) else [payload] if payload else []
        if not rows:
            logger.warning("Source returned no representation for %s; using the sent record", sent.id)
            return sent
        try:
            return row_to_record(rows[0])
        except (ValidationError, KeyError, TypeError):
            logger.warning("Malformed representation for %s; using the sent record", sent.id,
                           exc_info=True)
            return sent

    def _records(self, payload: Any) -> list[ContentRecord]:
        records: list[ContentRecord] = []
        for row in payload or []:
            try:
                records.append(row_to_record(row))
            except (ValidationError, KeyError):
                logger.warning("Skipping malformed source row %s", row.get("id"), exc_info=True)
        return records

    # ── Reads ────────────────────────────────────────────────────────

    def query(
        self,
        flt: ContentFilter | None = None,
        sort: SortOrder = SortOrder.NEWEST,
        page: int = 1,
        page_size: int = 20,
        *,
        timeout: float | None = None,
    ) -> SourcePage:
        """Run a filtered, sorted, paginated query against the source."""
        params: list[tuple[str, str]] = [("select", "*")]
        params.extend(filter_params(flt or ContentFilter()))
        params.append(("order", _SORT_COLUMNS[sort]))
        params.append(("offset", str((page - 1) * page_size)))
        params.append(("limit", str(page_size)))

        payload, content_range = self._request(
            "GET",
            self._table_url(params),
            timeout=timeout or self.config.read_timeout,
            prefer="count=exact",
        )
        records = self._records(payload)
        return SourcePage(records=records, total=_parse_total(content_range, len(records)))

    def fetch_by_id(self, record_id: str, *, timeout: float | None = None) -> ContentRecord:
        params = [("select", "*"), ("id", f"eq.{record_id}"), ("limit", "1")]
        payload, _ = self._request(
            "GET",
            self._table_url(params),
            timeout=timeout or self.config.point_timeout,
        )
        return self._single(payload, record_id)

    def fetch_all(self, *, timeout: float | None = None) -> list[ContentRecord]:
        """Pull every record (all statuses), newest first, page by page."""
        flt = ContentFilter(status="all")
        size = self.config.sync_page_size
        records: list[ContentRecord] = []
        page = 1
        while True:
            result = self.query(
                flt, SortOrder.NEWEST, page, size, timeout=timeout or self.config.sync_timeout
            )
            records.extend(result.records)
            if page * size >= result.total or not result.records:
                break
            page += 1
        logger.info("Fetched %d records from source", len(records))
        return records

    # ── Writes ───────────────────────────────────────────────────────

    def create(self, draft: ContentDraft, *, timeout: float | None = None) -> ContentRecord:
        """Insert a record and return it as stored, with its canonical id."""
        now = datetime.now(tz=UTC)
        record = draft.to_record(make_record_id(draft.kind.value), now)
        payload, _ = self._request(
            "POST",
            self._table_url(),
            timeout=timeout or self.config.write_timeout,
            data=[record_to_row(record)],
            prefer="return=representation",
        )
        return self._written(payload, record)

    def insert(self, record: ContentRecord, *, timeout: float | None = None) -> ContentRecord:
        """Insert an already-formed record under a fresh canonical id.

        Used to push records that were created locally while the source
        was down; their original timestamps are kept.
        """
        canonical = record.model_copy(update={"id": make_record_id(record.kind.value)})
        payload, _ = self._request(
            "POST",
            self._table_url(),
            timeout=timeout or self.config.write_timeout,
            data=[record_to_row(canonical)],
            prefer="return=representation",
        )
        return self._written(payload, canonical)

    def update(
        self, record_id: str, patch: ContentPatch, *, timeout: float | None = None
    ) -> ContentRecord:
        now = datetime.now(tz=UTC)
        payload, _ = self._request(
            "PATCH",
            self._table_url([("id", f"eq.{record_id}")]),
            timeout=timeout or self.config.write_timeout,
            data=patch_to_row(patch, now),
            prefer="return=representation",
        )
        return self._single(payload, record_id)

    def delete(self, record_id: str, *, timeout: float | None = None) -> None:
        payload, _ = self._request(
            "DELETE",
            self._table_url([("id", f"eq.{record_id}")]),
            timeout=timeout or self.config.write_timeout,
            prefer="return=representation",
        )
        if not payload:
            raise NotFoundError(record_id, tier="source")


def _error_detail(exc: urllib.error.HTTPError) -> str:
    try:
        body = exc.read().decode("utf-8")
    except (OSError, UnicodeDecodeError, AttributeError):
        return exc.reason if isinstance(exc.reason, str) else str(exc)
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body[:200]
    if isinstance(data, dict):
        return str(data.get("message") or data.get("hint") or data)[:200]
    return body[:200]
