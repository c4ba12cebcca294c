"""In-process filtering, sorting and pagination over a record list.

Listings are always computed against whichever full list a tier handed
back; nothing here talks to storage.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from datetime import UTC, date, datetime, timedelta

from strata.content.models import (
    ContentFilter,
    ContentRecord,
    DateWindow,
    ListPage,
    PublicationStatus,
    SortOrder,
    Tier,
)
from strata.shared.errors import InvalidContentError

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20


def check_pagination(page: int, page_size: int) -> None:
    """Raise InvalidContentError unless ``page >= 1`` and ``1 <= page_size <= 100``."""
    issues: list[str] = []
    if page < 1:
        issues.append("page must be at least 1")
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        issues.append(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
    if issues:
        raise InvalidContentError(issues)


def _month_end(year: int, month: int) -> date:
    if month > 12:
        year, month = year + 1, month - 12
    return date(year, month, calendar.monthrange(year, month)[1])


def in_date_window(day: date, window: DateWindow, today: date) -> bool:
    """Whether ``day`` falls inside ``window`` as seen from ``today``."""
    week_end = today + timedelta(days=7)
    if window == DateWindow.TODAY:
        return day == today
    if window == DateWindow.THIS_WEEK:
        return today <= day <= week_end
    if window == DateWindow.THIS_WEEKEND:
        return day.weekday() >= 5 and today <= day <= week_end
    this_month_end = _month_end(today.year, today.month)
    if window == DateWindow.THIS_MONTH:
        return today <= day <= this_month_end
    if window == DateWindow.NEXT_MONTH:
        return this_month_end < day <= _month_end(today.year, today.month + 1)
    return True


def _status_matches(record: ContentRecord, status: str | None) -> bool:
    if status == "all":
        return True
    wanted = PublicationStatus(status) if status else PublicationStatus.PUBLISHED
    return record.status == wanted


def matches(record: ContentRecord, flt: ContentFilter, today: date | None = None) -> bool:
    """Return True if ``record`` passes every criterion set on ``flt``."""
    if not _status_matches(record, flt.status):
        return False
    if flt.kind is not None and record.kind != flt.kind:
        return False
    if flt.category:
        wanted = flt.category.strip().lower()
        if wanted != "all" and wanted not in {c.lower() for c in record.all_categories()}:
            return False
    if flt.location:
        needle = flt.location.strip().lower()
        if needle != "all" and not any(needle in tag.lower() for tag in record.location_tags):
            return False
    if flt.search:
        needle = flt.search.strip().lower()
        haystack = f"{record.title}\n{record.excerpt}".lower()
        if needle not in haystack:
            return False
    if flt.placement is not None and not record.is_placed(flt.placement):
        return False
    if flt.date_window is not None:
        if record.effective_date is None:
            return False
        today = today or datetime.now(tz=UTC).date()
        if not in_date_window(record.effective_date.date(), flt.date_window, today):
            return False
    return True


def filter_records(
    records: Iterable[ContentRecord],
    flt: ContentFilter | None = None,
    today: date | None = None,
) -> list[ContentRecord]:
    flt = flt or ContentFilter()
    return [r for r in records if matches(r, flt, today)]


def sort_records(records: Iterable[ContentRecord], order: SortOrder) -> list[ContentRecord]:
    items = list(records)
    if order == SortOrder.NEWEST:
        return sorted(items, key=lambda r: r.created_at, reverse=True)
    if order == SortOrder.OLDEST:
        return sorted(items, key=lambda r: r.created_at)
    if order == SortOrder.TITLE:
        return sorted(items, key=lambda r: r.title.casefold())
    # Events calendar order: soonest first.
    return sorted(items, key=lambda r: r.effective_date or r.created_at)


def paginate(
    records: list[ContentRecord],
    page: int,
    page_size: int,
    served_from: Tier | None = None,
) -> ListPage:
    check_pagination(page, page_size)
    start = (page - 1) * page_size
    return ListPage(
        items=records[start : start + page_size],
        total=len(records),
        page=page,
        page_size=page_size,
        served_from=served_from,
    )


def build_page(
    records: Iterable[ContentRecord],
    flt: ContentFilter | None = None,
    sort: SortOrder = SortOrder.NEWEST,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    served_from: Tier | None = None,
    today: date | None = None,
) -> ListPage:
    """Filter, sort and slice ``records`` into one page."""
    check_pagination(page, page_size)
    selected = sort_records(filter_records(records, flt, today), sort)
    return paginate(selected, page, page_size, served_from)
