"""Write-input validation.

``validate_record`` raises InvalidContentError for input that must never
reach a tier.  ``quality_warnings`` reports softer problems (short
titles, missing excerpts) that are returned to the operator but never
block a write.
"""

from __future__ import annotations

from strata.content.models import ContentKind, ContentRecord
from strata.shared.errors import InvalidContentError

MAX_TITLE_LENGTH = 300
_IMAGE_PREFIXES = ("http://", "https://", "data:", "/")


def collect_issues(record: ContentRecord) -> list[str]:
    """Return blocking problems with a record, empty if it is writable."""
    issues: list[str] = []
    if not record.title or not record.title.strip():
        issues.append("Title is required")
    elif len(record.title) > MAX_TITLE_LENGTH:
        issues.append(f"Title is longer than {MAX_TITLE_LENGTH} characters")
    if record.kind == ContentKind.EVENT:
        if record.effective_date is None:
            issues.append("Event date is required")
        elif record.effective_date == record.created_at:
            issues.append("Event date must differ from the creation time")
        if (
            record.event_end_date is not None
            and record.effective_date is not None
            and record.event_end_date < record.effective_date
        ):
            issues.append("Event end date is before its start date")
    if record.image_ref and not record.image_ref.startswith(_IMAGE_PREFIXES):
        issues.append("Image must be a URL, a site path or a data URI")
    return issues


def validate_record(record: ContentRecord) -> ContentRecord:
    """Raise InvalidContentError if ``record`` has blocking issues."""
    issues = collect_issues(record)
    if issues:
        raise InvalidContentError(issues)
    return record


def quality_warnings(record: ContentRecord) -> list[str]:
    """Non-blocking content quality checks."""
    warnings: list[str] = []
    title = record.title.strip()
    if 0 < len(title) < 10:
        warnings.append("Title is very short (less than 10 characters)")
    elif len(title) > 100:
        warnings.append("Title is very long (over 100 characters)")

    body = (record.body or "").strip()
    if not body:
        warnings.append("Body is empty")
    elif len(body) < 500:
        warnings.append("Body is quite short (less than 500 characters)")

    excerpt = record.excerpt.strip()
    if not excerpt:
        warnings.append("Excerpt is missing")
    elif len(excerpt) < 50:
        warnings.append("Excerpt is very short (less than 50 characters)")
    elif len(excerpt) > 300:
        warnings.append("Excerpt is quite long (over 300 characters)")

    if not record.category and not record.categories:
        warnings.append("No category assigned")
    return warnings
