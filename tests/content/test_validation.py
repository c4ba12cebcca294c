"""Tests for write validation and quality warnings."""

from datetime import UTC, datetime, timedelta

import pytest

from strata.content.models import ContentKind, ContentRecord
from strata.content.validation import collect_issues, quality_warnings, validate_record
from strata.shared.errors import InvalidContentError

_NOW = datetime(2024, 6, 1, tzinfo=UTC)


def _make_record(**kwargs: object) -> ContentRecord:
    data: dict[str, object] = {
        "id": "article-1",
        "title": "A perfectly reasonable title",
        "created_at": _NOW,
        "updated_at": _NOW,
    }
    data.update(kwargs)
    return ContentRecord(**data)  # type: ignore[arg-type]


class TestCollectIssues:
    def test_valid_record(self):
        assert collect_issues(_make_record()) == []

    def test_blank_title(self):
        assert collect_issues(_make_record(title="   ")) == ["Title is required"]

    def test_long_title(self):
        assert collect_issues(_make_record(title="x" * 301))

    def test_event_date_same_as_creation(self):
        issues = collect_issues(_make_record(kind=ContentKind.EVENT, effective_date=_NOW))
        assert any("differ" in issue for issue in issues)

    def test_event_end_before_start(self):
        record = _make_record(
            kind=ContentKind.EVENT,
            effective_date=_NOW + timedelta(days=2),
            event_end_date=_NOW + timedelta(days=1),
        )
        assert any("end date" in issue for issue in collect_issues(record))

    @pytest.mark.parametrize(
        "image", ["https://cdn.example.com/a.jpg", "/images/a.jpg", "data:image/png;base64,AA"]
    )
    def test_accepted_images(self, image):
        assert collect_issues(_make_record(image_ref=image)) == []

    def test_rejected_image(self):
        assert collect_issues(_make_record(image_ref="ftp://host/a.jpg"))


class TestValidateRecord:
    def test_returns_record(self):
        record = _make_record()
        assert validate_record(record) is record

    def test_raises_with_issues(self):
        with pytest.raises(InvalidContentError) as exc_info:
            validate_record(_make_record(title=""))
        assert exc_info.value.issues == ["Title is required"]


class TestQualityWarnings:
    def test_sparse_record(self):
        warnings = quality_warnings(_make_record(title="Short"))
        assert "Title is very short (less than 10 characters)" in warnings
        assert "Body is empty" in warnings
        assert "Excerpt is missing" in warnings
        assert "No category assigned" in warnings

    def test_complete_record_has_no_warnings(self):
        record = _make_record(
            body="b" * 600,
            excerpt="e" * 120,
            category="Food",
        )
        assert quality_warnings(record) == []

    def test_short_body_and_long_excerpt(self):
        warnings = quality_warnings(_make_record(body="tiny", excerpt="e" * 301, category="Food"))
        assert warnings == [
            "Body is quite short (less than 500 characters)",
            "Excerpt is quite long (over 300 characters)",
        ]
