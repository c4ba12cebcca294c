"""URL slugs derived from content titles."""

from __future__ import annotations

import re

MAX_SLUG_LENGTH = 100

_STRIP_RE = re.compile(r"[^\w\s-]", re.ASCII)
_SEPARATOR_RE = re.compile(r"[\s_-]+")
_VALID_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def create_slug(title: str) -> str:
    """Convert a title to a URL-friendly slug.

    >>> create_slug("Best Of Edmonton 2024")
    'best-of-edmonton-2024'
    >>> create_slug("  Jazz & Blues: Live!  ")
    'jazz-blues-live'
    """
    slug = _STRIP_RE.sub("", title.lower().strip())
    slug = _SEPARATOR_RE.sub("-", slug).strip("-")
    return slug[:MAX_SLUG_LENGTH].rstrip("-")


def normalize_slug(slug: str) -> str:
    """Lower-case and trim a requested slug so lookups ignore case."""
    return slug.strip().strip("/").lower()


def is_valid_slug(slug: str) -> bool:
    return bool(_VALID_SLUG_RE.match(slug)) and len(slug) <= MAX_SLUG_LENGTH
