"""Error taxonomy shared by every tier.

Callers distinguish *where* a failure happened by type:

- ``NotFoundError``: the consulted tier has no such record (it may
  still exist elsewhere).
- ``UnavailableError``: a tier could not be reached or timed out.
  Always converted into a fallback path, never surfaced raw.
- ``InvalidContentError``: malformed write input; raised before any
  tier is touched.
- ``ConflictError``: reserved, not raised anywhere yet.
- ``SnapshotError``: snapshot file I/O failed.
- ``FatalError``: a mutation or read has no remaining fallback.
"""

from __future__ import annotations


class StrataError(Exception):
    """Base error for the content tiers."""


class NotFoundError(StrataError):
    """Record absent in the tier that was consulted."""

    def __init__(self, record_id: str, tier: str = "") -> None:
        self.record_id = record_id
        self.tier = tier
        where = f" in {tier}" if tier else ""
        super().__init__(f"Record '{record_id}' not found{where}")


class UnavailableError(StrataError):
    """A tier could not be reached or did not answer in time."""


class InvalidContentError(StrataError):
    """Write input failed validation."""

    def __init__(self, issues: list[str]) -> None:
        self.issues = list(issues)
        super().__init__("Invalid content: " + "; ".join(self.issues))


class ConflictError(StrataError):
    """Concurrent modification detected."""


class SnapshotError(StrataError):
    """Snapshot file could not be read or written."""


class FatalError(StrataError):
    """No tier could make the operation durable."""
