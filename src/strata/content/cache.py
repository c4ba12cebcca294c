"""Short-lived in-process cache of the snapshot's record list."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from strata.content.models import ContentRecord

DEFAULT_TTL_SECONDS = 60.0


class MemoryCache:
    """Holds one record list and the time it was loaded.

    ``get`` returns the list only while it is younger than the TTL (or a
    tighter ``max_age`` chosen by the call site).  Each operation holds
    the lock for its own duration only, so a ``get`` racing an
    ``invalidate`` sees either the old list or nothing.  Records are
    copied in and out, so callers never share the cached instances.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl < 0:
            raise ValueError("ttl must be non-negative")
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._records: tuple[ContentRecord, ...] | None = None
        self._loaded_at = 0.0

    def get(self, max_age: float | None = None) -> list[ContentRecord] | None:
        limit = self.ttl if max_age is None else min(self.ttl, max_age)
        with self._lock:
            if self._records is None:
                return None
            if self._clock() - self._loaded_at >= limit:
                return None
            return [record.model_copy(deep=True) for record in self._records]

    def set(self, records: list[ContentRecord]) -> None:
        snapshot = tuple(record.model_copy(deep=True) for record in records)
        with self._lock:
            self._records = snapshot
            self._loaded_at = self._clock()

    def invalidate(self) -> None:
        with self._lock:
            self._records = None
            self._loaded_at = 0.0

    @property
    def age(self) -> float | None:
        """Seconds since the last ``set``, or None when empty."""
        with self._lock:
            if self._records is None:
                return None
            return self._clock() - self._loaded_at
