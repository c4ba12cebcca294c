"""Tier coordination: the write path (Reconciler) and read path (ReadResolver)."""

from strata.sync.reconciler import Reconciler
from strata.sync.resolver import ReadResolver

__all__ = ["ReadResolver", "Reconciler"]
