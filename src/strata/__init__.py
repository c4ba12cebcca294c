"""strata: tiered content cache and fallback synchronization."""

__version__ = "0.1.0"
