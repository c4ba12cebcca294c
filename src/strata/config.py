"""Configuration for the content tiers.

Precedence, lowest first: built-in defaults, ``.strata.toml``, environment
variables, CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from strata.content.snapshot import SNAPSHOT_FILENAME
from strata.integrations.revalidation import RevalidationConfig
from strata.integrations.supabase import SourceConfig

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".strata.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
]
GLOBAL_CONFIG = Path.home() / ".config" / "strata" / "config.toml"

# (section, field) targets for string-valued environment overrides.
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "STRATA_SNAPSHOT_PATH": ("snapshot", "path"),
    "SUPABASE_URL": ("source", "url"),
    "SUPABASE_KEY": ("source", "api_key"),
    "STRATA_SOURCE_TABLE": ("source", "table"),
    "STRATA_REVALIDATE_URL": ("revalidation", "url"),
    "STRATA_REVALIDATE_SECRET": ("revalidation", "secret"),
}

CLI_OVERRIDES: dict[str, tuple[str, str]] = {
    "snapshot_path": ("snapshot", "path"),
    "cache_ttl": ("cache", "ttl_seconds"),
    "source_url": ("source", "url"),
    "source_key": ("source", "api_key"),
    "read_budget": ("reads", "budget_seconds"),
}


class SnapshotSectionConfig(BaseModel):
    """[snapshot] section."""

    path: str = f"./{SNAPSHOT_FILENAME}"


class CacheSectionConfig(BaseModel):
    """[cache] section."""

    ttl_seconds: float = 60.0


class ReadsSectionConfig(BaseModel):
    """[reads] section."""

    budget_seconds: float = 5.0


class StrataConfig(BaseModel):
    """Top-level configuration for the content tiers."""

    snapshot: SnapshotSectionConfig = Field(default_factory=SnapshotSectionConfig)
    cache: CacheSectionConfig = Field(default_factory=CacheSectionConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    revalidation: RevalidationConfig = Field(default_factory=RevalidationConfig)
    reads: ReadsSectionConfig = Field(default_factory=ReadsSectionConfig)

    @property
    def snapshot_path(self) -> Path:
        return Path(self.snapshot.path).expanduser()


def _find_config_file(path: str | Path | None) -> Path | None:
    if path is not None:
        explicit = Path(path)
        if explicit.exists():
            return explicit
        logger.warning("No config at %s, using defaults", explicit)
        return None
    candidates = [d / CONFIG_FILENAME for d in CONFIG_SEARCH_PATHS] + [GLOBAL_CONFIG]
    return next((c for c in candidates if c.exists()), None)


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}
    logger.info("Using config %s", path)
    return data


def _overlay(
    config: StrataConfig,
    values: dict[str, Any],
    targets: dict[str, tuple[str, str]],
) -> StrataConfig:
    data = config.model_dump()
    for key, value in values.items():
        if value is None or key not in targets:
            continue
        section, field = targets[key]
        data[section][field] = str(value) if isinstance(value, Path) else value
    return StrataConfig.model_validate(data)


def load_config(path: str | Path | None = None) -> StrataConfig:
    """Build the effective config from a TOML file and the environment.

    Without an explicit ``path`` the first existing file wins among
    ``./.strata.toml`` and ``~/.config/strata/config.toml``.
    """
    found = _find_config_file(path)
    data = _read_toml(found) if found is not None else {}
    config = StrataConfig.model_validate(data)

    env = {name: os.environ.get(name) for name in ENV_OVERRIDES}
    config = _overlay(config, env, ENV_OVERRIDES)

    ttl_raw = os.environ.get("STRATA_CACHE_TTL")
    if ttl_raw is not None:
        try:
            config.cache.ttl_seconds = float(ttl_raw)
        except ValueError:
            logger.warning("Ignoring non-numeric STRATA_CACHE_TTL=%r", ttl_raw)
    return config


def merge_cli_overrides(config: StrataConfig, **cli_kwargs: object) -> StrataConfig:
    """Apply CLI flags on top of ``config``; flags left as None are skipped."""
    return _overlay(config, cli_kwargs, CLI_OVERRIDES)
