"""Revalidation signal: tell the page-rendering layer which pages went stale.

The HTTP emitter posts ``{"paths": [...]}`` to a revalidation endpoint.
When a shared secret is configured the request carries a short-lived
HS256 JWT so the endpoint can reject forged calls.  Failures are logged
and swallowed: a stale page is never worth failing a write.
"""

from __future__ import annotations

import http.client
import json
import logging
import os
import time
import urllib.request
from abc import ABC, abstractmethod

import jwt
from pydantic import BaseModel

from strata.content.models import ContentKind, ContentRecord, PlacementScope

logger = logging.getLogger(__name__)

TOKEN_TTL_SECONDS = 60
TOKEN_AUDIENCE = "revalidate"


class RevalidationConfig(BaseModel):
    """Configuration for the revalidation endpoint."""

    url: str = ""
    secret: str = ""
    enabled: bool = True
    timeout: float = 5.0

    @property
    def is_configured(self) -> bool:
        return self.enabled and bool(self.url)

    @classmethod
    def from_env(cls) -> RevalidationConfig:
        return cls(
            url=os.environ.get("STRATA_REVALIDATE_URL", ""),
            secret=os.environ.get("STRATA_REVALIDATE_SECRET", ""),
        )


def paths_for(record: ContentRecord) -> list[str]:
    """Public pages that may show ``record``: home, its cities, listing, detail."""
    paths = ["/"]
    scopes = {tag.lower() for tag in record.location_tags}
    scopes.update(p.scope.value for p, flag in record.placements.items() if flag)
    for scope in PlacementScope:
        if scope != PlacementScope.HOME and scope.value in scopes:
            paths.append(f"/{scope.value}")
    listing = "/events" if record.kind == ContentKind.EVENT else "/articles"
    paths.append(listing)
    if record.slug:
        paths.append(f"{listing}/{record.slug}")
    return paths


class Revalidator(ABC):
    """Base class for revalidation emitters."""

    @abstractmethod
    def revalidate(self, paths: list[str]) -> None:
        """Mark ``paths`` stale.  Must not raise."""

    def revalidate_record(self, record: ContentRecord) -> None:
        self.revalidate(paths_for(record))


class NullRevalidator(Revalidator):
    """Used when no revalidation endpoint is configured."""

    def revalidate(self, paths: list[str]) -> None:
        logger.debug("Revalidation not configured; skipping %s", paths)


class HTTPRevalidator(Revalidator):
    """Posts stale paths to the site's revalidation endpoint."""

    def __init__(self, config: RevalidationConfig) -> None:
        self.config = config

    def _generate_token(self) -> str:
        iat = int(time.time())
        payload = {"iat": iat, "exp": iat + TOKEN_TTL_SECONDS, "aud": TOKEN_AUDIENCE}
        return jwt.encode(payload, self.config.secret, algorithm="HS256")

    def revalidate(self, paths: list[str]) -> None:
        if not paths:
            return
        try:
            headers = {"Content-Type": "application/json"}
            if self.config.secret:
                headers["Authorization"] = f"Bearer {self._generate_token()}"
            req = urllib.request.Request(
                self.config.url,
                data=json.dumps({"paths": paths}).encode("utf-8"),
                method="POST",
                headers=headers,
            )
            with urllib.request.urlopen(req, timeout=self.config.timeout) as resp:
                resp.read()
        except (http.client.HTTPException, OSError, ValueError, jwt.PyJWTError):
            logger.warning("Failed to revalidate %s", paths, exc_info=True)
            return
        logger.info("Revalidated %d paths", len(paths))


def create_revalidator(config: RevalidationConfig) -> Revalidator:
    if config.is_configured:
        return HTTPRevalidator(config)
    return NullRevalidator()
