"""Issuer discovery document with a single-slot, time-bounded cache."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from ssobridge.core.logging import get_logger
from ssobridge.oidc.exceptions import DiscoveryFailure

logger = get_logger(__name__)

WELL_KNOWN_PATH = "/.well-known/openid-configuration"
DEFAULT_TTL_SECONDS = 300.0


class DiscoveryDocument(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str
    jwks_uri: str | None = None
    end_session_endpoint: str | None = None


def discovery_url(issuer_url: str) -> str:
    return f"{issuer_url.rstrip('/')}{WELL_KNOWN_PATH}"


@dataclass(frozen=True)
class _CacheEntry:
    issuer_url: str
    document: DiscoveryDocument
    fetched_at: float


class DiscoveryCache:
    """Holds at most one discovery document and refetches it once stale.

    There is no lock: two requests racing on a stale entry each fetch the
    document and the last write wins. Both results describe the same issuer.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._timeout = timeout
        self._transport = transport
        self._entry: _CacheEntry | None = None

    def clear(self) -> None:
        self._entry = None

    def is_fresh(self, issuer_url: str, ttl: float | None = None) -> bool:
        ttl = self.ttl if ttl is None else ttl
        entry = self._entry
        return (
            entry is not None
            and entry.issuer_url == issuer_url
            and self._clock() - entry.fetched_at < ttl
        )

    async def get(
        self, issuer_url: str, ttl: float | None = None, timeout: float | None = None
    ) -> DiscoveryDocument:
        """Cached document for ``issuer_url``.

        ``ttl`` and ``timeout`` override the constructor values for this call, so
        a per-request config takes effect without rebuilding the cache.
        """
        if self.is_fresh(issuer_url, ttl):
            return self._entry.document

        url = discovery_url(issuer_url)
        logger.debug("Fetching OIDC discovery", url=url)
        now = self._clock()
        timeout = self._timeout if timeout is None else timeout
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                resp = await client.get(
                    url,
                    headers={"Accept": "application/json", "Cache-Control": "no-store"},
                )
        except httpx.HTTPError as exc:
            raise DiscoveryFailure(f"OIDC discovery request to {url} failed: {exc}") from exc

        if not resp.is_success:
            raise DiscoveryFailure(
                f"OIDC discovery failed: {resp.status_code} {resp.reason_phrase} from {url}",
                status_code=resp.status_code,
            )

        try:
            document = DiscoveryDocument.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise DiscoveryFailure(
                f"OIDC discovery document from {url} is invalid",
                status_code=resp.status_code,
            ) from exc

        self._entry = _CacheEntry(issuer_url=issuer_url, document=document, fetched_at=now)
        logger.info("OIDC discovery cached", issuer=document.issuer)
        return document
