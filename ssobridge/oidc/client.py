"""Authorization request, token exchange and userinfo calls against the issuer."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from ssobridge.core.logging import get_logger
from ssobridge.oidc.config import OidcConfig
from ssobridge.oidc.discovery import DiscoveryCache, DiscoveryDocument
from ssobridge.oidc.exceptions import TokenExchangeFailure, UserInfoFailure

logger = get_logger(__name__)


class TokenResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    access_token: str
    id_token: str = ""
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None


class OidcClient:
    """Talks to the configured issuer. Endpoints come from the discovery cache."""

    def __init__(
        self,
        cfg: OidcConfig,
        discovery: DiscoveryCache,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.cfg = cfg
        self.discovery = discovery
        self._transport = transport

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.cfg.http_timeout, transport=self._transport)

    async def _discover(self) -> DiscoveryDocument:
        return await self.discovery.get(
            self.cfg.issuer_url, ttl=self.cfg.discovery_ttl, timeout=self.cfg.http_timeout
        )

    async def build_authorization_url(self, state: str, nonce: str, redirect_uri: str) -> str:
        discovery = await self._discover()
        params = {
            "client_id": self.cfg.client_id,
            "response_type": "code",
            "scope": self.cfg.scopes,
            "redirect_uri": redirect_uri,
            "state": state,
            "nonce": nonce,
        }
        endpoint = discovery.authorization_endpoint
        separator = "&" if "?" in endpoint else "?"
        return f"{endpoint}{separator}{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenResponse:
        discovery = await self._discover()
        logger.debug("Exchanging authorization code", endpoint=discovery.token_endpoint)

        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.cfg.client_id,
            "client_secret": self.cfg.client_secret,
        }
        try:
            async with self._http() as client:
                resp = await client.post(
                    discovery.token_endpoint,
                    data=form,
                    headers={"Accept": "application/json", "Cache-Control": "no-store"},
                )
        except httpx.HTTPError as exc:
            raise TokenExchangeFailure(f"Token exchange request failed: {exc}") from exc

        if not resp.is_success:
            raise TokenExchangeFailure(
                f"Token exchange failed ({resp.status_code}): {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        try:
            return TokenResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise TokenExchangeFailure(
                "Token endpoint returned an unusable response",
                status_code=resp.status_code,
            ) from exc

    async def get_userinfo(self, access_token: str) -> dict[str, Any]:
        discovery = await self._discover()
        logger.debug("Fetching userinfo", endpoint=discovery.userinfo_endpoint)

        try:
            async with self._http() as client:
                resp = await client.get(
                    discovery.userinfo_endpoint,
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "Accept": "application/json",
                        "Cache-Control": "no-store",
                    },
                )
        except httpx.HTTPError as exc:
            raise UserInfoFailure(f"UserInfo request failed: {exc}") from exc

        if not resp.is_success:
            raise UserInfoFailure(
                f"UserInfo request failed ({resp.status_code}): {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        try:
            userinfo = resp.json()
        except ValueError as exc:
            raise UserInfoFailure("UserInfo response is not JSON", status_code=resp.status_code) from exc
        if not isinstance(userinfo, dict):
            raise UserInfoFailure("UserInfo response is not an object", status_code=resp.status_code)
        return userinfo
