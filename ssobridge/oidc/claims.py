"""Identity claim helpers: ID token payload decoding and claim matching.

Trust boundary: the ID token signature is NOT verified. The token is only
ever taken from the token endpoint response, fetched server-side over TLS
with the client secret, so its origin is already authenticated. Anything
that receives ID tokens through another channel must not use this decoder.
"""

from __future__ import annotations

import json
from typing import Any

from jwt.utils import base64url_decode

from ssobridge.core.logging import get_logger

logger = get_logger(__name__)

Claims = dict[str, Any]


def parse_id_token_claims(token: str) -> Claims:
    """Decode the payload segment of a compact JWT, or return ``{}``."""
    try:
        parts = token.split(".")
        if len(parts) != 3:
            raise ValueError("Invalid JWT structure")
        claims = json.loads(base64url_decode(parts[1]).decode("utf-8"))
        if not isinstance(claims, dict):
            raise ValueError("JWT payload is not an object")
        return claims
    except (AttributeError, TypeError, ValueError) as exc:
        logger.warning("Failed to parse id_token claims", error=str(exc))
        return {}


def lookup_claim(name: str, userinfo: Claims, id_claims: Claims) -> Any:
    """UserInfo wins; the ID token is consulted only when the claim is absent there."""
    value = userinfo.get(name)
    if value is None:
        value = id_claims.get(name)
    return value


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",")]


def claim_matches(claim_value: Any, expected: str) -> bool:
    """Array membership, exact string, or comma-separated string membership."""
    if claim_value is None:
        return False
    if isinstance(claim_value, list):
        return any(_as_text(v) == expected for v in claim_value)
    if isinstance(claim_value, str):
        return claim_value == expected or expected in split_csv(claim_value)
    return _as_text(claim_value) == expected
