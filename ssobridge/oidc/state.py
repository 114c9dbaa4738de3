"""Signed, time-bound ``state`` and random ``nonce`` values for the login flow.

A state looks like ``<timestamp>.<nonce>.<signature>`` where

* ``timestamp`` is milliseconds since the epoch in base 36,
* ``nonce`` is 16 random bytes, hex-encoded,
* ``signature`` is the first 16 hex chars of HMAC-SHA256 over
  ``"<timestamp>.<nonce>"`` keyed with the application secret.

The state is stored in an http-only cookie and round-tripped through the
identity provider, so it protects the callback against CSRF and bounds the
replay window. The nonce additionally ends up inside the ID token.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import string
import time

from ssobridge.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_AGE_MS = 10 * 60 * 1000
SIGNATURE_LENGTH = 16

_BASE36_DIGITS = string.digits + string.ascii_lowercase


def _now_ms() -> int:
    return int(time.time() * 1000)


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 encoding needs a non-negative integer")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_DIGITS[rem])
    return "".join(reversed(digits))


def _sign(payload: str, secret: str) -> str:
    digest = hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()
    return digest[:SIGNATURE_LENGTH]


def generate_nonce() -> str:
    return secrets.token_hex(16)


def generate_state(secret: str, now_ms: int | None = None) -> str:
    ts = to_base36(_now_ms() if now_ms is None else now_ms)
    payload = f"{ts}.{generate_nonce()}"
    return f"{payload}.{_sign(payload, secret)}"


def verify_state(
    state: str,
    secret: str,
    max_age_ms: int = DEFAULT_MAX_AGE_MS,
    now_ms: int | None = None,
) -> bool:
    """Check signature and age of a state value. Never raises."""
    try:
        parts = state.split(".")
        if len(parts) != 3:
            return False

        ts, nonce, sig = parts
        expected = _sign(f"{ts}.{nonce}", secret)
        if not hmac.compare_digest(sig.encode(), expected.encode()):
            logger.info("State signature mismatch")
            return False

        age = (_now_ms() if now_ms is None else now_ms) - int(ts, 36)
        if age > max_age_ms:
            logger.info("State expired", age_ms=age)
            return False

        return True
    except (AttributeError, TypeError, ValueError):
        return False
