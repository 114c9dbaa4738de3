"""Session credential and password helpers.

Login flow:
    1. GET /api/auth/oidc/authorize → redirect to the identity provider
    2. GET /api/auth/oidc/callback  → exchange code, provision user,
       then create_access_token() issues the local session credential
    3. Protected endpoints accept it as ``Authorization: Bearer <jwt>``
       or through the http-only session cookie.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from fastapi import HTTPException, status

from ssobridge.core.config import get_settings

SESSION_COOKIE = "ssobridge.auth"
SESSION_ISSUER = "ssobridge"


# ── Password helpers ─────────────────────────────────────────────────────────

def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode(), hashed.encode())


def unusable_password_hash() -> str:
    """Hash of a random 40-hex value nobody ever sees (OIDC-only accounts)."""
    return hash_password(secrets.token_hex(20))


# ── JWT helpers ───────────────────────────────────────────────────────────────

def create_access_token(user_id: str, role: str, provider: str = "oidc") -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    payload = {
        "sub": user_id,
        "role": role,
        "provider": provider,
        "iat": now,
        "exp": expire,
        "iss": SESSION_ISSUER,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp", "iss"]},
            issuer=SESSION_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
