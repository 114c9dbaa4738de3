"""FastAPI dependency providers."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ssobridge.core.auth import SESSION_COOKIE, decode_access_token
from ssobridge.core.config import get_settings
from ssobridge.core.database import get_session_factory
from ssobridge.models.user import User
from ssobridge.oidc.client import OidcClient
from ssobridge.oidc.config import OidcConfig, resolve_oidc_config
from ssobridge.oidc.discovery import DiscoveryCache
from ssobridge.oidc.flow import LoginFlow
from ssobridge.oidc.provisioning import UserProvisioner
from ssobridge.oidc.teams import TeamRuleStore, TeamSynchronizer

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for the duration of a request."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_oidc_config() -> OidcConfig:
    """Fresh per request so environment changes apply without a restart."""
    return resolve_oidc_config()


def get_discovery_cache(request: Request) -> DiscoveryCache:
    return request.app.state.discovery_cache


def get_team_rule_store(request: Request) -> TeamRuleStore | None:
    """None when no key-value store is configured (team mapping disabled)."""
    return getattr(request.app.state, "team_rule_store", None)


def get_login_flow(
    db: Annotated[AsyncSession, Depends(get_db)],
    cfg: Annotated[OidcConfig, Depends(get_oidc_config)],
    discovery: Annotated[DiscoveryCache, Depends(get_discovery_cache)],
    store: Annotated[TeamRuleStore | None, Depends(get_team_rule_store)],
) -> LoginFlow:
    team_sync = TeamSynchronizer(store, db) if store is not None else None
    return LoginFlow(
        client=OidcClient(cfg, discovery),
        provisioner=UserProvisioner(db, cfg),
        secret=get_settings().secret_key,
        team_sync=team_sync,
    )


def _extract_token(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str | None:
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(SESSION_COOKIE)


async def _load_user(token: str, db: AsyncSession) -> User:
    payload = decode_access_token(token)
    try:
        user_id = uuid.UUID(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Resolve the session credential (Bearer header or session cookie) to a User."""
    token = _extract_token(request, credentials)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return await _load_user(token, db)


async def get_current_active_user(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Raise 403 if the account is disabled."""
    if not current_user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account disabled")
    return current_user


async def get_optional_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User | None:
    token = _extract_token(request, credentials)
    if not token:
        return None
    try:
        user = await _load_user(token, db)
    except HTTPException:
        return None
    return user if user.is_active else None


async def require_admin(
    current_user: Annotated[User | None, Depends(get_optional_user)],
) -> User:
    """Raise 403 unless the caller is an authenticated admin."""
    if current_user is None or not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required"
        )
    return current_user
