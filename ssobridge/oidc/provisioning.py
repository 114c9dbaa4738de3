"""Find or create the local account for an OIDC identity.

Strategy:
    1. Derive a canonical username (preferred_username > email > "oidc:<sub>").
    2. Look the account up by that username, or by the raw email / raw
       preferred_username (accounts created under another convention).
    3. Found: refuse disabled accounts, sync the role, then rename to the
       canonical username unless another account claims it first.
    4. Not found: create it when auto-creation is on, otherwise refuse.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ssobridge.core.auth import unusable_password_hash
from ssobridge.core.logging import get_logger
from ssobridge.models.user import ROLE_ADMIN, User
from ssobridge.oidc.claims import Claims, lookup_claim
from ssobridge.oidc.config import OidcConfig
from ssobridge.oidc.exceptions import ProvisioningError, UserNotProvisioned
from ssobridge.oidc.roles import map_role

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProvisionedUser:
    id: uuid.UUID
    username: str
    role: str
    is_admin: bool
    created_at: datetime

    @classmethod
    def from_model(cls, user: User) -> "ProvisionedUser":
        return cls(
            id=user.id,
            username=user.username,
            role=user.role,
            is_admin=user.role == ROLE_ADMIN,
            created_at=user.created_at,
        )


def _clean(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def derive_username(sub: str, preferred_username: str | None = None, email: str | None = None) -> str:
    """Deterministic, lower-cased username so repeat logins hit the same account."""
    preferred = _clean(preferred_username)
    if preferred:
        return preferred.lower()
    mail = _clean(email)
    if mail:
        return mail.lower()
    return f"oidc:{sub}"


class UserProvisioner:
    def __init__(self, session: AsyncSession, cfg: OidcConfig) -> None:
        self.session = session
        self.cfg = cfg

    async def _find(self, candidates: list[str], canonical: str) -> User | None:
        result = await self.session.execute(select(User).where(or_(*(User.username == c for c in candidates))))
        users = list(result.scalars().all())
        if not users:
            return None
        # Several matches: the one already on the canonical name wins
        for user in users:
            if user.username == canonical:
                return user
        return users[0]

    async def provision(self, userinfo: Claims, id_claims: Claims) -> ProvisionedUser:
        sub = lookup_claim("sub", userinfo, id_claims)
        sub = str(sub) if sub is not None else ""
        email = lookup_claim("email", userinfo, id_claims)
        preferred = lookup_claim("preferred_username", userinfo, id_claims)
        display_name = lookup_claim("name", userinfo, id_claims) or preferred or email or sub

        role = map_role(userinfo, id_claims, self.cfg)
        username = derive_username(sub, preferred, email)

        candidates = [username]
        for raw in (email, preferred):
            if isinstance(raw, str) and raw and raw not in candidates:
                candidates.append(raw)

        logger.info("Resolving OIDC user", sub=sub, username=username, role=role)
        user = await self._find(candidates, username)

        if user is not None:
            if not user.is_active:
                logger.warning("OIDC login for disabled account", user_id=str(user.id), sub=sub)
                raise ProvisioningError(
                    f"Account {user.username} is disabled",
                    public_message="Your account is disabled. Contact an administrator.",
                )
            await self._reconcile(user, username, role)
            return ProvisionedUser.from_model(user)

        if not self.cfg.auto_create:
            logger.warning("OIDC user not provisioned and auto-create disabled", sub=sub)
            raise UserNotProvisioned(str(display_name), sub)

        user = User(
            username=username,
            hashed_password=unusable_password_hash(),
            role=role,
            is_active=True,
            auth_provider="oidc",
            provider_sub=sub or None,
        )
        self.session.add(user)
        await self.session.flush()
        await self.session.refresh(user)
        logger.info("OIDC user created", user_id=str(user.id), username=username, role=role)
        return ProvisionedUser.from_model(user)

    async def _reconcile(self, user: User, username: str, role: str) -> None:
        if user.role != role:
            logger.info("Updating user role", user_id=str(user.id), old=user.role, new=role)
            user.role = role
            await self.session.flush()

        if user.username != username:
            old_username = user.username
            try:
                # Savepoint: a concurrent login may claim the name first
                async with self.session.begin_nested():
                    user.username = username
            except IntegrityError:
                logger.info(
                    "Canonical username taken, keeping existing",
                    user_id=str(user.id),
                    username=old_username,
                )
            else:
                logger.info("Renaming user", user_id=str(user.id), old=old_username, new=username)

        await self.session.refresh(user)
