"""User model — local accounts and OIDC-provisioned identities."""

from __future__ import annotations

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ssobridge.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

ROLE_ADMIN = "admin"
ROLE_USER = "user"


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "users"

    # OIDC logins resolve accounts by this field only
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)

    # Always set; OIDC-created accounts hold a hash nobody knows the input of
    hashed_password: Mapped[str] = mapped_column(Text, nullable=False)

    # "admin" | "user"
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=ROLE_USER)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # "local" | "oidc"
    auth_provider: Mapped[str] = mapped_column(String(20), nullable=False, default="local")
    # Subject claim seen when the account was provisioned
    provider_sub: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def __repr__(self) -> str:
        return f"<User {self.username!r} role={self.role!r} provider={self.auth_provider!r}>"
