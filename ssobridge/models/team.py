"""Team and TeamUser models — team membership that OIDC claim rules grant."""

from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ssobridge.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

TEAM_MEMBER = "team_member"


class Team(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "teams"

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return f"<Team {self.name!r}>"


class TeamUser(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "team_users"
    __table_args__ = (UniqueConstraint("team_id", "user_id"),)

    team_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # "team_owner" | "team_manager" | "team_member" | "team_view_only"
    role: Mapped[str] = mapped_column(String(50), nullable=False, default=TEAM_MEMBER)

    def __repr__(self) -> str:
        return f"<TeamUser team={self.team_id} user={self.user_id} role={self.role!r}>"
