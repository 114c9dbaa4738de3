"""SQLAlchemy ORM models."""

from ssobridge.models.base import Base
from ssobridge.models.team import Team, TeamUser
from ssobridge.models.user import User

__all__ = ["Base", "Team", "TeamUser", "User"]
