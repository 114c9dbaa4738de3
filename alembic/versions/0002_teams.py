"""Create teams and team_users tables.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18 00:00:01.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "teams",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_teams"),
    )

    op.create_table(
        "team_users",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("team_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("role", sa.String(50), nullable=False, server_default="team_member"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_team_users"),
        sa.ForeignKeyConstraint(
            ["team_id"], ["teams.id"], name="fk_team_users_team_id_teams", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_team_users_user_id_users", ondelete="CASCADE"
        ),
        sa.UniqueConstraint("team_id", "user_id", name="uq_team_users_team_id"),
    )
    op.create_index("ix_team_users_team_id", "team_users", ["team_id"])
    op.create_index("ix_team_users_user_id", "team_users", ["user_id"])


def downgrade() -> None:
    op.drop_table("team_users")
    op.drop_table("teams")
