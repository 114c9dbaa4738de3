"""Team rules router — admin CRUD for OIDC claim → team membership rules.

Rules live in the key-value store, teams in the database. Every route
requires an administrator and a configured key-value store.
"""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ssobridge.api.dependencies import get_db, get_team_rule_store, require_admin
from ssobridge.core.logging import get_logger
from ssobridge.models.team import TEAM_MEMBER, Team
from ssobridge.models.user import User
from ssobridge.oidc.exceptions import TeamSyncError
from ssobridge.oidc.teams import TeamRuleStore
from ssobridge.schemas.oidc import (
    DeleteResult,
    TeamOut,
    TeamRuleCreate,
    TeamRuleCreated,
    TeamRuleDelete,
    TeamRulesOut,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/auth/oidc/team-rules", tags=["team-rules"])

DbDep = Annotated[AsyncSession, Depends(get_db)]
AdminDep = Annotated[User, Depends(require_admin)]


async def require_rule_store(
    _admin: AdminDep,
    store: Annotated[TeamRuleStore | None, Depends(get_team_rule_store)],
) -> TeamRuleStore:
    """Raise 503 when no key-value store is configured (checked after the admin gate)."""
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Redis is required for OIDC team mappings",
        )
    return store


StoreDep = Annotated[TeamRuleStore, Depends(require_rule_store)]


def _store_failure(exc: TeamSyncError) -> HTTPException:
    logger.error("Team rule store failure", error=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("", response_model=TeamRulesOut)
async def list_team_rules(store: StoreDep, db: DbDep) -> TeamRulesOut:
    """All teams (for the picker) and every rule keyed by team id."""
    teams = (await db.execute(select(Team).order_by(Team.name))).scalars().all()
    try:
        rules = await store.list_rules()
    except TeamSyncError as exc:
        raise _store_failure(exc)
    return TeamRulesOut(teams=[TeamOut.model_validate(t) for t in teams], rules=rules)


@router.post("", response_model=TeamRuleCreated, status_code=status.HTTP_201_CREATED)
async def add_team_rule(body: TeamRuleCreate, store: StoreDep, db: DbDep) -> TeamRuleCreated:
    team_id = (body.team_id or "").strip()
    claim_field = (body.claim_field or "").strip()
    claim_value = (body.claim_value or "").strip()
    if not team_id or not claim_field or not claim_value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="teamId, claimField, and claimValue are required",
        )

    try:
        team = await db.get(Team, uuid.UUID(team_id))
    except ValueError:
        team = None
    if team is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")

    try:
        rule = await store.add_rule(
            str(team.id), claim_field, claim_value, body.team_role or TEAM_MEMBER
        )
    except TeamSyncError as exc:
        raise _store_failure(exc)
    return TeamRuleCreated(rule=rule)


@router.delete("", response_model=DeleteResult)
async def delete_team_rule(body: TeamRuleDelete, store: StoreDep) -> DeleteResult:
    if not body.team_id or not body.rule_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="teamId and ruleId are required",
        )

    try:
        removed = await store.remove_rule(body.team_id, body.rule_id)
    except TeamSyncError as exc:
        raise _store_failure(exc)
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rule not found")
    return DeleteResult(success=True)
