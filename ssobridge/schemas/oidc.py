"""Schemas for the OIDC login surface and team rule administration.

JSON field names are camelCase on the wire (``displayName``, ``teamId``...).
"""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ssobridge.models.team import TEAM_MEMBER
from ssobridge.oidc.teams import TeamClaimRule


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OidcPublicConfig(_CamelModel):
    """What the login page needs. Never carries secrets."""

    enabled: bool
    display_name: str
    authorize_url: str | None


class TeamOut(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: uuid.UUID
    name: str
    created_at: datetime


class TeamRulesOut(_CamelModel):
    teams: list[TeamOut]
    rules: dict[str, list[TeamClaimRule]]


# Required fields are optional here so a missing one yields 400, not 422
class TeamRuleCreate(_CamelModel):
    team_id: str | None = None
    claim_field: str | None = None
    claim_value: str | None = None
    team_role: str | None = Field(default=TEAM_MEMBER)


class TeamRuleDelete(_CamelModel):
    team_id: str | None = None
    rule_id: str | None = None


class TeamRuleCreated(_CamelModel):
    rule: TeamClaimRule


class DeleteResult(BaseModel):
    success: bool
