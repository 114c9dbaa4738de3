"""Team claim rules: storage and membership sync on login.

Rules live in the key-value store under a single key holding a JSON map of
``team id -> [rule, ...]``. Writes re-read the whole map under ``WATCH`` and
retry when another writer got in between, so concurrent admin edits are not
lost. Without a key-value store the whole feature is off.
"""

from __future__ import annotations

import asyncio
import json
import random
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel
from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ssobridge.core.logging import get_logger
from ssobridge.models.team import TEAM_MEMBER, Team, TeamUser
from ssobridge.oidc.claims import Claims, claim_matches, lookup_claim
from ssobridge.oidc.exceptions import TeamSyncError

logger = get_logger(__name__)

RULES_KEY = "oidc:team:rules"
MAX_WRITE_ATTEMPTS = 10
RETRY_BACKOFF_SECONDS = 0.01

T = TypeVar("T")


class TeamClaimRule(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    claim_field: str
    claim_value: str
    team_role: str = TEAM_MEMBER
    created_at: str


TeamRulesMap = dict[str, list[TeamClaimRule]]


class TeamRuleStore:
    def __init__(
        self,
        redis: Redis,
        key: str = RULES_KEY,
        max_attempts: int = MAX_WRITE_ATTEMPTS,
        retry_backoff: float = RETRY_BACKOFF_SECONDS,
    ) -> None:
        self._redis = redis
        self.key = key
        self.max_attempts = max_attempts
        self.retry_backoff = retry_backoff

    @staticmethod
    def _decode(raw: str | bytes | None) -> TeamRulesMap:
        if not raw:
            return {}
        try:
            data = json.loads(raw)
            return {
                team_id: [TeamClaimRule.model_validate(r) for r in rules]
                for team_id, rules in data.items()
            }
        except (ValueError, AttributeError, TypeError, ValidationError) as exc:
            raise TeamSyncError(f"Stored team rules are unreadable: {exc}") from exc

    @staticmethod
    def _encode(rules: TeamRulesMap) -> str:
        return json.dumps(
            {
                team_id: [r.model_dump(by_alias=True) for r in team_rules]
                for team_id, team_rules in rules.items()
            }
        )

    async def list_rules(self) -> TeamRulesMap:
        try:
            raw = await self._redis.get(self.key)
        except RedisError as exc:
            raise TeamSyncError(f"Could not read team rules: {exc}") from exc
        return self._decode(raw)

    async def team_rules(self, team_id: str) -> list[TeamClaimRule]:
        return (await self.list_rules()).get(team_id, [])

    async def _update(self, mutate: Callable[[TeamRulesMap], tuple[T, bool]]) -> T:
        """Read-modify-write under WATCH. ``mutate`` returns (result, changed)."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self._redis.pipeline(transaction=True) as pipe:
                    await pipe.watch(self.key)
                    rules = self._decode(await pipe.get(self.key))
                    result, changed = mutate(rules)
                    if not changed:
                        return result
                    pipe.multi()
                    pipe.set(self.key, self._encode(rules))
                    await pipe.execute()
                    return result
            except WatchError:
                logger.info("Team rules changed concurrently, retrying", attempt=attempt)
                if attempt < self.max_attempts:
                    # Jittered delay, growing with each attempt
                    await asyncio.sleep(random.uniform(0, self.retry_backoff * attempt))
            except RedisError as exc:
                raise TeamSyncError(f"Could not write team rules: {exc}") from exc
        raise TeamSyncError(f"Team rules update gave up after {self.max_attempts} attempts")

    async def add_rule(
        self,
        team_id: str,
        claim_field: str,
        claim_value: str,
        team_role: str = TEAM_MEMBER,
    ) -> TeamClaimRule:
        def mutate(rules: TeamRulesMap) -> tuple[TeamClaimRule, bool]:
            team_rules = rules.setdefault(team_id, [])
            taken = {r.id for r in team_rules}
            rule_id = str(uuid.uuid4())
            while rule_id in taken:
                rule_id = str(uuid.uuid4())
            rule = TeamClaimRule(
                id=rule_id,
                claim_field=claim_field.strip(),
                claim_value=claim_value.strip(),
                team_role=team_role or TEAM_MEMBER,
                created_at=datetime.now(timezone.utc).isoformat(),
            )
            team_rules.append(rule)
            return rule, True

        rule = await self._update(mutate)
        logger.info(
            "Team rule added",
            team_id=team_id,
            rule_id=rule.id,
            claim_field=rule.claim_field,
            claim_value=rule.claim_value,
        )
        return rule

    async def remove_rule(self, team_id: str, rule_id: str) -> bool:
        def mutate(rules: TeamRulesMap) -> tuple[bool, bool]:
            team_rules = rules.get(team_id)
            if not team_rules:
                return False, False
            remaining = [r for r in team_rules if r.id != rule_id]
            if len(remaining) == len(team_rules):
                return False, False
            if remaining:
                rules[team_id] = remaining
            else:
                del rules[team_id]
            return True, True

        removed = await self._update(mutate)
        if removed:
            logger.info("Team rule removed", team_id=team_id, rule_id=rule_id)
        return removed


class TeamSynchronizer:
    """Grants team membership from claim rules. Failures never abort a login."""

    def __init__(self, store: TeamRuleStore, session: AsyncSession) -> None:
        self.store = store
        self.session = session

    async def apply_team_mappings(
        self, user_id: uuid.UUID, userinfo: Claims, id_claims: Claims
    ) -> list[str]:
        """Return the ids of teams the user was newly added to."""
        try:
            all_rules = await self.store.list_rules()
        except TeamSyncError as exc:
            logger.error("Team mapping skipped", error=str(exc))
            return []

        if not all_rules:
            logger.debug("No team rules configured")
            return []

        logger.debug("Checking teams for claim matches", teams=len(all_rules))
        granted: list[str] = []
        for team_id, rules in all_rules.items():
            for rule in rules:
                value = lookup_claim(rule.claim_field, userinfo, id_claims)
                if not claim_matches(value, rule.claim_value):
                    continue
                logger.info(
                    "Team rule matched",
                    team_id=team_id,
                    claim_field=rule.claim_field,
                    claim_value=rule.claim_value,
                    team_role=rule.team_role,
                )
                try:
                    if await self.ensure_membership(user_id, team_id, rule.team_role):
                        granted.append(team_id)
                except Exception as exc:
                    await self.session.rollback()
                    logger.error("Team membership sync failed", team_id=team_id, error=str(exc))
                # One match per team is enough
                break
        return granted

    async def ensure_membership(self, user_id: uuid.UUID, team_id: str, role: str) -> bool:
        """Add the membership if absent. An existing membership keeps its role."""
        try:
            team_uuid = uuid.UUID(team_id)
        except ValueError:
            logger.warning("Team rule references an invalid team id", team_id=team_id)
            return False

        team = await self.session.get(Team, team_uuid)
        if team is None:
            logger.warning("Team not found, skipping", team_id=team_id)
            return False

        existing = (
            await self.session.execute(
                select(TeamUser).where(TeamUser.team_id == team_uuid, TeamUser.user_id == user_id)
            )
        ).scalar_one_or_none()
        if existing is not None:
            logger.debug("User already in team", team_id=team_id, role=existing.role)
            return False

        self.session.add(TeamUser(team_id=team_uuid, user_id=user_id, role=role or TEAM_MEMBER))
        await self.session.commit()
        logger.info("User added to team", user_id=str(user_id), team_id=team_id, role=role)
        return True
