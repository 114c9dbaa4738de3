"""API tests for the team claim-rule admin routes."""

import uuid

import pytest
import pytest_asyncio

from ssobridge.core.auth import create_access_token
from ssobridge.models.user import User

RULES_URL = "/api/auth/oidc/team-rules"


@pytest_asyncio.fixture
async def user_headers(db_session) -> dict[str, str]:
    user = User(username="jane", hashed_password="x", role="user", auth_provider="oidc")
    db_session.add(user)
    await db_session.commit()
    return {"Authorization": f"Bearer {create_access_token(str(user.id), user.role)}"}


async def _add(client, headers, **body):
    return await client.post(RULES_URL, json=body, headers=headers)


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["GET", "POST", "DELETE"])
async def test_anonymous_caller_is_forbidden(client, method):
    r = await client.request(method, RULES_URL, json={})
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_non_admin_is_forbidden(client, user_headers):
    r = await client.get(RULES_URL, headers=user_headers)
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_invalid_token_is_forbidden(client):
    r = await client.get(RULES_URL, headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_without_rule_store_is_503(app, client, admin_headers):
    app.state.team_rule_store = None
    r = await client.get(RULES_URL, headers=admin_headers)
    assert r.status_code == 503


@pytest.mark.asyncio
async def test_admin_check_precedes_store_check(app, client):
    app.state.team_rule_store = None
    r = await client.get(RULES_URL)
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_list_returns_teams_and_rules(client, admin_headers, team, rule_store):
    rule = await rule_store.add_rule(str(team.id), "groups", "marketing-analytics")

    r = await client.get(RULES_URL, headers=admin_headers)

    assert r.status_code == 200
    data = r.json()
    assert [(t["id"], t["name"]) for t in data["teams"]] == [(str(team.id), "Marketing")]
    assert "createdAt" in data["teams"][0]
    assert data["rules"] == {
        str(team.id): [
            {
                "id": rule.id,
                "claimField": "groups",
                "claimValue": "marketing-analytics",
                "teamRole": "team_member",
                "createdAt": rule.created_at,
            }
        ]
    }


@pytest.mark.asyncio
async def test_add_rule(client, admin_headers, team, rule_store):
    r = await _add(
        client,
        admin_headers,
        teamId=str(team.id),
        claimField="groups",
        claimValue="marketing-analytics",
        teamRole="team_manager",
    )

    assert r.status_code == 201
    rule = r.json()["rule"]
    assert rule["claimField"] == "groups"
    assert rule["claimValue"] == "marketing-analytics"
    assert rule["teamRole"] == "team_manager"
    assert [x.id for x in await rule_store.team_rules(str(team.id))] == [rule["id"]]


@pytest.mark.asyncio
async def test_add_rule_defaults_role(client, admin_headers, team):
    r = await _add(client, admin_headers, teamId=str(team.id), claimField="groups", claimValue="g")
    assert r.json()["rule"]["teamRole"] == "team_member"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"claimField": "groups", "claimValue": "g"},
        {"teamId": "TEAM", "claimValue": "g"},
        {"teamId": "TEAM", "claimField": "groups"},
        {"teamId": "TEAM", "claimField": "  ", "claimValue": "g"},
    ],
)
async def test_add_rule_missing_fields_is_400(client, admin_headers, team, body):
    if body.get("teamId") == "TEAM":
        body = {**body, "teamId": str(team.id)}
    r = await _add(client, admin_headers, **body)
    assert r.status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize("team_id", [str(uuid.uuid4()), "not-a-uuid"])
async def test_add_rule_unknown_team_is_404(client, admin_headers, team_id):
    r = await _add(client, admin_headers, teamId=team_id, claimField="groups", claimValue="g")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_delete_rule(client, admin_headers, team, rule_store):
    rule = await rule_store.add_rule(str(team.id), "groups", "g")

    r = await client.request(
        "DELETE", RULES_URL, json={"teamId": str(team.id), "ruleId": rule.id}, headers=admin_headers
    )

    assert r.status_code == 200
    assert r.json() == {"success": True}
    assert await rule_store.list_rules() == {}


@pytest.mark.asyncio
async def test_delete_unknown_rule_is_404_and_keeps_rules(client, admin_headers, team, rule_store):
    await rule_store.add_rule(str(team.id), "groups", "g")
    before = await rule_store.list_rules()

    r = await client.request(
        "DELETE", RULES_URL, json={"teamId": str(team.id), "ruleId": "missing"}, headers=admin_headers
    )

    assert r.status_code == 404
    assert await rule_store.list_rules() == before


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{}, {"teamId": "t1"}, {"ruleId": "r1"}])
async def test_delete_missing_fields_is_400(client, admin_headers, body):
    r = await client.request("DELETE", RULES_URL, json=body, headers=admin_headers)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_store_failure_is_500(client, admin_headers, redis_server):
    redis_server.connected = False
    r = await client.get(RULES_URL, headers=admin_headers)
    assert r.status_code == 500
