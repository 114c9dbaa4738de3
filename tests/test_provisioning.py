"""Tests for oidc/provisioning.py — find-or-create of OIDC accounts."""

import pytest
from sqlalchemy import func, select

from ssobridge.core.auth import hash_password, verify_password
from ssobridge.models.user import User
from ssobridge.oidc.exceptions import ProvisioningError, UserNotProvisioned
from ssobridge.oidc.provisioning import UserProvisioner, derive_username


async def _count_users(session) -> int:
    return (await session.execute(select(func.count()).select_from(User))).scalar_one()


async def _add_user(session, username: str, role: str = "user") -> User:
    user = User(
        username=username,
        hashed_password=hash_password("local-password"),
        role=role,
        auth_provider="local",
    )
    session.add(user)
    await session.commit()
    return user


@pytest.mark.parametrize(
    "sub,preferred,email,expected",
    [
        ("u1", "Jane.Doe", "jane@example.com", "jane.doe"),
        ("u1", "  JDoe  ", None, "jdoe"),
        ("u1", None, "Jane@Example.com", "jane@example.com"),
        ("u1", "   ", "jane@example.com", "jane@example.com"),
        ("u1", None, None, "oidc:u1"),
        ("u1", "", "", "oidc:u1"),
    ],
)
def test_derive_username(sub, preferred, email, expected):
    assert derive_username(sub, preferred, email) == expected


@pytest.mark.asyncio
async def test_creates_user_on_first_login(db_session, oidc_config):
    provisioner = UserProvisioner(db_session, oidc_config)

    user = await provisioner.provision(
        {"sub": "u1", "preferred_username": "Jane", "groups": ["users", "umami-admin"]}, {}
    )

    assert user.username == "jane"
    assert user.role == "admin"
    assert user.is_admin is True
    assert user.created_at is not None

    row = await db_session.get(User, user.id)
    assert row.auth_provider == "oidc"
    assert row.provider_sub == "u1"
    assert row.hashed_password
    assert not verify_password("", row.hashed_password)


@pytest.mark.asyncio
async def test_claims_fall_back_to_id_token(db_session, oidc_config):
    provisioner = UserProvisioner(db_session, oidc_config)
    user = await provisioner.provision({"sub": "u2"}, {"email": "Bob@Example.com"})
    assert user.username == "bob@example.com"
    assert user.role == "user"


@pytest.mark.asyncio
async def test_repeat_login_reuses_account(db_session, oidc_config):
    provisioner = UserProvisioner(db_session, oidc_config)
    claims = {"sub": "u1", "preferred_username": "jane"}

    first = await provisioner.provision(claims, {})
    await db_session.commit()
    second = await provisioner.provision(claims, {})

    assert first.id == second.id
    assert await _count_users(db_session) == 1


@pytest.mark.asyncio
async def test_role_follows_current_claims(db_session, oidc_config):
    existing = await _add_user(db_session, "jane", role="admin")
    provisioner = UserProvisioner(db_session, oidc_config)

    user = await provisioner.provision({"sub": "u1", "preferred_username": "jane", "groups": []}, {})

    assert user.id == existing.id
    assert user.role == "user"
    assert (await db_session.get(User, existing.id)).role == "user"


@pytest.mark.asyncio
async def test_account_found_by_raw_email_is_renamed(db_session, oidc_config):
    existing = await _add_user(db_session, "Jane@Example.com")
    provisioner = UserProvisioner(db_session, oidc_config)

    user = await provisioner.provision(
        {"sub": "u1", "preferred_username": "jane", "email": "Jane@Example.com"}, {}
    )

    assert user.id == existing.id
    assert user.username == "jane"
    assert await _count_users(db_session) == 1


@pytest.mark.asyncio
async def test_canonical_account_wins_over_raw_match(db_session, oidc_config):
    await _add_user(db_session, "Jane@Example.com")
    canonical = await _add_user(db_session, "jane")
    provisioner = UserProvisioner(db_session, oidc_config)

    user = await provisioner.provision(
        {"sub": "u1", "preferred_username": "jane", "email": "Jane@Example.com"}, {}
    )

    assert user.id == canonical.id
    assert await _count_users(db_session) == 2


@pytest.mark.asyncio
async def test_auto_create_disabled_refuses_unknown_user(db_session, oidc_config_factory):
    provisioner = UserProvisioner(db_session, oidc_config_factory(auto_create=False))

    with pytest.raises(UserNotProvisioned) as exc_info:
        await provisioner.provision({"sub": "u9", "name": "Jane Doe", "email": "jane@example.com"}, {})

    assert isinstance(exc_info.value, ProvisioningError)
    message = exc_info.value.public_message
    assert '"Jane Doe"' in message
    assert "u9" in message
    assert "auto-creation is disabled" in message
    assert await _count_users(db_session) == 0


@pytest.mark.asyncio
async def test_auto_create_disabled_still_logs_in_existing_user(db_session, oidc_config_factory):
    existing = await _add_user(db_session, "jane")
    provisioner = UserProvisioner(db_session, oidc_config_factory(auto_create=False))

    user = await provisioner.provision({"sub": "u1", "preferred_username": "jane"}, {})

    assert user.id == existing.id


@pytest.mark.asyncio
async def test_rename_conflict_keeps_existing_username(db_session, oidc_config, monkeypatch):
    existing = await _add_user(db_session, "alice@x.com")
    provisioner = UserProvisioner(db_session, oidc_config)
    find = provisioner._find

    async def find_then_lose_race(candidates, canonical):
        user = await find(candidates, canonical)
        # Another login claims the canonical name after the lookup
        await _add_user(db_session, canonical)
        return user

    monkeypatch.setattr(provisioner, "_find", find_then_lose_race)

    user = await provisioner.provision(
        {"sub": "u1", "preferred_username": "alice", "email": "alice@x.com"}, {}
    )

    assert user.id == existing.id
    assert user.username == "alice@x.com"
    await db_session.commit()
    assert await _count_users(db_session) == 2
    assert (await db_session.get(User, existing.id)).username == "alice@x.com"


@pytest.mark.asyncio
async def test_rename_conflict_still_syncs_role(db_session, oidc_config, monkeypatch):
    existing = await _add_user(db_session, "alice@x.com")
    provisioner = UserProvisioner(db_session, oidc_config)
    find = provisioner._find

    async def find_then_lose_race(candidates, canonical):
        user = await find(candidates, canonical)
        await _add_user(db_session, canonical)
        return user

    monkeypatch.setattr(provisioner, "_find", find_then_lose_race)

    user = await provisioner.provision(
        {"sub": "u1", "preferred_username": "alice", "email": "alice@x.com", "groups": ["umami-admin"]},
        {},
    )

    assert user.role == "admin"
    await db_session.commit()
    assert (await db_session.get(User, existing.id)).role == "admin"


@pytest.mark.asyncio
async def test_disabled_account_is_refused(db_session, oidc_config):
    existing = await _add_user(db_session, "bob")
    existing.is_active = False
    await db_session.commit()
    provisioner = UserProvisioner(db_session, oidc_config)

    with pytest.raises(ProvisioningError) as exc_info:
        await provisioner.provision({"sub": "u2", "preferred_username": "bob", "groups": ["umami-admin"]}, {})

    assert not isinstance(exc_info.value, UserNotProvisioned)
    assert exc_info.value.public_message == "Your account is disabled. Contact an administrator."
    assert (await db_session.get(User, existing.id)).role == "user"
