"""pytest fixtures shared across all tests."""

from __future__ import annotations

import fakeredis
import httpx
import jwt
import pytest
import pytest_asyncio
import respx
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from ssobridge.core.auth import create_access_token, hash_password
from ssobridge.core.limiter import limiter
from ssobridge.models.base import Base
from ssobridge.models.team import Team
from ssobridge.models.user import User
from ssobridge.oidc.config import OidcConfig
from ssobridge.oidc.teams import TeamRuleStore

# SQLite in-memory, no PostgreSQL required.
# Each test function gets its own fresh DB to avoid cross-test pollution.
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

ISSUER = "https://idp.example.com/realms/main"
DISCOVERY_URL = f"{ISSUER}/.well-known/openid-configuration"
AUTH_ENDPOINT = f"{ISSUER}/protocol/openid-connect/auth"
TOKEN_ENDPOINT = f"{ISSUER}/protocol/openid-connect/token"
USERINFO_ENDPOINT = f"{ISSUER}/protocol/openid-connect/userinfo"

DISCOVERY_DOC = {
    "issuer": ISSUER,
    "authorization_endpoint": AUTH_ENDPOINT,
    "token_endpoint": TOKEN_ENDPOINT,
    "userinfo_endpoint": USERINFO_ENDPOINT,
    "jwks_uri": f"{ISSUER}/protocol/openid-connect/certs",
}


def make_id_token(claims: dict) -> str:
    """Compact JWT with the given payload. The signature is never checked."""
    return jwt.encode(claims, "idp-signing-key-not-verified-by-us", algorithm="HS256")


def make_oidc_config(**overrides) -> OidcConfig:
    values = {
        "enabled": True,
        "client_id": "ssobridge",
        "client_secret": "s3cret",
        "issuer_url": ISSUER,
    }
    values.update(overrides)
    return OidcConfig(**values)


# ── Fixtures ────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def _no_rate_limit():
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest_asyncio.fixture
async def engine():
    """Create a fresh in-memory SQLite engine per test function."""
    eng = create_async_engine(
        TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=True)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Yield an async session bound to the test engine."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    """In-process Redis server. Set ``connected = False`` to simulate an outage."""
    return fakeredis.FakeServer()


@pytest_asyncio.fixture
async def fake_redis(redis_server):
    client = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def rule_store(fake_redis) -> TeamRuleStore:
    return TeamRuleStore(fake_redis)


@pytest.fixture
def oidc_config() -> OidcConfig:
    return make_oidc_config()


@pytest.fixture
def idp():
    """respx router with the issuer's discovery document already mocked."""
    with respx.mock(assert_all_called=False) as router:
        router.get(DISCOVERY_URL, name="discovery").mock(
            return_value=httpx.Response(200, json=DISCOVERY_DOC)
        )
        yield router


@pytest_asyncio.fixture
async def team(db_session) -> Team:
    team = Team(name="Marketing")
    db_session.add(team)
    await db_session.commit()
    await db_session.refresh(team)
    return team


@pytest_asyncio.fixture
async def admin_user(db_session) -> User:
    user = User(
        username="admin",
        hashed_password=hash_password("changeme"),
        role="admin",
        is_active=True,
        auth_provider="local",
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
def admin_headers(admin_user) -> dict[str, str]:
    token = create_access_token(str(admin_user.id), admin_user.role, provider="local")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def app(session_factory, oidc_config, rule_store):
    """FastAPI app wired to the test DB, an OIDC config and the fake rule store."""
    from ssobridge.api.app import create_app
    from ssobridge.api.dependencies import get_db, get_oidc_config

    app = create_app()

    async def override_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_oidc_config] = lambda: oidc_config
    app.state.team_rule_store = rule_store
    return app


@pytest_asyncio.fixture
async def client(app):
    """HTTPX async test client wired to the FastAPI app with a test DB."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


@pytest.fixture
def id_token():
    """Factory: claims dict -> compact ID token."""
    return make_id_token


@pytest.fixture
def oidc_config_factory():
    return make_oidc_config
