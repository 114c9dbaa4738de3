"""FastAPI application factory with lifespan management."""

from __future__ import annotations

from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import func, select

from ssobridge import __version__
from ssobridge.api.routers import auth as auth_router
from ssobridge.api.routers import oidc as oidc_router
from ssobridge.api.routers import team_rules as team_rules_router
from ssobridge.core.auth import hash_password
from ssobridge.core.config import Settings, get_settings
from ssobridge.core.database import close_engine, get_engine, get_session_factory
from ssobridge.core.limiter import limiter
from ssobridge.core.logging import configure_logging, get_logger
from ssobridge.models.user import ROLE_ADMIN, User
from ssobridge.oidc.config import resolve_oidc_config, validate_oidc_config
from ssobridge.oidc.discovery import DiscoveryCache
from ssobridge.oidc.teams import TeamRuleStore

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    configure_logging()
    settings = get_settings()
    logger.info("Starting ssobridge", debug=settings.app_debug)

    # Warm up DB connection pool
    get_engine()

    cfg = resolve_oidc_config()
    config_error = validate_oidc_config(cfg)
    if config_error is not None:
        logger.error("OIDC enabled but misconfigured", error=str(config_error))
    else:
        logger.info("OIDC", enabled=cfg.enabled, issuer=cfg.issuer_url or None)

    if app.state.team_rule_store is None:
        logger.info("REDIS_URL not set, OIDC team mappings disabled")

    # Bootstrap: create default admin if no users exist
    await _bootstrap_admin(settings)

    yield

    # Cleanup
    if app.state.redis is not None:
        await app.state.redis.aclose()
    await close_engine()
    logger.info("ssobridge stopped")


async def _bootstrap_admin(settings: Settings) -> None:
    """Create the default local admin account on first start (no users in DB)."""
    factory = get_session_factory()
    async with factory() as session:
        count = (await session.execute(select(func.count()).select_from(User))).scalar_one()
        if count == 0:
            admin = User(
                username=settings.admin_username,
                hashed_password=hash_password(settings.admin_password),
                role=ROLE_ADMIN,
                is_active=True,
                auth_provider="local",
            )
            session.add(admin)
            await session.commit()
            logger.info(
                "Bootstrap admin created",
                username=settings.admin_username,
                hint="Change the default password immediately!",
            )


def create_app() -> FastAPI:
    settings = get_settings()
    oidc_cfg = resolve_oidc_config()

    app = FastAPI(
        title="ssobridge",
        description="OpenID Connect login with claim-based roles and team membership",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.app_url] if settings.app_url else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # One discovery document per process, shared by all requests
    app.state.discovery_cache = DiscoveryCache(
        ttl=oidc_cfg.discovery_ttl, timeout=oidc_cfg.http_timeout
    )

    # Connections are opened lazily on first command
    app.state.redis = (
        aioredis.from_url(settings.redis_url, decode_responses=True) if settings.redis_url else None
    )
    app.state.team_rule_store = TeamRuleStore(app.state.redis) if app.state.redis is not None else None

    api_prefix = "/api"
    app.include_router(auth_router.router, prefix=api_prefix)
    app.include_router(oidc_router.router, prefix=api_prefix)
    app.include_router(team_rules_router.router, prefix=api_prefix)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    return app


app = create_app()
