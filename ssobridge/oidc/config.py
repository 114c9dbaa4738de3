"""OIDC configuration, re-derived from the environment on every access.

Recognised variables (all prefixed ``OIDC_``):

    ENABLED        "1" or "true" enables; anything else (including "yes") disables
    CLIENT_ID      OAuth2 client ID
    CLIENT_SECRET  OAuth2 client secret
    ISSUER_URL     issuer base URL, discovery is fetched below it
    SCOPES         space-separated scopes (default "openid profile email")
    REDIRECT_URI   callback URL (default: APP_URL or request origin)
    ROLE_CLAIM     claim holding group/role values (default "groups")
    ADMIN_GROUP    claim value that maps to the admin role (default "umami-admin")
    AUTO_CREATE    create accounts on first login; only "false" disables
    DISPLAY_NAME   label for the login button (default "Single Sign-On")
    STATE_MAX_AGE  seconds a state parameter stays valid (default 600)
    DISCOVERY_TTL  seconds the discovery document is cached (default 300)
    HTTP_TIMEOUT   seconds per call to the issuer (default 10)
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ssobridge.core.logging import get_logger
from ssobridge.oidc.exceptions import ConfigurationError

logger = get_logger(__name__)


class OidcConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="OIDC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    enabled: bool = False
    client_id: str = ""
    client_secret: str = Field(default="", repr=False)
    issuer_url: str = ""
    scopes: str = "openid profile email"
    redirect_uri: str = ""
    role_claim: str = "groups"
    admin_group: str = "umami-admin"
    auto_create: bool = True
    display_name: str = "Single Sign-On"

    state_max_age: int = Field(default=600, ge=0)
    discovery_ttl: int = Field(default=300, ge=0)
    http_timeout: float = Field(default=10.0, gt=0)

    @field_validator("enabled", mode="before")
    @classmethod
    def _strict_enabled(cls, v: Any) -> bool:
        if isinstance(v, bool):
            return v
        return str(v) in ("1", "true")

    @field_validator("auto_create", mode="before")
    @classmethod
    def _auto_create_unless_false(cls, v: Any) -> bool:
        if isinstance(v, bool):
            return v
        return str(v) != "false"

    @property
    def state_max_age_ms(self) -> int:
        return self.state_max_age * 1000


def resolve_oidc_config() -> OidcConfig:
    """Build a fresh config from the current environment. Never raises."""
    try:
        return OidcConfig()
    except ValidationError as exc:
        # Fail closed: an unparsable numeric option disables OIDC entirely
        logger.error(
            "Invalid OIDC configuration, OIDC disabled",
            fields=[".".join(str(p) for p in e["loc"]) for e in exc.errors()],
        )
        return OidcConfig.model_construct()


def is_oidc_enabled() -> bool:
    return resolve_oidc_config().enabled


def validate_oidc_config(cfg: OidcConfig) -> ConfigurationError | None:
    """Return the first missing required setting, or None when usable."""
    if not cfg.enabled:
        return None
    if not cfg.client_id:
        return ConfigurationError("OIDC_CLIENT_ID")
    if not cfg.client_secret:
        return ConfigurationError("OIDC_CLIENT_SECRET")
    if not cfg.issuer_url:
        return ConfigurationError("OIDC_ISSUER_URL")
    return None
