"""Map identity provider claims to a local privilege level."""

from __future__ import annotations

from ssobridge.core.logging import get_logger
from ssobridge.models.user import ROLE_ADMIN, ROLE_USER
from ssobridge.oidc.claims import Claims, lookup_claim, split_csv
from ssobridge.oidc.config import OidcConfig

logger = get_logger(__name__)


def map_role(userinfo: Claims, id_claims: Claims, cfg: OidcConfig) -> str:
    """Return "admin" when ``cfg.role_claim`` contains ``cfg.admin_group``, else "user"."""
    value = lookup_claim(cfg.role_claim, userinfo, id_claims)

    if not value:
        logger.debug("Role claim not found, defaulting to user", claim=cfg.role_claim)
        return ROLE_USER

    # Most common shape: groups: ["a", "b"]
    if isinstance(value, list):
        return ROLE_ADMIN if cfg.admin_group in value else ROLE_USER

    if isinstance(value, str):
        if value == cfg.admin_group or cfg.admin_group in split_csv(value):
            return ROLE_ADMIN
        return ROLE_USER

    logger.warning(
        "Unexpected role claim type", claim=cfg.role_claim, type=type(value).__name__
    )
    return ROLE_USER
