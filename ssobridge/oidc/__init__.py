"""OpenID Connect login: discovery, state, token exchange, provisioning, team rules."""

from ssobridge.oidc.config import OidcConfig, resolve_oidc_config, validate_oidc_config
from ssobridge.oidc.flow import AuthorizationRequest, LoginFlow, LoginResult

__all__ = [
    "AuthorizationRequest",
    "LoginFlow",
    "LoginResult",
    "OidcConfig",
    "resolve_oidc_config",
    "validate_oidc_config",
]
