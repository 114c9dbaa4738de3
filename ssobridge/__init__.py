"""ssobridge: OpenID Connect login with claim-based roles and team membership."""

__version__ = "0.1.0"
