"""Error taxonomy for the OIDC login flow.

Every error carries a ``public_message`` that is safe to show on the login
page. ``str(exc)`` may hold more detail for the logs, but never a secret.
"""

from __future__ import annotations


class OidcError(Exception):
    """Base class for failures in the OIDC login flow."""

    public_message = "Single sign-on failed, please try again"

    def __init__(self, message: str, public_message: str | None = None) -> None:
        super().__init__(message)
        if public_message is not None:
            self.public_message = public_message


class ConfigurationError(OidcError):
    """A required OIDC_* setting is missing while OIDC is enabled."""

    public_message = "OIDC is misconfigured. Check server logs."

    def __init__(self, setting: str) -> None:
        self.setting = setting
        super().__init__(f"{setting} is required")


class CsrfViolation(OidcError):
    """State mismatch, bad signature or expiry. The cause is never disclosed."""

    public_message = "Login session expired or invalid, please try again"

    def __init__(self, message: str) -> None:
        super().__init__(message, public_message=type(self).public_message)


class NonceMismatch(CsrfViolation):
    """The ID token nonce does not match the one issued for this flow."""


class UpstreamFailure(OidcError):
    """An HTTP call to the issuer failed. ``status_code`` is None on transport errors."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class DiscoveryFailure(UpstreamFailure):
    public_message = "The identity provider could not be reached"


class TokenExchangeFailure(UpstreamFailure):
    public_message = "Token exchange with the identity provider failed"


class UserInfoFailure(UpstreamFailure):
    public_message = "Could not fetch user information from the identity provider"


class ProvisioningError(OidcError):
    public_message = "Your account could not be set up"


class UserNotProvisioned(ProvisioningError):
    """No matching local account and auto-creation is disabled."""

    def __init__(self, display_name: str, subject: str) -> None:
        self.display_name = display_name
        self.subject = subject
        message = (
            f'OIDC user "{display_name}" (sub: {subject}) not found and auto-creation '
            "is disabled. An admin must create this user manually."
        )
        super().__init__(message, public_message=message)


class TeamSyncError(OidcError):
    """Team rule storage or membership failure. Logged, never shown to users."""
