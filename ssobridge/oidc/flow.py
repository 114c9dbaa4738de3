"""The OIDC login state machine.

``start`` produces the redirect to the identity provider plus the values the
browser must hold in cookies. ``complete`` runs the callback:

    1. state equals the cookie copy
    2. state signature and age
    3. code → tokens
    4. ID token claims, nonce check
    5. userinfo
    6. find or create the local user (committed)
    7. team membership sync (optional, never fatal)

Any error in steps 1-6 aborts the login with an :class:`OidcError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ssobridge.core.logging import get_logger
from ssobridge.oidc.claims import Claims, parse_id_token_claims
from ssobridge.oidc.client import OidcClient
from ssobridge.oidc.exceptions import CsrfViolation, NonceMismatch
from ssobridge.oidc.provisioning import ProvisionedUser, UserProvisioner
from ssobridge.oidc.state import generate_nonce, generate_state, verify_state
from ssobridge.oidc.teams import TeamSynchronizer

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuthorizationRequest:
    url: str
    state: str
    nonce: str
    redirect_uri: str


@dataclass
class LoginResult:
    user: ProvisionedUser
    userinfo: Claims
    id_claims: Claims
    teams_joined: list[str] = field(default_factory=list)


class LoginFlow:
    def __init__(
        self,
        client: OidcClient,
        provisioner: UserProvisioner,
        secret: str,
        team_sync: TeamSynchronizer | None = None,
    ) -> None:
        self.client = client
        self.provisioner = provisioner
        self.team_sync = team_sync
        self._secret = secret

    async def start(self, redirect_uri: str) -> AuthorizationRequest:
        state = generate_state(self._secret)
        nonce = generate_nonce()
        url = await self.client.build_authorization_url(state, nonce, redirect_uri)
        logger.info("OIDC login initiated", state=state[:8] + "...")
        return AuthorizationRequest(url=url, state=state, nonce=nonce, redirect_uri=redirect_uri)

    async def complete(
        self,
        *,
        code: str,
        state: str,
        saved_state: str | None,
        saved_nonce: str | None,
        redirect_uri: str,
    ) -> LoginResult:
        if not saved_state or state != saved_state:
            raise CsrfViolation("OIDC state mismatch, possible CSRF attack")

        max_age_ms = self.client.cfg.state_max_age_ms
        if not verify_state(state, self._secret, max_age_ms=max_age_ms):
            raise CsrfViolation("OIDC state verification failed (expired or tampered)")

        tokens = await self.client.exchange_code(code, redirect_uri)
        logger.info(
            "Token exchange OK",
            has_id_token=bool(tokens.id_token),
            has_access_token=bool(tokens.access_token),
        )

        id_claims = parse_id_token_claims(tokens.id_token)
        token_nonce = id_claims.get("nonce")
        if saved_nonce and token_nonce and token_nonce != saved_nonce:
            raise NonceMismatch("OIDC nonce mismatch")

        userinfo = await self.client.get_userinfo(tokens.access_token)
        logger.info("UserInfo received", sub=userinfo.get("sub"))

        user = await self.provisioner.provision(userinfo, id_claims)
        await self.provisioner.session.commit()
        logger.info(
            "OIDC user resolved",
            user_id=str(user.id),
            username=user.username,
            role=user.role,
        )

        result = LoginResult(user=user, userinfo=userinfo, id_claims=id_claims)
        if self.team_sync is None:
            return result

        try:
            result.teams_joined = await self.team_sync.apply_team_mappings(
                user.id, userinfo, id_claims
            )
        except Exception as exc:
            logger.error("Team mappings failed", user_id=str(user.id), error=str(exc))
        return result
