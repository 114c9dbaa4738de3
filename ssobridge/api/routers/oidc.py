"""OIDC router — public config, authorize redirect, callback, completion page."""

from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import HTMLResponse, RedirectResponse

from ssobridge.api.dependencies import get_login_flow, get_oidc_config
from ssobridge.core.auth import SESSION_COOKIE, create_access_token
from ssobridge.core.config import get_settings
from ssobridge.core.limiter import limiter
from ssobridge.core.logging import get_logger
from ssobridge.oidc.config import OidcConfig, validate_oidc_config
from ssobridge.oidc.exceptions import OidcError
from ssobridge.oidc.flow import LoginFlow
from ssobridge.schemas.oidc import OidcPublicConfig

logger = get_logger(__name__)

router = APIRouter(prefix="/auth/oidc", tags=["oidc"])

CALLBACK_PATH = "/api/auth/oidc/callback"
AUTHORIZE_PATH = "/api/auth/oidc/authorize"
COMPLETE_PATH = "/api/auth/oidc/complete"

STATE_COOKIE = "oidc_state"
NONCE_COOKIE = "oidc_nonce"
REDIRECT_URI_COOKIE = "oidc_redirect_uri"
BRIDGE_COOKIE = "oidc_auth_token"

FLOW_COOKIE_MAX_AGE = 600
SESSION_COOKIE_MAX_AGE = 86400
BRIDGE_COOKIE_MAX_AGE = 60

ConfigDep = Annotated[OidcConfig, Depends(get_oidc_config)]
FlowDep = Annotated[LoginFlow, Depends(get_login_flow)]


def _rate_limit() -> str:
    return get_settings().rate_limit


def external_base_url(request: Request) -> str:
    """Base URL as the browser sees it.

    APP_URL > X-Forwarded-Host (+ X-Forwarded-Proto) > Host header > request URL.
    """
    app_url = get_settings().app_url
    if app_url:
        return app_url.rstrip("/")

    proto = request.headers.get("x-forwarded-proto") or "https"
    forwarded_host = request.headers.get("x-forwarded-host")
    if forwarded_host:
        return f"{proto}://{forwarded_host}"

    host = request.headers.get("host")
    if host and not host.startswith(("0.0.0.0", "127.0.0.1")):
        return f"{proto}://{host}"

    return f"{request.url.scheme}://{request.url.netloc}"


def resolve_redirect_uri(request: Request, cfg: OidcConfig) -> str:
    """OIDC_REDIRECT_URI > APP_URL + callback path > request origin + callback path."""
    if cfg.redirect_uri:
        return cfg.redirect_uri
    app_url = get_settings().app_url
    if app_url:
        return f"{app_url.rstrip('/')}{CALLBACK_PATH}"
    return f"{request.url.scheme}://{request.url.netloc}{CALLBACK_PATH}"


def _login_redirect(base_url: str, error: str | None = None) -> RedirectResponse:
    url = f"{base_url}/login"
    if error:
        url = f"{url}?{urlencode({'error': error})}"
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


def _set_cookie(
    response: Response, name: str, value: str, max_age: int, httponly: bool = True
) -> None:
    response.set_cookie(
        name,
        value,
        max_age=max_age,
        path="/",
        httponly=httponly,
        secure=get_settings().secure_cookies,
        samesite="lax",
    )


@router.get("/config", response_model=OidcPublicConfig)
async def get_config(cfg: ConfigDep) -> OidcPublicConfig:
    """Tell the login page whether to show the SSO button, and with which label."""
    return OidcPublicConfig(
        enabled=cfg.enabled,
        display_name=cfg.display_name,
        authorize_url=AUTHORIZE_PATH if cfg.enabled else None,
    )


@router.get("/authorize")
@limiter.limit(_rate_limit)
async def authorize(request: Request, cfg: ConfigDep, flow: FlowDep) -> RedirectResponse:
    """Start the authorization code flow: redirect to the identity provider."""
    if not cfg.enabled:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="OIDC authentication is not enabled",
        )

    config_error = validate_oidc_config(cfg)
    if config_error is not None:
        logger.error("OIDC configuration error", error=str(config_error))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=config_error.public_message,
        )

    redirect_uri = resolve_redirect_uri(request, cfg)
    try:
        auth_request = await flow.start(redirect_uri)
    except OidcError as exc:
        logger.error("OIDC authorize failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to initiate OIDC login",
        )

    response = RedirectResponse(url=auth_request.url, status_code=status.HTTP_302_FOUND)
    _set_cookie(response, STATE_COOKIE, auth_request.state, FLOW_COOKIE_MAX_AGE)
    _set_cookie(response, NONCE_COOKIE, auth_request.nonce, FLOW_COOKIE_MAX_AGE)
    _set_cookie(response, REDIRECT_URI_COOKIE, auth_request.redirect_uri, FLOW_COOKIE_MAX_AGE)
    return response


@router.get("/callback")
@limiter.limit(_rate_limit)
async def callback(
    request: Request,
    cfg: ConfigDep,
    flow: FlowDep,
    code: Annotated[str | None, Query()] = None,
    state: Annotated[str | None, Query()] = None,
    error: Annotated[str | None, Query()] = None,
    error_description: Annotated[str | None, Query()] = None,
) -> RedirectResponse:
    """Finish the login and hand the session credential to the browser."""
    base_url = external_base_url(request)

    if not cfg.enabled:
        return _login_redirect(base_url)

    if error:
        logger.error("IdP returned an error", error=error, description=error_description)
        return _login_redirect(base_url, f"OIDC: {error_description or error}")

    if not code or not state:
        logger.error("OIDC callback without code or state")
        return _login_redirect(base_url, "Invalid OIDC callback: missing code or state")

    config_error = validate_oidc_config(cfg)
    if config_error is not None:
        logger.error("OIDC configuration error", error=str(config_error))
        return _login_redirect(base_url, config_error.public_message)

    saved_state = request.cookies.get(STATE_COOKIE)
    saved_nonce = request.cookies.get(NONCE_COOKIE)
    redirect_uri = request.cookies.get(REDIRECT_URI_COOKIE) or f"{base_url}{CALLBACK_PATH}"
    logger.info(
        "OIDC callback",
        state_match=state == saved_state,
        has_nonce=bool(saved_nonce),
        redirect_uri=redirect_uri,
    )

    try:
        result = await flow.complete(
            code=code,
            state=state,
            saved_state=saved_state,
            saved_nonce=saved_nonce,
            redirect_uri=redirect_uri,
        )
    except OidcError as exc:
        logger.warning("OIDC login failed", error_type=type(exc).__name__, error=str(exc))
        return _login_redirect(base_url, exc.public_message)
    except Exception:
        logger.exception("Unexpected error during OIDC callback")
        return _login_redirect(base_url, "OIDC authentication failed")

    token = create_access_token(str(result.user.id), result.user.role, provider="oidc")

    response = RedirectResponse(url=f"{base_url}{COMPLETE_PATH}", status_code=status.HTTP_302_FOUND)
    for name in (STATE_COOKIE, NONCE_COOKIE, REDIRECT_URI_COOKIE):
        response.delete_cookie(name, path="/")
    _set_cookie(response, SESSION_COOKIE, token, SESSION_COOKIE_MAX_AGE)
    # Readable by the completion page script
    _set_cookie(response, BRIDGE_COOKIE, token, BRIDGE_COOKIE_MAX_AGE, httponly=False)

    logger.info(
        "OIDC login complete",
        user_id=str(result.user.id),
        teams_joined=len(result.teams_joined),
    )
    return response


COMPLETE_PAGE = """<!DOCTYPE html>
<html>
<head><title>Completing login…</title></head>
<body>
<p>Completing login…</p>
<script>
(function() {
  try {
    var match = document.cookie.match(/(?:^|;\\s*)%(bridge)s=([^;]*)/);
    var token = match ? decodeURIComponent(match[1]) : null;
    if (token) {
      // The dashboard reads this key with JSON.parse
      localStorage.setItem('%(storage_key)s', JSON.stringify(token));
      document.cookie = '%(bridge)s=; path=/; max-age=0';
    } else {
      console.error('[OIDC complete] No %(bridge)s cookie found');
    }
  } catch (e) {
    console.error('[OIDC complete] Error:', e);
  }
  window.location.replace('/');
})();
</script>
</body>
</html>
""" % {"bridge": BRIDGE_COOKIE, "storage_key": SESSION_COOKIE}


@router.get("/complete", response_class=HTMLResponse)
async def complete() -> HTMLResponse:
    """Move the bridge cookie into localStorage, then load the dashboard."""
    return HTMLResponse(
        content=COMPLETE_PAGE,
        headers={"Cache-Control": "no-store, no-cache, must-revalidate"},
    )
