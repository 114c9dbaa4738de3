"""CLI commands for checking the OIDC configuration."""

from __future__ import annotations

import asyncio

import click

from ssobridge.cli.output import console, endpoints_table, oidc_settings_table
from ssobridge.oidc.config import resolve_oidc_config, validate_oidc_config
from ssobridge.oidc.discovery import DiscoveryCache, discovery_url
from ssobridge.oidc.exceptions import DiscoveryFailure


@click.group("oidc")
def oidc_cmd() -> None:
    """Inspect the OIDC settings of this environment."""


@oidc_cmd.command("check")
@click.option("--skip-discovery", is_flag=True, default=False, help="Do not contact the issuer")
def oidc_check(skip_discovery: bool) -> None:
    """Validate OIDC_* settings and fetch the issuer's discovery document."""
    cfg = resolve_oidc_config()
    console.print(
        oidc_settings_table(
            {
                "enabled": cfg.enabled,
                "issuer_url": cfg.issuer_url,
                "client_id": cfg.client_id,
                "client_secret": "set" if cfg.client_secret else "",
                "scopes": cfg.scopes,
                "redirect_uri": cfg.redirect_uri or "(derived from request)",
                "role_claim": cfg.role_claim,
                "admin_group": cfg.admin_group,
                "auto_create": cfg.auto_create,
                "display_name": cfg.display_name,
            }
        )
    )

    if not cfg.enabled:
        console.print("[yellow]OIDC is disabled (set OIDC_ENABLED=true).[/yellow]")
        return

    error = validate_oidc_config(cfg)
    if error is not None:
        console.print(f"[red]Misconfigured:[/red] {error}")
        raise SystemExit(1)

    if skip_discovery:
        console.print("[green]Configuration is complete.[/green]")
        return

    cache = DiscoveryCache(ttl=cfg.discovery_ttl, timeout=cfg.http_timeout)
    try:
        doc = asyncio.run(cache.get(cfg.issuer_url))
    except DiscoveryFailure as e:
        console.print(f"[red]Discovery failed:[/red] {e}")
        raise SystemExit(1)

    console.print(f"[dim]Fetched {discovery_url(cfg.issuer_url)}[/dim]")
    console.print(
        endpoints_table(
            {
                "issuer": doc.issuer,
                "authorization": doc.authorization_endpoint,
                "token": doc.token_endpoint,
                "userinfo": doc.userinfo_endpoint,
                "jwks": doc.jwks_uri,
                "end_session": doc.end_session_endpoint,
            }
        )
    )
    console.print("[green]OIDC is ready.[/green]")
