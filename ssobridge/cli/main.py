"""ssobridge CLI entry point — `ssobridge` command group."""

from __future__ import annotations

import click

from ssobridge.cli.commands.oidc import oidc_cmd
from ssobridge.cli.commands.team_rules import team_rules_cmd
from ssobridge.core.logging import configure_logging


@click.group()
@click.version_option(package_name="ssobridge")
@click.option(
    "--api-url",
    default="http://localhost:8000",
    envvar="SSOBRIDGE_API_URL",
    show_default=True,
    help="Base URL of the ssobridge API server",
)
@click.pass_context
def cli(ctx: click.Context, api_url: str) -> None:
    """ssobridge — OpenID Connect login with claim-based roles and teams.

    \b
    Quick start:
      ssobridge oidc check
      ssobridge team-rules list --token <admin jwt>
      ssobridge team-rules add <team-id> groups marketing-analytics

    API docs: http://localhost:8000/docs
    """
    configure_logging()
    ctx.ensure_object(dict)
    ctx.obj["api_url"] = api_url.rstrip("/")


# Register sub-commands
cli.add_command(oidc_cmd)
cli.add_command(team_rules_cmd)


@cli.command("serve")
@click.option("--host", default="0.0.0.0", show_default=True, help="Bind host")
@click.option("--port", default=8000, show_default=True, help="Bind port")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload (dev mode)")
def serve(host: str, port: int, reload: bool) -> None:
    """Start the ssobridge API server."""
    import uvicorn

    uvicorn.run(
        "ssobridge.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    cli()
