"""CLI commands for managing OIDC team claim rules through the admin API."""

from __future__ import annotations

import click
import httpx

from ssobridge.cli.output import console, team_rules_table, teams_table

RULES_PATH = "/api/auth/oidc/team-rules"


def _headers(token: str | None) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"} if token else {}


def _fail(api_url: str, exc: Exception) -> None:
    if isinstance(exc, httpx.ConnectError):
        console.print(f"[red]Cannot connect to API at {api_url}.[/red]")
    elif isinstance(exc, httpx.HTTPStatusError):
        resp = exc.response
        try:
            detail = resp.json().get("detail", resp.text)
        except ValueError:
            detail = resp.text
        console.print(f"[red]Error {resp.status_code}:[/red] {detail}")
    else:
        console.print(f"[red]Error:[/red] {exc}")
    raise SystemExit(1)


@click.group("team-rules")
@click.option(
    "--token",
    envvar="SSOBRIDGE_TOKEN",
    default=None,
    help="Admin session token (Bearer)",
)
@click.pass_context
def team_rules_cmd(ctx: click.Context, token: str | None) -> None:
    """List, add and remove claim → team membership rules."""
    ctx.ensure_object(dict)
    ctx.obj["token"] = token


@team_rules_cmd.command("list")
@click.option("--teams", "show_teams", is_flag=True, default=False, help="Also list all teams")
@click.pass_context
def rules_list(ctx: click.Context, show_teams: bool) -> None:
    """Show every rule, grouped by team."""
    api_url: str = ctx.obj["api_url"]
    try:
        r = httpx.get(f"{api_url}{RULES_PATH}", headers=_headers(ctx.obj["token"]), timeout=15)
        r.raise_for_status()
    except httpx.HTTPError as e:
        _fail(api_url, e)

    data = r.json()
    if show_teams:
        console.print(teams_table(data["teams"]))
    console.print(team_rules_table(data["teams"], data["rules"]))


@team_rules_cmd.command("add")
@click.argument("team_id")
@click.argument("claim_field")
@click.argument("claim_value")
@click.option("--role", "team_role", default="team_member", show_default=True, help="Team role to grant")
@click.pass_context
def rules_add(
    ctx: click.Context, team_id: str, claim_field: str, claim_value: str, team_role: str
) -> None:
    """Grant TEAM_ID membership when CLAIM_FIELD matches CLAIM_VALUE."""
    api_url: str = ctx.obj["api_url"]
    body = {
        "teamId": team_id,
        "claimField": claim_field,
        "claimValue": claim_value,
        "teamRole": team_role,
    }
    try:
        r = httpx.post(
            f"{api_url}{RULES_PATH}", json=body, headers=_headers(ctx.obj["token"]), timeout=15
        )
        r.raise_for_status()
    except httpx.HTTPError as e:
        _fail(api_url, e)

    rule = r.json()["rule"]
    console.print(
        f"[green]✓[/green] Rule [bold]{rule['id']}[/bold] added: "
        f"{rule['claimField']} = {rule['claimValue']} → {rule['teamRole']}"
    )


@team_rules_cmd.command("remove")
@click.argument("team_id")
@click.argument("rule_id")
@click.pass_context
def rules_remove(ctx: click.Context, team_id: str, rule_id: str) -> None:
    """Delete rule RULE_ID from TEAM_ID."""
    api_url: str = ctx.obj["api_url"]
    try:
        r = httpx.request(
            "DELETE",
            f"{api_url}{RULES_PATH}",
            json={"teamId": team_id, "ruleId": rule_id},
            headers=_headers(ctx.obj["token"]),
            timeout=15,
        )
        r.raise_for_status()
    except httpx.HTTPError as e:
        _fail(api_url, e)

    console.print(f"[green]✓[/green] Rule {rule_id} removed.")
