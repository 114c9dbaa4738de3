"""Rich output helpers — tables for OIDC settings, teams and claim rules."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

console = Console()


def fmt_date(iso: str | None) -> str:
    if not iso:
        return "—"
    try:
        dt = datetime.fromisoformat(iso.replace("Z", "+00:00"))
        return dt.strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return iso


def oidc_settings_table(values: dict[str, Any]) -> Table:
    table = Table(title="OIDC configuration", header_style="bold cyan", border_style="dim")
    table.add_column("Setting", style="bold", no_wrap=True)
    table.add_column("Value")
    for key, value in values.items():
        if isinstance(value, bool):
            shown = Text("✓", style="green") if value else Text("✗", style="dim")
        else:
            shown = Text(str(value) if value not in (None, "") else "—")
        table.add_row(key, shown)
    return table


def endpoints_table(endpoints: dict[str, str | None]) -> Table:
    table = Table(title="Discovered endpoints", header_style="bold cyan", border_style="dim")
    table.add_column("Endpoint", style="bold", no_wrap=True)
    table.add_column("URL")
    for name, url in endpoints.items():
        table.add_row(name, url or "—")
    return table


def team_rules_table(teams: list[dict[str, Any]], rules: dict[str, list[dict[str, Any]]]) -> Table:
    names = {t["id"]: t.get("name", "") for t in teams}
    count = sum(len(r) for r in rules.values())

    table = Table(
        title=f"Team claim rules ({count})",
        header_style="bold cyan",
        border_style="dim",
    )
    table.add_column("Team")
    table.add_column("Team ID", style="dim", no_wrap=True)
    table.add_column("Rule ID", style="dim", no_wrap=True)
    table.add_column("Claim")
    table.add_column("Value", style="bold")
    table.add_column("Role")
    table.add_column("Created", style="dim")

    for team_id, team_rules in rules.items():
        for r in team_rules:
            table.add_row(
                names.get(team_id) or Text("(deleted team)", style="red"),
                team_id,
                r.get("id", ""),
                r.get("claimField", ""),
                r.get("claimValue", ""),
                r.get("teamRole", ""),
                fmt_date(r.get("createdAt")),
            )
    return table


def teams_table(teams: list[dict[str, Any]]) -> Table:
    table = Table(title=f"Teams ({len(teams)})", header_style="bold cyan", border_style="dim")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Name", style="bold")
    table.add_column("Created", style="dim")
    for t in teams:
        table.add_row(t.get("id", ""), t.get("name", ""), fmt_date(t.get("createdAt")))
    return table
