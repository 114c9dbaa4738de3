"""Tests for core/logging.py — when and how structlog gets configured."""

import structlog
from click.testing import CliRunner

from ssobridge.cli import main as cli_main
from ssobridge.core.logging import configure_logging, get_logger


def _record_configure(monkeypatch) -> list[dict]:
    calls: list[dict] = []
    monkeypatch.setattr(structlog, "configure", lambda **kwargs: calls.append(kwargs))
    return calls


def test_get_logger_does_not_configure(monkeypatch):
    calls = _record_configure(monkeypatch)
    get_logger("ssobridge.test")
    get_logger("ssobridge.test")
    assert calls == []


def test_json_renderer_outside_debug(monkeypatch):
    calls = _record_configure(monkeypatch)
    configure_logging()
    assert len(calls) == 1
    assert isinstance(calls[0]["processors"][-1], structlog.processors.JSONRenderer)


def test_cli_configures_logging_once(monkeypatch):
    calls = []
    monkeypatch.setattr(cli_main, "configure_logging", lambda: calls.append(1))
    monkeypatch.setenv("OIDC_ENABLED", "false")

    result = CliRunner().invoke(cli_main.cli, ["oidc", "check", "--skip-discovery"])

    assert result.exit_code == 0, result.output
    assert calls == [1]
