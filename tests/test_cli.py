"""Tests for the devenv-manager command line."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from devenv_manager import __version__, cli
from devenv_manager.cli import app
from devenv_manager.commands import up_cmd
from devenv_manager.config import Settings
from devenv_manager.context import ProvisioningContext
from devenv_manager.errors import MissingToolError, ReadinessTimeout, StageError

runner = CliRunner()


@pytest.fixture
def provisioned(monkeypatch: pytest.MonkeyPatch) -> list[tuple[Settings, bool]]:
    """Replace provisioning with a recorder."""
    calls: list[tuple[Settings, bool]] = []

    def fake_provision(settings: Settings, *, keep_alive: bool = False) -> ProvisioningContext:
        calls.append((settings, keep_alive))
        return ProvisioningContext(cluster_name=settings.cluster.cluster_name)

    monkeypatch.setattr(up_cmd, "provision", fake_provision)
    return calls


def _failing_provision(exc: BaseException):
    def fake_provision(settings: Settings, *, keep_alive: bool = False) -> ProvisioningContext:
        raise exc
    return fake_provision


def test_help_lists_commands() -> None:
    """Top-level help shows every subcommand."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("up", "down", "tunnel"):
        assert command in result.output


def test_version() -> None:
    """--version prints the package version."""
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_up_success(provisioned) -> None:
    """A successful run exits 0."""
    result = runner.invoke(app, ["up"])
    assert result.exit_code == 0
    settings, keep_alive = provisioned[0]
    assert settings.cluster.cluster_name == "ca-dev"
    assert keep_alive is False


def test_up_passes_overrides(provisioned, tmp_path: Path) -> None:
    """CLI options override configuration defaults."""
    manifest = tmp_path / "app.yaml"
    result = runner.invoke(app, [
        "up", "--keep-alive", "--cluster-name", "scratch", "--agents", "1",
        "--app-manifest", str(manifest), "--readiness-timeout", "42",
    ])
    assert result.exit_code == 0
    settings, keep_alive = provisioned[0]
    assert keep_alive is True
    assert settings.cluster.cluster_name == "scratch"
    assert settings.cluster.agents == 1
    assert settings.application.manifest == manifest
    assert settings.components.readiness_timeout == 42


def test_up_stage_failure_exits_nonzero(monkeypatch: pytest.MonkeyPatch) -> None:
    """A failed stage exits 1 and names the stage."""
    error = StageError("ingress", ReadinessTimeout("ingress readiness", 300))
    monkeypatch.setattr(up_cmd, "provision", _failing_provision(error))
    result = runner.invoke(app, ["up"])
    assert result.exit_code == 1
    assert "Stage 'ingress' failed" in result.output


def test_up_missing_tool_exits_nonzero(monkeypatch: pytest.MonkeyPatch) -> None:
    """A missing prerequisite exits 1 and names the tool."""
    monkeypatch.setattr(up_cmd, "provision", _failing_provision(MissingToolError("k3d")))
    result = runner.invoke(app, ["up"])
    assert result.exit_code == 1
    assert "k3d" in result.output


def test_up_interrupted_exits_130(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ctrl+C maps to the conventional SIGINT exit status."""
    monkeypatch.setattr(up_cmd, "provision", _failing_provision(KeyboardInterrupt()))
    result = runner.invoke(app, ["up"])
    assert result.exit_code == 130


def test_down_uses_cluster_name(monkeypatch: pytest.MonkeyPatch) -> None:
    """down tears down the named environment."""
    seen: list[str] = []
    monkeypatch.setattr(up_cmd, "teardown", lambda settings: seen.append(settings.cluster.cluster_name))
    result = runner.invoke(app, ["down", "--cluster-name", "scratch"])
    assert result.exit_code == 0
    assert seen == ["scratch"]


def test_tunnel_stop_without_tunnel(tmp_path: Path) -> None:
    """Stopping when nothing runs is a successful no-op."""
    result = runner.invoke(app, ["tunnel", "stop", "--pid-file", str(tmp_path / "pf.pid")])
    assert result.exit_code == 0
    assert "No running port forward" in result.output


def test_tunnel_status_without_tunnel(tmp_path: Path) -> None:
    """Status reports failure when no tunnel is recorded."""
    result = runner.invoke(app, ["tunnel", "status", "--pid-file", str(tmp_path / "pf.pid")])
    assert result.exit_code == 1


def test_tunnel_pid_file_from_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """DEVENV_TUNNEL_PID_FILE selects the record when no option is given."""
    pid_file = tmp_path / "env.pid"
    pid_file.write_text("garbage\n")
    monkeypatch.setenv("DEVENV_TUNNEL_PID_FILE", str(pid_file))
    result = runner.invoke(app, ["tunnel", "stop"])
    assert result.exit_code == 0
    assert not pid_file.exists()


def test_main_reports_unexpected_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    """Unexpected exceptions exit 1 instead of dumping a traceback."""
    def broken_app() -> None:
        raise RuntimeError("kaboom")

    monkeypatch.setattr(cli, "app", broken_app)
    with pytest.raises(SystemExit) as excinfo:
        cli.main()
    assert excinfo.value.code == 1
