"""End-to-end tests of the provisioning flow with faked external tools."""

from __future__ import annotations

import base64
import json
import os
import signal
from pathlib import Path

import pytest

from devenv_manager import application, cluster, components, orchestrator
from devenv_manager.config import Settings, TunnelConfig
from devenv_manager.constants import CREDENTIAL_ARGOCD_PASSWORD
from devenv_manager.context import ProvisioningContext
from devenv_manager.errors import MissingToolError, ReadinessTimeout, StageError, TunnelError
from devenv_manager.orchestrator import build_stages, exit_on_signals, provision
from devenv_manager.stages import Stage
from devenv_manager.tunnel import BackgroundProcessHandle, TunnelGuard


class RecordingTunnel:
    """Starter/stopper pair that counts calls instead of spawning processes."""

    def __init__(self, fail_start: bool = False) -> None:
        self.started = 0
        self.stopped = 0
        self.fail_start = fail_start

    def start(self, ctx: ProvisioningContext, cfg: TunnelConfig, **kwargs) -> BackgroundProcessHandle:
        self.started += 1
        if self.fail_start:
            raise TunnelError("port-forward exited immediately with code 1")
        handle = BackgroundProcessHandle(pid=4242, service="svc/argocd-server", namespace="argocd",
                                         local_port=cfg.local_port, remote_port=cfg.remote_port,
                                         pid_file=cfg.pid_file)
        ctx.tunnel = handle
        ctx.endpoints["argocd"] = handle.url
        return handle

    def stop(self, pid_file: Path, *, terminate_timeout: float) -> bool:
        self.stopped += 1
        return True


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(tunnel=TunnelConfig(pid_file=tmp_path / "pf.pid"))


@pytest.fixture
def fake_tunnel() -> RecordingTunnel:
    return RecordingTunnel()


@pytest.fixture
def guard(settings: Settings, fake_tunnel: RecordingTunnel) -> TunnelGuard:
    return TunnelGuard(settings.tunnel, starter=fake_tunnel.start, stopper=fake_tunnel.stop)


@pytest.fixture(autouse=True)
def tools_present(monkeypatch: pytest.MonkeyPatch) -> None:
    """Every CLI tool is installed unless a test says otherwise."""
    monkeypatch.setattr(orchestrator, "check_prerequisites", lambda tools: {"k3d": "v5.6.0"})


def _stages(log: list[str], *names: str) -> list[Stage]:
    return [Stage(name=name, action=lambda ctx, name=name: log.append(name)) for name in names]


def test_successful_run_stops_tunnel_once(settings: Settings, guard: TunnelGuard,
                                          fake_tunnel: RecordingTunnel, fake_sleep) -> None:
    """A complete run records every stage and stops the tunnel exactly once."""
    log: list[str] = []
    ctx = provision(settings, stages=_stages(log, "cluster", "ingress"), guard=guard, sleep=fake_sleep)

    assert log == ["cluster", "ingress"]
    assert ctx.completed_stages == ["cluster", "ingress", "tunnel"]
    assert ctx.tool_versions == {"k3d": "v5.6.0"}
    assert fake_tunnel.started == 1
    assert fake_tunnel.stopped == 1


def test_ingress_timeout_aborts_before_tunnel(settings: Settings, guard: TunnelGuard,
                                              fake_tunnel: RecordingTunnel, fake_sleep) -> None:
    """An ingress controller that never becomes available fails the run at that stage."""
    log: list[str] = []
    stages = [
        *_stages(log, "cluster"),
        Stage(name="ingress", action=lambda ctx: None, ready=lambda ctx: False, timeout=300, interval=5),
        *_stages(log, "autoscaler"),
    ]
    with pytest.raises(StageError) as excinfo:
        provision(settings, stages=stages, guard=guard, sleep=fake_sleep)

    assert excinfo.value.stage == "ingress"
    assert isinstance(excinfo.value.cause, ReadinessTimeout)
    assert log == ["cluster"]
    assert fake_tunnel.started == 0
    assert fake_tunnel.stopped == 0


def test_missing_tool_runs_no_stage(monkeypatch: pytest.MonkeyPatch, settings: Settings,
                                    guard: TunnelGuard, fake_sleep) -> None:
    """A missing prerequisite fails before any stage executes."""
    def missing(tools):
        raise MissingToolError("helm")

    monkeypatch.setattr(orchestrator, "check_prerequisites", missing)
    log: list[str] = []
    with pytest.raises(MissingToolError, match="helm"):
        provision(settings, stages=_stages(log, "cluster"), guard=guard, sleep=fake_sleep)
    assert log == []


def test_tunnel_start_failure_is_a_stage_error(settings: Settings, fake_sleep) -> None:
    """A tunnel that cannot start fails the run under the tunnel stage."""
    fake = RecordingTunnel(fail_start=True)
    guard = TunnelGuard(settings.tunnel, starter=fake.start, stopper=fake.stop)
    with pytest.raises(StageError) as excinfo:
        provision(settings, stages=[], guard=guard, sleep=fake_sleep)
    assert excinfo.value.stage == "tunnel"
    assert fake.stopped == 0


def test_interrupt_while_holding_stops_tunnel(monkeypatch: pytest.MonkeyPatch, settings: Settings,
                                              guard: TunnelGuard, fake_tunnel: RecordingTunnel) -> None:
    """Ctrl+C during keep-alive still stops the tunnel once."""
    monkeypatch.setattr(BackgroundProcessHandle, "alive", property(lambda self: True))

    def interrupt(seconds: float) -> None:
        raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        provision(settings, stages=[], guard=guard, keep_alive=True, sleep=interrupt)
    assert fake_tunnel.stopped == 1


def test_sigterm_while_holding_stops_tunnel(monkeypatch: pytest.MonkeyPatch, settings: Settings,
                                            guard: TunnelGuard, fake_tunnel: RecordingTunnel) -> None:
    """SIGTERM becomes exit status 143 and still stops the tunnel once."""
    monkeypatch.setattr(BackgroundProcessHandle, "alive", property(lambda self: True))

    def terminate(seconds: float) -> None:
        os.kill(os.getpid(), signal.SIGTERM)

    with pytest.raises(SystemExit) as excinfo:
        provision(settings, stages=[], guard=guard, keep_alive=True, sleep=terminate)
    assert excinfo.value.code == 128 + signal.SIGTERM
    assert fake_tunnel.stopped == 1


def test_hold_returns_when_tunnel_dies(monkeypatch: pytest.MonkeyPatch, settings: Settings, guard: TunnelGuard,
                                       fake_tunnel: RecordingTunnel, sleeps, fake_sleep) -> None:
    """Keep-alive ends on its own once the port-forward is gone."""
    polls = iter([True, True, False])
    monkeypatch.setattr(BackgroundProcessHandle, "alive", property(lambda self: next(polls)))
    ctx = provision(settings, stages=[], guard=guard, keep_alive=True, sleep=fake_sleep)
    assert ctx.completed_stages == ["tunnel"]
    assert sleeps == [orchestrator.KEEP_ALIVE_POLL_SECONDS] * 2
    assert fake_tunnel.stopped == 1


def test_exit_on_signals_restores_handlers() -> None:
    """Previous SIGTERM handling is restored after the block."""
    before = signal.getsignal(signal.SIGTERM)
    with exit_on_signals():
        assert signal.getsignal(signal.SIGTERM) is orchestrator._exit_on_signal
    assert signal.getsignal(signal.SIGTERM) is before


def test_build_stages_order(settings: Settings) -> None:
    """Stages run cluster, ingress, autoscaler, GitOps, application."""
    names = [stage.name for stage in build_stages(settings)]
    assert names == ["cluster", "ingress", "autoscaler", "gitops", "application"]


def test_full_flow_with_fake_tools(monkeypatch: pytest.MonkeyPatch, settings: Settings, guard: TunnelGuard,
                                   fake_tunnel: RecordingTunnel, fake_sh, tmp_path: Path,
                                   capsys: pytest.CaptureFixture[str], fake_sleep) -> None:
    """The real stage list converges with faked k3d, helm, and kubectl."""
    manifest = tmp_path / "app.yaml"
    manifest.write_text("kind: Application\n")
    settings = Settings(
        tunnel=settings.tunnel,
        application=settings.application.model_copy(update={"manifest": manifest}),
    )
    secret = base64.b64encode(b"admin-pass").decode()
    synced = json.dumps({"status": {"sync": {"status": "Synced"}, "health": {"status": "Healthy"}}})

    def fake_run(args: list[str], timeout: int = 30, input_text: str | None = None):
        if "secret" in args:
            return True, secret, ""
        if "applications.argoproj.io" in args:
            return True, synced, ""
        return True, "", ""

    monkeypatch.setattr(cluster, "sh", fake_sh)
    monkeypatch.setattr(components, "sh", fake_sh)
    monkeypatch.setattr(components, "run_kubectl", fake_run)
    monkeypatch.setattr(components, "ensure_namespace", lambda *args: None)
    monkeypatch.setattr(components, "deployment_available", lambda *args: True)
    monkeypatch.setattr(application, "run_kubectl", fake_run)
    monkeypatch.setattr(application, "ensure_namespace", lambda *args: None)
    fake_sh.clusters["ca-dev"] = 0

    ctx = provision(settings, guard=guard, sleep=fake_sleep)

    assert ctx.completed_stages == ["cluster", "ingress", "autoscaler", "gitops", "application", "tunnel"]
    assert ctx.credentials[CREDENTIAL_ARGOCD_PASSWORD] == "admin-pass"
    assert list(fake_sh.clusters) == ["ca-dev"] and fake_sh.clusters["ca-dev"] > 0
    assert set(fake_sh.releases) == {("ingress-nginx", "ingress-nginx"), ("keda-system", "keda")}
    assert fake_tunnel.stopped == 1
    assert "admin-pass" in capsys.readouterr().err
