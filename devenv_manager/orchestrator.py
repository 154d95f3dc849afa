# /*
# Copyright 2026 The devenv-manager Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Orchestration functions that compose domain modules into workflows."""

from __future__ import annotations

import signal
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager

from rich.panel import Panel

from devenv_manager import console, logger
from devenv_manager.application import application_stage
from devenv_manager.cluster import cluster_stage, delete_cluster
from devenv_manager.components import addon_stage, argocd_stage, ingress_spec, keda_spec
from devenv_manager.config import Settings
from devenv_manager.constants import SIGNAL_EXIT_BASE, STAGE_TUNNEL
from devenv_manager.context import ProvisioningContext
from devenv_manager.errors import StageError, TunnelError, TunnelStopError
from devenv_manager.prerequisites import DEFAULT_TOOLS, ToolSpec, check_prerequisites
from devenv_manager.reporter import report
from devenv_manager.stages import Stage, run_stages
from devenv_manager.tunnel import TunnelGuard, stop_tunnel

KEEP_ALIVE_POLL_SECONDS = 2

# SIGINT already surfaces as KeyboardInterrupt.
_EXIT_SIGNALS = ("SIGTERM", "SIGHUP")


# ============================================================================
# Signal handling
# ============================================================================

def _exit_on_signal(signum: int, frame: object) -> None:
    logger.warning("Received %s, shutting down", signal.Signals(signum).name)
    raise SystemExit(SIGNAL_EXIT_BASE + signum)


@contextmanager
def exit_on_signals() -> Iterator[None]:
    """Turn SIGTERM/SIGHUP into ``SystemExit`` so ``finally`` blocks run.

    Outside the main thread signal handlers cannot be installed; the block
    then runs without them.
    """
    previous: dict[int, object] = {}
    for name in _EXIT_SIGNALS:
        sig = getattr(signal, name, None)
        if sig is None:
            continue
        try:
            previous[sig] = signal.signal(sig, _exit_on_signal)
        except ValueError:
            logger.debug("Cannot install %s handler outside the main thread", name)
    try:
        yield
    finally:
        for sig, handler in previous.items():
            # None means the handler was installed outside Python.
            signal.signal(sig, handler if handler is not None else signal.SIG_DFL)


# ============================================================================
# Stage list
# ============================================================================

def build_stages(settings: Settings, *, sleep: Callable[[float], None] = time.sleep) -> list[Stage]:
    """Build the fixed, ordered stage list.

    Ingress and autoscaler must exist before the application that uses them
    is deployed, so the order is part of correctness.

    Args:
        settings: Resolved settings bundle.
        sleep: Sleep function handed to stages that poll on their own.

    Returns:
        Stages in execution order.
    """
    comp_cfg = settings.components
    return [
        cluster_stage(settings.cluster),
        addon_stage(ingress_spec(comp_cfg), comp_cfg),
        addon_stage(keda_spec(comp_cfg), comp_cfg),
        argocd_stage(comp_cfg, sleep=sleep),
        application_stage(settings.application, interval=comp_cfg.poll_interval, sleep=sleep),
    ]


# ============================================================================
# Workflows
# ============================================================================

def _hold(guard: TunnelGuard, sleep: Callable[[float], None]) -> None:
    """Block while the tunnel is alive; returns if it dies on its own."""
    console.print("[yellow]\u2139\ufe0f  Port forward running. Press Ctrl+C to stop.[/yellow]")
    while guard.handle is not None and guard.handle.alive:
        sleep(KEEP_ALIVE_POLL_SECONDS)
    logger.warning("Port forward exited")
    console.print("[yellow]\u26a0\ufe0f  Port forward exited[/yellow]")


def provision(
    settings: Settings,
    *,
    stages: Sequence[Stage] | None = None,
    tools: Sequence[ToolSpec] = DEFAULT_TOOLS,
    guard: TunnelGuard | None = None,
    keep_alive: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> ProvisioningContext:
    """Run the full bootstrap: prerequisites, stages, tunnel, report.

    From the moment the tunnel starts its stop runs exactly once, whether the
    run completes, fails, or is interrupted by a signal.

    Args:
        settings: Resolved settings bundle.
        stages: Stage list override, defaults to :func:`build_stages`.
        tools: Required CLI tools.
        guard: Tunnel guard override.
        keep_alive: Keep the tunnel up after reporting until interrupted.
        sleep: Sleep function used for polling.

    Returns:
        The provisioning context of the run.

    Raises:
        MissingToolError: If a prerequisite is absent; no stage runs.
        StageError: If any stage, or the tunnel start, fails.
    """
    ctx = ProvisioningContext(cluster_name=settings.cluster.cluster_name)
    console.print(Panel.fit(f"\U0001f680 Bootstrapping development environment '{ctx.cluster_name}'",
                            style="bold magenta"))
    with exit_on_signals():
        ctx.tool_versions.update(check_prerequisites(tools))
        run_stages(build_stages(settings, sleep=sleep) if stages is None else stages, ctx, sleep=sleep)

        with (guard or TunnelGuard(settings.tunnel)) as tunnel:
            console.print(Panel.fit("Starting Argo CD port forward", style="bold blue"))
            try:
                tunnel.start(ctx, sleep=sleep)
            except TunnelError as err:
                raise StageError(STAGE_TUNNEL, err) from err
            ctx.completed_stages.append(STAGE_TUNNEL)
            report(ctx)
            if keep_alive:
                _hold(tunnel, sleep)
    console.print("[green]\u2705 Bootstrap completed! \U0001f389[/green]")
    return ctx


def teardown(settings: Settings) -> None:
    """Stop the recorded tunnel and delete the cluster.

    Args:
        settings: Resolved settings bundle.
    """
    console.print(Panel.fit(f"Tearing down '{settings.cluster.cluster_name}'", style="bold blue"))
    try:
        if stop_tunnel(settings.tunnel.pid_file, terminate_timeout=settings.tunnel.terminate_timeout):
            console.print("[green]  \u2713 Port forward stopped[/green]")
    except TunnelStopError as exc:
        logger.error("Tunnel cleanup failed: %s", exc)
        console.print(f"[red]\u274c Tunnel cleanup failed: {exc}[/red]")
    delete_cluster(settings.cluster.cluster_name)
