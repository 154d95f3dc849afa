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

"""Tunnel subcommands (start, stop, status)."""

from __future__ import annotations

from pathlib import Path

import typer

from devenv_manager import console
from devenv_manager.config import load_settings
from devenv_manager.constants import EXIT_FAILURE
from devenv_manager.context import ProvisioningContext
from devenv_manager.errors import TunnelError, TunnelStopError
from devenv_manager.tunnel import start_tunnel, stop_tunnel, tunnel_status

app = typer.Typer(help="Manage the Argo CD port forward.")


@app.command()
def start(
    cluster_name: str | None = typer.Option(None, "--cluster-name", help="k3d cluster name"),
    pid_file: Path | None = typer.Option(None, "--pid-file", help="Where to record the tunnel PID"),
) -> None:
    """Start a detached port forward to an existing cluster's Argo CD server."""
    settings = load_settings(cluster_name=cluster_name, pid_file=pid_file)
    ctx = ProvisioningContext(cluster_name=settings.cluster.cluster_name)
    try:
        handle = start_tunnel(ctx, settings.tunnel)
    except TunnelError as e:
        console.print(f"[red]\u274c {e}[/red]")
        raise typer.Exit(EXIT_FAILURE) from e
    console.print(f"[green]\u2705 Argo CD available at {handle.url} (PID {handle.pid})[/green]")


@app.command()
def stop(
    pid_file: Path | None = typer.Option(None, "--pid-file", help="Tunnel PID file"),
) -> None:
    """Stop the recorded port forward; a missing or dead tunnel is not an error."""
    settings = load_settings(pid_file=pid_file)
    try:
        stopped = stop_tunnel(settings.tunnel.pid_file, terminate_timeout=settings.tunnel.terminate_timeout)
    except TunnelStopError as e:
        console.print(f"[red]\u274c {e}[/red]")
        raise typer.Exit(EXIT_FAILURE) from e
    if stopped:
        console.print("[green]\u2705 Port forward stopped[/green]")
    else:
        console.print("[yellow]\u2139\ufe0f  No running port forward found[/yellow]")


@app.command()
def status(
    pid_file: Path | None = typer.Option(None, "--pid-file", help="Tunnel PID file"),
) -> None:
    """Report whether the recorded port forward is running."""
    settings = load_settings(pid_file=pid_file)
    pid = tunnel_status(settings.tunnel.pid_file)
    if pid is None:
        console.print("[yellow]\u2139\ufe0f  No running port forward[/yellow]")
        raise typer.Exit(EXIT_FAILURE)
    console.print(f"[green]\u2705 Port forward running (PID {pid}, "
                  f"localhost:{settings.tunnel.local_port})[/green]")
