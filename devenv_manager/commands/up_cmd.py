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

"""Environment lifecycle commands (up, down)."""

from __future__ import annotations

from pathlib import Path

import typer

from devenv_manager import console
from devenv_manager.config import load_settings
from devenv_manager.constants import EXIT_FAILURE, SIGNAL_EXIT_BASE
from devenv_manager.errors import DevenvError
from devenv_manager.orchestrator import provision, teardown

SIGINT_EXIT_CODE = SIGNAL_EXIT_BASE + 2


def up(
    keep_alive: bool = typer.Option(
        False, "--keep-alive", help="Keep the Argo CD port forward running until Ctrl+C"),
    cluster_name: str | None = typer.Option(
        None, "--cluster-name", help="k3d cluster name (overrides DEVENV_CLUSTER_NAME)"),
    agents: int | None = typer.Option(
        None, "--agents", help="k3d agent nodes (overrides DEVENV_AGENTS)"),
    app_manifest: Path | None = typer.Option(
        None, "--app-manifest", help="Argo CD Application descriptor (default: deploy/argocd/app.yaml)"),
    readiness_timeout: float | None = typer.Option(
        None, "--readiness-timeout", help="Seconds to wait for each controller to become available"),
) -> None:
    """Create the k3d cluster, install addons, deploy the app, and open the Argo CD tunnel.

    Re-running destroys and recreates the cluster.
    """
    settings = load_settings(
        cluster_name=cluster_name,
        agents=agents,
        app_manifest=app_manifest,
        readiness_timeout=readiness_timeout,
    )
    try:
        provision(settings, keep_alive=keep_alive)
    except DevenvError as e:
        console.print(f"[red]\u274c {e}[/red]")
        raise typer.Exit(EXIT_FAILURE) from e
    except KeyboardInterrupt as e:
        console.print("[yellow]\u26a0\ufe0f  Interrupted[/yellow]")
        raise typer.Exit(SIGINT_EXIT_CODE) from e


def down(
    cluster_name: str | None = typer.Option(None, "--cluster-name", help="k3d cluster name"),
) -> None:
    """Stop the Argo CD port forward and delete the k3d cluster."""
    teardown(load_settings(cluster_name=cluster_name))
