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

"""
cli.py - Disposable k3d development environment for ContractAnalyzer.

Subcommands:
    up         Create the cluster, install addons, deploy the app, open the Argo CD tunnel
    down       Stop the tunnel and delete the cluster
    tunnel     Manage the Argo CD port forward (start, stop, status)

Examples:
    # Full bootstrap (no flags needed)
    devenv-manager up

    # Keep the Argo CD UI reachable until Ctrl+C
    devenv-manager up --keep-alive

    # Stop a port forward left by an earlier run
    devenv-manager tunnel stop

    # Delete the environment
    devenv-manager down

Environment Variables:
    None are required. Defaults can be overridden with DEVENV_* variables,
    e.g. DEVENV_CLUSTER_NAME, DEVENV_READINESS_TIMEOUT, DEVENV_TUNNEL_PID_FILE.
"""

from __future__ import annotations

import logging
import sys

import typer

from devenv_manager import __version__, console
from devenv_manager.commands import tunnel_cmd, up_cmd
from devenv_manager.constants import EXIT_FAILURE

app = typer.Typer(
    help="Disposable k3d development environment for ContractAnalyzer.",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"devenv-manager {__version__}")
        raise typer.Exit()


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"),
) -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.command("up")(up_cmd.up)
app.command("down")(up_cmd.down)
app.add_typer(tunnel_cmd.app, name="tunnel")


def main() -> None:
    """Console script entry point."""
    try:
        app()
    except Exception as e:
        console.print(f"[red]\u274c {e}[/red]")
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
