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

"""End-of-run summary of endpoints and credentials."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from devenv_manager import console as default_console
from devenv_manager import logger
from devenv_manager.constants import (
    ARGOCD_ADMIN_SECRET,
    ARGOCD_ADMIN_USER,
    CREDENTIAL_ARGOCD_PASSWORD,
    NS_APPLICATION,
    NS_ARGOCD,
)
from devenv_manager.context import ProvisioningContext


def _info_table(ctx: ProvisioningContext) -> Table:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Cluster Name", escape(ctx.cluster_name))
    table.add_row("Kubectl Context", escape(ctx.kube_context))
    if ctx.cluster_created_at is not None:
        table.add_row("Created", ctx.cluster_created_at.strftime("%Y-%m-%d %H:%M:%S UTC"))
    table.add_row("Stages", escape(", ".join(ctx.completed_stages) or "-"))
    for tool, version in sorted(ctx.tool_versions.items()):
        table.add_row(escape(tool), escape(version))
    return table


def _print_report(ctx: ProvisioningContext, out: Console) -> None:
    kube_context = escape(ctx.kube_context)
    out.print(Panel.fit("\U0001f389 k3d cluster setup completed successfully!", style="bold green"))
    out.print("[blue]Cluster Information:[/blue]")
    out.print(_info_table(ctx))

    out.print("[blue]Access Information:[/blue]")
    access = Table(show_header=False, box=None, padding=(0, 2))
    access.add_column(style="bold")
    access.add_column()
    argocd_url = ctx.endpoints.get("argocd")
    access.add_row("Argo CD UI", escape(argocd_url) if argocd_url else "(port forward not running)")
    access.add_row("Argo CD Username", ARGOCD_ADMIN_USER)
    password = ctx.credentials.get(CREDENTIAL_ARGOCD_PASSWORD)
    access.add_row("Argo CD Password", escape(password) if password else "(unavailable)")
    out.print(access)

    # CredentialExtractionWarning was already emitted by the extraction step.
    if not password:
        out.print(f"[yellow]\u26a0\ufe0f  Argo CD admin password was not extracted; read it later with: "
                  f"kubectl --context {kube_context} -n {NS_ARGOCD} get secret {ARGOCD_ADMIN_SECRET} "
                  "-o jsonpath='{.data.password}' | base64 -d[/yellow]")

    out.print("[blue]Useful Commands:[/blue]")
    out.print("  \u2022 View cluster: k3d cluster list")
    out.print(f"  \u2022 Delete cluster: devenv-manager down --cluster-name {escape(ctx.cluster_name)}")
    if ctx.tunnel is not None:
        out.print(f"  \u2022 Stop port forward: devenv-manager tunnel stop "
                  f"(PID file {escape(str(ctx.tunnel.pid_file))})")
    out.print(f"  \u2022 View Argo CD apps: kubectl --context {kube_context} get applications -n {NS_ARGOCD}")
    out.print(f"  \u2022 View pods: kubectl --context {kube_context} get pods -n {NS_APPLICATION}")


def report(ctx: ProvisioningContext, console: Console | None = None) -> None:
    """Print cluster information, access URLs, and the admin credential.

    Display only: a rendering failure is logged as a warning and never
    fails the run.

    Args:
        ctx: Provisioning context of a successful run.
        console: Console to print to, defaults to the package console.
    """
    out = console or default_console
    try:
        _print_report(ctx, out)
    except Exception as exc:
        logger.warning("Could not print the run report: %s", exc)
        default_console.print(f"[yellow]\u26a0\ufe0f  Could not print the run report: {escape(str(exc))}[/yellow]")
