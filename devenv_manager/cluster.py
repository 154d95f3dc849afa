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

"""k3d cluster lifecycle."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import sh

from devenv_manager import console, logger
from devenv_manager.config import ClusterConfig
from devenv_manager.constants import K3S_DISABLE_TRAEFIK, STAGE_CLUSTER
from devenv_manager.context import ProvisioningContext
from devenv_manager.stages import Stage


def list_clusters() -> list[str]:
    """Return the names of all k3d clusters on this host."""
    output = str(sh.k3d("cluster", "list", "-o", "json")).strip()
    if not output:
        return []
    return [entry["name"] for entry in json.loads(output)]


def cluster_exists(cluster_name: str) -> bool:
    """Check whether a k3d cluster named *cluster_name* exists.

    Args:
        cluster_name: Name of the k3d cluster.

    Returns:
        Whether the cluster is listed by k3d.
    """
    return cluster_name in list_clusters()


def delete_cluster(cluster_name: str) -> bool:
    """Delete the k3d cluster; a missing cluster is not an error.

    Args:
        cluster_name: Name of the k3d cluster.

    Returns:
        Whether a cluster was deleted.
    """
    console.print(f"[yellow]\u2139\ufe0f  Deleting k3d cluster '{cluster_name}'...[/yellow]")
    try:
        sh.k3d("cluster", "delete", cluster_name)
    except sh.ErrorReturnCode_1:
        console.print(f"[yellow]\u26a0\ufe0f  Cluster '{cluster_name}' not found or already deleted[/yellow]")
        return False
    console.print(f"[green]\u2705 Cluster '{cluster_name}' deleted[/green]")
    return True


def create_cluster(cluster_cfg: ClusterConfig) -> None:
    """Create the k3d cluster and block until its control plane answers.

    The default kubeconfig gains the new context but the current context is
    left untouched; later stages select it explicitly.

    Args:
        cluster_cfg: k3d cluster configuration.
    """
    port_args = [arg for mapping in cluster_cfg.port_mappings
                 for arg in ("--port", f"{mapping}@loadbalancer")]
    sh.k3d(
        "cluster", "create", cluster_cfg.cluster_name,
        "--image", cluster_cfg.k3s_image,
        *port_args,
        "--k3s-arg", K3S_DISABLE_TRAEFIK,
        "--agents", str(cluster_cfg.agents),
        "--kubeconfig-update-default",
        "--kubeconfig-switch-context=false",
        "--timeout", cluster_cfg.create_timeout,
        "--wait",
    )


def recreate_cluster(cluster_cfg: ClusterConfig, ctx: ProvisioningContext) -> None:
    """Delete any existing cluster of the same name, then create it fresh.

    Args:
        cluster_cfg: k3d cluster configuration.
        ctx: Run-scoped provisioning context.
    """
    name = cluster_cfg.cluster_name
    if cluster_exists(name):
        console.print(f"[yellow]\u26a0\ufe0f  Cluster {name} already exists. Deleting it first...[/yellow]")
        sh.k3d("cluster", "delete", name)
    else:
        logger.debug("No existing cluster named %s", name)

    console.print(f"[yellow]\u2139\ufe0f  Creating k3d cluster '{name}' "
                  f"({cluster_cfg.agents} agents)...[/yellow]")
    create_cluster(cluster_cfg)
    ctx.cluster_created_at = datetime.now(timezone.utc)
    console.print(f"[green]  \u2713 Kube context: {ctx.kube_context}[/green]")


def cluster_stage(cluster_cfg: ClusterConfig) -> Stage:
    """Build the environment creation stage.

    Readiness comes from ``k3d cluster create --wait`` itself, so the stage
    has no separate poll.

    Args:
        cluster_cfg: k3d cluster configuration.

    Returns:
        The cluster stage.
    """
    return Stage(
        name=STAGE_CLUSTER,
        title=f"Creating k3d cluster {cluster_cfg.cluster_name}",
        action=lambda ctx: recreate_cluster(cluster_cfg, ctx),
    )
