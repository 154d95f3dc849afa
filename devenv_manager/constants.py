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

"""Constants, pinned addon versions, and dep_value helper."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def load_dependencies() -> dict:
    """Load pinned addon versions from dependencies.yaml.

    Returns:
        Parsed YAML content as a nested dictionary.
    """
    deps_file = Path(__file__).resolve().parent / "dependencies.yaml"
    with open(deps_file) as f:
        return yaml.safe_load(f)


DEPENDENCIES = load_dependencies()


def dep_value(*keys: str, default: Any = None) -> Any:
    """Safely traverse the DEPENDENCIES dict by key path.

    Args:
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node = DEPENDENCIES
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


# -- Cluster defaults --
DEFAULT_CLUSTER_NAME = "ca-dev"
DEFAULT_AGENTS = 2
DEFAULT_PORT_MAPPINGS = ("80:80", "443:443", "8080:8080")
DEFAULT_K3S_IMAGE = dep_value("k3s", "image", default="rancher/k3s:v1.29.4-k3s1")
CLUSTER_TIMEOUT = "300s"
KUBE_CONTEXT_PREFIX = "k3d-"
K3S_DISABLE_TRAEFIK = "--disable=traefik@server:0"

# -- Namespaces --
NS_INGRESS = "ingress-nginx"
NS_KEDA = "keda-system"
NS_ARGOCD = "argocd"
NS_APPLICATION = "contract-analyzer"

# -- Helm releases --
HELM_RELEASE_INGRESS = "ingress-nginx"
HELM_RELEASE_KEDA = "keda"

# -- Readiness deployments --
DEPLOYMENT_INGRESS_CONTROLLER = "ingress-nginx-controller"
DEPLOYMENT_KEDA_OPERATOR = "keda-operator"
DEPLOYMENT_ARGOCD_SERVER = "argocd-server"

# -- Stage names --
STAGE_CLUSTER = "cluster"
STAGE_INGRESS = "ingress"
STAGE_AUTOSCALER = "autoscaler"
STAGE_GITOPS = "gitops"
STAGE_APPLICATION = "application"
STAGE_TUNNEL = "tunnel"

# -- Argo CD --
ARGOCD_SERVICE = "argocd-server"
ARGOCD_ADMIN_SECRET = "argocd-initial-admin-secret"
ARGOCD_ADMIN_USER = "admin"
ARGOCD_APPLICATION_RESOURCE = "applications.argoproj.io"
CREDENTIAL_ARGOCD_PASSWORD = "argocd_admin_password"
SYNC_STATUS_SYNCED = "Synced"
HEALTH_STATUS_HEALTHY = "Healthy"

# -- Application defaults --
DEFAULT_APP_NAME = "contract-analyzer"
DEFAULT_APP_MANIFEST = "deploy/argocd/app.yaml"

# -- Readiness polling --
DEFAULT_READINESS_TIMEOUT = 300
DEFAULT_POLL_INTERVAL = 5
DEFAULT_CREDENTIAL_TIMEOUT = 60
DEFAULT_CREDENTIAL_INTERVAL = 2
DEFAULT_SYNC_TIMEOUT = 600

# -- Tunnel --
DEFAULT_PID_FILE = "/tmp/argocd-port-forward.pid"
DEFAULT_TUNNEL_LOCAL_PORT = 8080
DEFAULT_TUNNEL_REMOTE_PORT = 443
TUNNEL_MARKER = "port-forward"
TUNNEL_STARTUP_GRACE_SECONDS = 1.0
TUNNEL_TERMINATE_TIMEOUT = 5.0

# -- Exit codes --
EXIT_FAILURE = 1
SIGNAL_EXIT_BASE = 128
