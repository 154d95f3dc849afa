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

"""Run-scoped provisioning state shared across stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from devenv_manager.constants import KUBE_CONTEXT_PREFIX

if TYPE_CHECKING:
    from devenv_manager.tunnel import BackgroundProcessHandle


@dataclass
class ProvisioningContext:
    """Mutable state for a single orchestrator run.

    The kube context is never switched globally; every kubectl and helm call
    receives it explicitly through :meth:`kubectl_args` or :meth:`helm_args`.

    Attributes:
        cluster_name: Environment identifier (k3d cluster name).
        tool_versions: Version strings of the discovered CLI tools.
        credentials: Extracted secrets keyed by purpose.
        endpoints: Access URLs keyed by component.
        completed_stages: Names of stages that passed readiness, in order.
        cluster_created_at: UTC time the cluster stage finished creation.
        tunnel: Handle of the running port-forward, if started.
    """

    cluster_name: str
    tool_versions: dict[str, str] = field(default_factory=dict)
    credentials: dict[str, str] = field(default_factory=dict)
    endpoints: dict[str, str] = field(default_factory=dict)
    completed_stages: list[str] = field(default_factory=list)
    cluster_created_at: datetime | None = None
    tunnel: BackgroundProcessHandle | None = None

    @property
    def kube_context(self) -> str:
        """Kubeconfig context name k3d registers for the cluster."""
        return f"{KUBE_CONTEXT_PREFIX}{self.cluster_name}"

    def kubectl_args(self, *args: str) -> list[str]:
        """Prefix kubectl arguments with the explicit ``--context`` flag."""
        return ["--context", self.kube_context, *args]

    def helm_args(self, *args: str) -> list[str]:
        """Prefix helm arguments with the explicit ``--kube-context`` flag."""
        return ["--kube-context", self.kube_context, *args]
