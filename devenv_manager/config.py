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

"""Configuration classes and the settings bundle."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from devenv_manager.constants import (
    CLUSTER_TIMEOUT,
    DEFAULT_AGENTS,
    DEFAULT_APP_MANIFEST,
    DEFAULT_APP_NAME,
    DEFAULT_CLUSTER_NAME,
    DEFAULT_CREDENTIAL_INTERVAL,
    DEFAULT_CREDENTIAL_TIMEOUT,
    DEFAULT_K3S_IMAGE,
    DEFAULT_PID_FILE,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PORT_MAPPINGS,
    DEFAULT_READINESS_TIMEOUT,
    DEFAULT_SYNC_TIMEOUT,
    DEFAULT_TUNNEL_LOCAL_PORT,
    DEFAULT_TUNNEL_REMOTE_PORT,
    NS_APPLICATION,
    TUNNEL_TERMINATE_TIMEOUT,
    dep_value,
)


# ============================================================================
# Configuration classes
# ============================================================================

class ClusterConfig(BaseSettings):
    """k3d cluster configuration, auto-loaded from DEVENV_* env vars.

    Attributes:
        cluster_name: Name of the k3d cluster (the environment identifier).
        agents: Number of agent (worker) nodes.
        port_mappings: Host:container ports exposed on the load balancer.
        k3s_image: K3s Docker image to use.
        create_timeout: Timeout handed to ``k3d cluster create --timeout``.
    """

    model_config = SettingsConfigDict(env_prefix="DEVENV_", extra="ignore")

    cluster_name: str = Field(default=DEFAULT_CLUSTER_NAME, pattern=r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
    agents: int = Field(default=DEFAULT_AGENTS, ge=0, le=20)
    port_mappings: tuple[str, ...] = DEFAULT_PORT_MAPPINGS
    k3s_image: str = DEFAULT_K3S_IMAGE
    create_timeout: str = Field(default=CLUSTER_TIMEOUT, pattern=r"^\d+[smh]$")


class ComponentConfig(BaseSettings):
    """Addon versions and readiness bounds, auto-loaded from DEVENV_* env vars.

    Attributes:
        ingress_version: ingress-nginx Helm chart version.
        keda_version: KEDA Helm chart version.
        argocd_version: Argo CD release tag used for the install manifest.
        readiness_timeout: Seconds the runner waits for a controller to be Available.
        poll_interval: Seconds between readiness polls.
        credential_timeout: Seconds to wait for the Argo CD admin secret.
        credential_interval: Seconds between admin secret polls.
    """

    model_config = SettingsConfigDict(env_prefix="DEVENV_", extra="ignore")

    ingress_version: str = dep_value("ingress_nginx", "version", default="4.10.0")
    keda_version: str = dep_value("keda", "version", default="2.12.0")
    argocd_version: str = Field(default=dep_value("argocd", "version", default="v2.11.0"),
                                pattern=r"^v[\d.]+(-[\w.]+)?$")
    readiness_timeout: float = Field(default=DEFAULT_READINESS_TIMEOUT, gt=0)
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    credential_timeout: float = Field(default=DEFAULT_CREDENTIAL_TIMEOUT, gt=0)
    credential_interval: float = Field(default=DEFAULT_CREDENTIAL_INTERVAL, gt=0)


class ApplicationConfig(BaseSettings):
    """Argo CD application settings, auto-loaded from DEVENV_APP_* env vars.

    Attributes:
        name: Name of the Argo CD Application resource.
        namespace: Destination namespace created before the descriptor is applied.
        manifest: Path to the Application descriptor.
        wait_for_sync: Poll sync/health status instead of sleeping.
        sync_timeout: Seconds to wait for Synced/Healthy.
        sync_grace_seconds: Fixed delay used when ``wait_for_sync`` is off.
    """

    model_config = SettingsConfigDict(env_prefix="DEVENV_APP_", extra="ignore")

    name: str = DEFAULT_APP_NAME
    namespace: str = NS_APPLICATION
    manifest: Path = Path(DEFAULT_APP_MANIFEST)
    wait_for_sync: bool = True
    sync_timeout: float = Field(default=DEFAULT_SYNC_TIMEOUT, gt=0)
    sync_grace_seconds: float = Field(default=0, ge=0)


class TunnelConfig(BaseSettings):
    """Argo CD port-forward settings, auto-loaded from DEVENV_TUNNEL_* env vars.

    Attributes:
        pid_file: Well-known path holding the tunnel's process identifier.
        local_port: Local port the tunnel listens on.
        remote_port: Service port the tunnel forwards to.
        terminate_timeout: Seconds to wait after SIGTERM before SIGKILL.
    """

    model_config = SettingsConfigDict(env_prefix="DEVENV_TUNNEL_", extra="ignore")

    pid_file: Path = Path(DEFAULT_PID_FILE)
    local_port: int = Field(default=DEFAULT_TUNNEL_LOCAL_PORT, ge=1, le=65535)
    remote_port: int = Field(default=DEFAULT_TUNNEL_REMOTE_PORT, ge=1, le=65535)
    terminate_timeout: float = Field(default=TUNNEL_TERMINATE_TIMEOUT, gt=0)


# ============================================================================
# Settings bundle
# ============================================================================

@dataclass(frozen=True)
class Settings:
    """All configuration for one orchestrator run.

    Attributes:
        cluster: k3d cluster configuration.
        components: Addon versions and readiness bounds.
        application: Argo CD application settings.
        tunnel: Port-forward settings.
    """

    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    components: ComponentConfig = field(default_factory=ComponentConfig)
    application: ApplicationConfig = field(default_factory=ApplicationConfig)
    tunnel: TunnelConfig = field(default_factory=TunnelConfig)


def _build(config_cls: type[BaseSettings], updates: dict[str, Any]) -> BaseSettings:
    """Instantiate *config_cls*; non-None *updates* are validated and win over the environment."""
    overrides = {key: value for key, value in updates.items() if value is not None}
    return config_cls(**overrides)


def load_settings(
    *,
    cluster_name: str | None = None,
    agents: int | None = None,
    app_manifest: Path | None = None,
    readiness_timeout: float | None = None,
    pid_file: Path | None = None,
) -> Settings:
    """Build settings from the environment plus CLI overrides.

    Args:
        cluster_name: CLI override for the cluster name, or None.
        agents: CLI override for the agent count, or None.
        app_manifest: CLI override for the Application descriptor path, or None.
        readiness_timeout: CLI override for the controller readiness bound, or None.
        pid_file: CLI override for the tunnel pid file, or None.

    Returns:
        The resolved settings bundle.

    Raises:
        ValidationError: If an override or environment value is out of range.
    """
    return Settings(
        cluster=_build(ClusterConfig, {"cluster_name": cluster_name, "agents": agents}),
        components=_build(ComponentConfig, {"readiness_timeout": readiness_timeout}),
        application=_build(ApplicationConfig, {"manifest": app_manifest}),
        tunnel=_build(TunnelConfig, {"pid_file": pid_file}),
    )
