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

"""Ingress-NGINX, KEDA, and Argo CD installation."""

from __future__ import annotations

import base64
import binascii
import time
import warnings
from collections.abc import Callable
from dataclasses import dataclass

import sh

from devenv_manager import console, logger
from devenv_manager.config import ComponentConfig
from devenv_manager.constants import (
    ARGOCD_ADMIN_SECRET,
    CREDENTIAL_ARGOCD_PASSWORD,
    DEPLOYMENT_ARGOCD_SERVER,
    DEPLOYMENT_INGRESS_CONTROLLER,
    DEPLOYMENT_KEDA_OPERATOR,
    HELM_RELEASE_INGRESS,
    HELM_RELEASE_KEDA,
    NS_ARGOCD,
    NS_INGRESS,
    NS_KEDA,
    STAGE_AUTOSCALER,
    STAGE_GITOPS,
    STAGE_INGRESS,
    dep_value,
)
from devenv_manager.context import ProvisioningContext
from devenv_manager.errors import CredentialExtractionWarning, ReadinessTimeout
from devenv_manager.stages import Stage
from devenv_manager.utils import deployment_available, ensure_namespace, run_kubectl, wait_until


@dataclass(frozen=True)
class ComponentSpec:
    """A Helm-installed addon and the deployment that signals its readiness.

    Attributes:
        name: Stage name for the addon.
        namespace: Namespace the release is installed into.
        release: Helm release name.
        chart: Chart reference (``repo/chart``).
        repo_name: Helm repository alias.
        repo_url: Helm repository URL.
        version: Chart version.
        deployment: Deployment whose Available condition defines readiness.
        set_values: ``key=value`` strings for ``helm --set``.
    """

    name: str
    namespace: str
    release: str
    chart: str
    repo_name: str
    repo_url: str
    version: str
    deployment: str
    set_values: tuple[str, ...] = ()


def ingress_spec(comp_cfg: ComponentConfig) -> ComponentSpec:
    """Ingress-NGINX exposed through the k3d load balancer."""
    return ComponentSpec(
        name=STAGE_INGRESS,
        namespace=NS_INGRESS,
        release=HELM_RELEASE_INGRESS,
        chart=dep_value("ingress_nginx", "chart"),
        repo_name=dep_value("ingress_nginx", "repo_name"),
        repo_url=dep_value("ingress_nginx", "repo_url"),
        version=comp_cfg.ingress_version,
        deployment=DEPLOYMENT_INGRESS_CONTROLLER,
        set_values=(
            "controller.service.type=LoadBalancer",
            "controller.service.loadBalancerIP=",
            "controller.watchIngressWithoutClass=true",
            "controller.service.externalTrafficPolicy=Local",
        ),
    )


def keda_spec(comp_cfg: ComponentConfig) -> ComponentSpec:
    """KEDA autoscaler; passive until scaled workloads register."""
    return ComponentSpec(
        name=STAGE_AUTOSCALER,
        namespace=NS_KEDA,
        release=HELM_RELEASE_KEDA,
        chart=dep_value("keda", "chart"),
        repo_name=dep_value("keda", "repo_name"),
        repo_url=dep_value("keda", "repo_url"),
        version=comp_cfg.keda_version,
        deployment=DEPLOYMENT_KEDA_OPERATOR,
    )


# ============================================================================
# Helm addons
# ============================================================================

def install_helm_component(spec: ComponentSpec, ctx: ProvisioningContext) -> None:
    """Install or upgrade a Helm addon without waiting for it.

    ``helm upgrade --install`` keeps re-runs idempotent; readiness is polled
    by the stage runner rather than through ``helm --wait``.

    Args:
        spec: Addon to install.
        ctx: Run-scoped provisioning context.
    """
    console.print(f"[yellow]Version: {spec.version}[/yellow]")
    sh.helm("repo", "add", spec.repo_name, spec.repo_url, "--force-update")
    sh.helm("repo", "update", spec.repo_name)
    set_args = [item for value in spec.set_values for item in ("--set", value)]
    sh.helm(*ctx.helm_args(
        "upgrade", "--install", spec.release, spec.chart,
        "--namespace", spec.namespace,
        "--create-namespace",
        "--version", spec.version,
        *set_args,
    ))
    console.print(f"[green]  \u2713 Helm release {spec.release} applied[/green]")


def addon_stage(spec: ComponentSpec, comp_cfg: ComponentConfig) -> Stage:
    """Build a stage that installs *spec* and waits for its deployment.

    Args:
        spec: Addon to install.
        comp_cfg: Component configuration with readiness bounds.

    Returns:
        The addon stage.
    """
    return Stage(
        name=spec.name,
        title=f"Installing {spec.release} {spec.version}",
        action=lambda ctx: install_helm_component(spec, ctx),
        ready=lambda ctx: deployment_available(ctx.kubectl_args(), spec.namespace, spec.deployment),
        timeout=comp_cfg.readiness_timeout,
        interval=comp_cfg.poll_interval,
    )


# ============================================================================
# Argo CD
# ============================================================================

def argocd_install_manifest(version: str) -> str:
    """Build the upstream install manifest URL for an Argo CD release.

    Args:
        version: Argo CD release tag (e.g. ``v2.11.0``).

    Returns:
        Raw GitHub URL of ``manifests/install.yaml``.
    """
    template = dep_value(
        "argocd", "install_manifest",
        default="https://raw.githubusercontent.com/argoproj/argo-cd/{version}/manifests/install.yaml",
    )
    return template.format(version=version)


def install_argocd(comp_cfg: ComponentConfig, ctx: ProvisioningContext) -> None:
    """Apply the full Argo CD manifest set into its namespace.

    Args:
        comp_cfg: Component configuration with the Argo CD version.
        ctx: Run-scoped provisioning context.

    Raises:
        RuntimeError: If the namespace or manifests cannot be applied.
    """
    console.print(f"[yellow]Version: {comp_cfg.argocd_version}[/yellow]")
    ensure_namespace(ctx.kubectl_args(), NS_ARGOCD)
    manifest = argocd_install_manifest(comp_cfg.argocd_version)
    ok, _, stderr = run_kubectl(ctx.kubectl_args("apply", "-n", NS_ARGOCD, "-f", manifest), timeout=300)
    if not ok:
        raise RuntimeError(f"Failed to apply Argo CD manifests: {stderr.strip()[:200]}")
    console.print("[green]  \u2713 Argo CD manifests applied[/green]")


def read_admin_password(ctx: ProvisioningContext) -> str | None:
    """Read and decode the Argo CD initial admin password, if present.

    Args:
        ctx: Run-scoped provisioning context.

    Returns:
        The decoded password, or None while the secret is not there yet.
    """
    ok, stdout, _ = run_kubectl(ctx.kubectl_args(
        "-n", NS_ARGOCD, "get", "secret", ARGOCD_ADMIN_SECRET,
        "-o", "jsonpath={.data.password}",
    ))
    encoded = stdout.strip()
    if not ok or not encoded:
        return None
    try:
        return base64.b64decode(encoded, validate=True).decode()
    except (binascii.Error, UnicodeDecodeError):
        logger.debug("Admin secret payload is not valid base64 text")
        return None


def extract_admin_password(
    ctx: ProvisioningContext,
    *,
    timeout: float,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
) -> str | None:
    """Poll for the admin secret and store the password in the context.

    The secret is created shortly after ``argocd-server`` becomes available,
    so absence is polled rather than treated as final. Failure is non-fatal.

    Args:
        ctx: Run-scoped provisioning context.
        timeout: Upper bound in seconds.
        interval: Seconds between polls.
        sleep: Sleep function used between polls.

    Returns:
        The password, or None if it never appeared.
    """
    found: dict[str, str] = {}

    def _check() -> bool:
        password = read_admin_password(ctx)
        if password is None:
            return False
        found["password"] = password
        return True

    console.print("[yellow]\u2139\ufe0f  Reading Argo CD admin password...[/yellow]")
    try:
        wait_until(_check, what=f"secret {ARGOCD_ADMIN_SECRET}",
                   timeout=timeout, interval=interval, sleep=sleep)
    except ReadinessTimeout as err:
        message = f"Could not extract Argo CD admin password: {err}"
        logger.warning(message)
        console.print(f"[yellow]\u26a0\ufe0f  {message}[/yellow]")
        warnings.warn(message, CredentialExtractionWarning, stacklevel=2)
        return None

    ctx.credentials[CREDENTIAL_ARGOCD_PASSWORD] = found["password"]
    console.print("[green]  \u2713 Admin password extracted[/green]")
    return found["password"]


def argocd_stage(
    comp_cfg: ComponentConfig,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> Stage:
    """Build the GitOps controller stage.

    Args:
        comp_cfg: Component configuration with version and bounds.
        sleep: Sleep function used while polling for the admin secret.

    Returns:
        The Argo CD stage.
    """
    return Stage(
        name=STAGE_GITOPS,
        title=f"Installing Argo CD {comp_cfg.argocd_version}",
        action=lambda ctx: install_argocd(comp_cfg, ctx),
        ready=lambda ctx: deployment_available(ctx.kubectl_args(), NS_ARGOCD, DEPLOYMENT_ARGOCD_SERVER),
        timeout=comp_cfg.readiness_timeout,
        interval=comp_cfg.poll_interval,
        after_ready=lambda ctx: extract_admin_password(
            ctx,
            timeout=comp_cfg.credential_timeout,
            interval=comp_cfg.credential_interval,
            sleep=sleep,
        ),
    )
