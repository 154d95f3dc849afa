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

"""Argo CD Application submission and sync/health polling."""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from dataclasses import dataclass

from devenv_manager import console
from devenv_manager.config import ApplicationConfig
from devenv_manager.constants import (
    ARGOCD_APPLICATION_RESOURCE,
    HEALTH_STATUS_HEALTHY,
    NS_ARGOCD,
    STAGE_APPLICATION,
    SYNC_STATUS_SYNCED,
)
from devenv_manager.context import ProvisioningContext
from devenv_manager.stages import Stage
from devenv_manager.utils import ensure_namespace, run_kubectl


@dataclass(frozen=True)
class ApplicationStatus:
    """Sync and health as reported by the GitOps controller."""

    sync: str = "Unknown"
    health: str = "Unknown"

    @property
    def healthy(self) -> bool:
        return self.sync == SYNC_STATUS_SYNCED and self.health == HEALTH_STATUS_HEALTHY

    def __str__(self) -> str:
        return f"sync={self.sync}, health={self.health}"


def submit_application(app_cfg: ApplicationConfig, ctx: ProvisioningContext) -> None:
    """Create the destination namespace and apply the Application descriptor.

    Args:
        app_cfg: Application settings with the descriptor path.
        ctx: Run-scoped provisioning context.

    Raises:
        FileNotFoundError: If the descriptor does not exist.
        RuntimeError: If kubectl rejects the descriptor.
    """
    manifest = app_cfg.manifest
    if not manifest.is_file():
        raise FileNotFoundError(
            f"Argo CD application file not found: {manifest} "
            "(run from the project root or pass --app-manifest)"
        )
    ensure_namespace(ctx.kubectl_args(), app_cfg.namespace)
    ok, _, stderr = run_kubectl(ctx.kubectl_args("apply", "-f", str(manifest)))
    if not ok:
        raise RuntimeError(f"Failed to apply {manifest}: {stderr.strip()[:200]}")
    console.print(f"[green]  \u2713 Application '{app_cfg.name}' submitted[/green]")


def get_application_status(ctx: ProvisioningContext, name: str) -> ApplicationStatus | None:
    """Query the Application's reported sync and health status.

    Args:
        ctx: Run-scoped provisioning context.
        name: Application resource name.

    Returns:
        The status, or None if the resource cannot be read yet.
    """
    ok, stdout, _ = run_kubectl(ctx.kubectl_args(
        "get", ARGOCD_APPLICATION_RESOURCE, name, "-n", NS_ARGOCD, "-o", "json",
    ))
    if not ok:
        return None
    try:
        status = json.loads(stdout).get("status", {})
    except json.JSONDecodeError:
        return None
    return ApplicationStatus(
        sync=status.get("sync", {}).get("status", "Unknown"),
        health=status.get("health", {}).get("status", "Unknown"),
    )


class SyncProbe:
    """Readiness predicate that remembers the last status it saw."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.last: ApplicationStatus | None = None

    def __call__(self, ctx: ProvisioningContext) -> bool:
        self.last = get_application_status(ctx, self.name)
        return self.last is not None and self.last.healthy

    def describe(self, ctx: ProvisioningContext) -> str | None:
        return str(self.last) if self.last is not None else "application not found"


def application_stage(
    app_cfg: ApplicationConfig,
    *,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
) -> Stage:
    """Build the application deploy stage.

    With ``wait_for_sync`` the stage polls Argo CD until the Application is
    Synced and Healthy. Without it the stage falls back to sleeping for
    ``sync_grace_seconds`` and assuming the submission was accepted.

    Args:
        app_cfg: Application settings.
        interval: Seconds between status polls.
        sleep: Sleep function, also used for the grace period fallback.

    Returns:
        The application stage.
    """
    title = f"Deploying application {app_cfg.name}"
    if not app_cfg.wait_for_sync:
        def _submit_and_wait(ctx: ProvisioningContext) -> None:
            submit_application(app_cfg, ctx)
            if app_cfg.sync_grace_seconds:
                console.print(f"[yellow]\u2139\ufe0f  Waiting {app_cfg.sync_grace_seconds:g}s for the "
                              "application to sync...[/yellow]")
                sleep(app_cfg.sync_grace_seconds)

        return Stage(name=STAGE_APPLICATION, title=title, action=_submit_and_wait)

    probe = SyncProbe(app_cfg.name)
    return Stage(
        name=STAGE_APPLICATION,
        title=title,
        action=lambda ctx: submit_application(app_cfg, ctx),
        ready=probe,
        observe=probe.describe,
        timeout=app_cfg.sync_timeout,
        interval=interval,
    )
