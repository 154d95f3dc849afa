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

"""Stage definition and the sequential stage runner."""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from rich.panel import Panel

from devenv_manager import console, logger
from devenv_manager.constants import DEFAULT_POLL_INTERVAL, DEFAULT_READINESS_TIMEOUT
from devenv_manager.context import ProvisioningContext
from devenv_manager.errors import StageError
from devenv_manager.utils import wait_until

StageHook = Callable[[ProvisioningContext], None]
ReadinessCheck = Callable[[ProvisioningContext], bool]


@dataclass(frozen=True)
class Stage:
    """One named, idempotent provisioning step.

    Attributes:
        name: Stage identifier reported on failure.
        action: Idempotent install or create operation.
        ready: Readiness predicate polled by the runner, or None when the
            action's own blocking call defines readiness.
        timeout: Upper bound in seconds for readiness polling.
        interval: Seconds between readiness polls.
        required: Whether a failure aborts the run.
        after_ready: Hook run once readiness passed.
        observe: Describes the last observed state for timeout messages.
        title: Panel title shown when the stage starts.
    """

    name: str
    action: StageHook
    ready: ReadinessCheck | None = None
    timeout: float = DEFAULT_READINESS_TIMEOUT
    interval: float = DEFAULT_POLL_INTERVAL
    required: bool = True
    after_ready: StageHook | None = None
    observe: Callable[[ProvisioningContext], str | None] | None = None
    title: str | None = None


def run_stage(
    stage: Stage,
    ctx: ProvisioningContext,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Execute a single stage: action, readiness poll, post-ready hook.

    Args:
        stage: Stage to execute.
        ctx: Run-scoped provisioning context.
        sleep: Sleep function used between readiness polls.

    Raises:
        StageError: If the action, the readiness poll, or the hook fails.
    """
    console.print(Panel.fit(stage.title or f"Stage: {stage.name}", style="bold blue"))
    try:
        stage.action(ctx)
        if stage.ready is not None:
            console.print(f"[yellow]\u2139\ufe0f  Waiting for {stage.name} to be ready "
                          f"(timeout {stage.timeout:g}s)...[/yellow]")
            observe = (lambda: stage.observe(ctx)) if stage.observe is not None else None
            wait_until(
                lambda: stage.ready(ctx),
                what=f"{stage.name} readiness",
                timeout=stage.timeout,
                interval=stage.interval,
                sleep=sleep,
                observe=observe,
            )
        if stage.after_ready is not None:
            stage.after_ready(ctx)
    except StageError:
        raise
    except Exception as err:
        raise StageError(stage.name, err) from err
    ctx.completed_stages.append(stage.name)
    console.print(f"[green]\u2705 {stage.name} ready[/green]")


def run_stages(
    stages: Sequence[Stage],
    ctx: ProvisioningContext,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Run stages strictly in order; a stage starts only after the previous one is ready.

    Args:
        stages: Ordered stages to execute.
        ctx: Run-scoped provisioning context.
        sleep: Sleep function used between readiness polls.

    Raises:
        StageError: On the first failing required stage; later stages do not run.
    """
    for stage in stages:
        try:
            run_stage(stage, ctx, sleep=sleep)
        except StageError as err:
            if stage.required:
                raise
            logger.warning("Optional stage %s failed: %s", stage.name, err.cause)
            console.print(f"[yellow]\u26a0\ufe0f  {err} (optional, continuing)[/yellow]")
