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

"""Utility functions for kubectl, command checks, and readiness polling."""

from __future__ import annotations

import math
import subprocess
import time
from collections.abc import Callable

import sh
from tenacity import RetryError, Retrying, retry_if_result, stop_after_attempt, stop_after_delay, wait_fixed

from devenv_manager import logger
from devenv_manager.errors import MissingToolError, ReadinessTimeout


def require_command(cmd: str) -> str:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Returns:
        Absolute path of the resolved command.

    Raises:
        MissingToolError: If the command is not found.
    """
    try:
        path = sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise MissingToolError(cmd) from err
    if not path:
        raise MissingToolError(cmd)
    return str(path).strip()


def run_kubectl(args: list[str], timeout: int = 30, input_text: str | None = None) -> tuple[bool, str, str]:
    """Run a kubectl command via subprocess and return (success, stdout, stderr).

    Uses subprocess instead of sh because readiness checks need stdout and
    stderr kept apart and must never raise on a non-zero exit.

    Args:
        args: kubectl arguments (e.g. ``["get", "pods", "-n", "default"]``).
        timeout: Maximum seconds to wait for the command to complete.
        input_text: Optional text piped to kubectl's stdin.

    Returns:
        Tuple of (success, stdout, stderr).
    """
    try:
        result = subprocess.run(
            ["kubectl", *args],
            capture_output=True,
            text=True,
            timeout=timeout,
            input=input_text,
        )
        return result.returncode == 0, result.stdout, result.stderr
    except (subprocess.SubprocessError, OSError) as exc:
        return False, "", str(exc)


def wait_until(
    check: Callable[[], bool],
    *,
    what: str,
    timeout: float,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
    observe: Callable[[], str | None] | None = None,
) -> None:
    """Poll *check* at a fixed interval until it returns True.

    The bound is enforced both on elapsed time and on the number of attempts
    a full ``timeout`` allows, so an injected *sleep* cannot poll forever.

    Args:
        check: Predicate polled until it returns True.
        what: Human readable description used in the timeout message.
        timeout: Upper bound in seconds.
        interval: Seconds between polls.
        sleep: Sleep function used between polls.
        observe: Optional callable describing the last observed state.

    Raises:
        ReadinessTimeout: If the bound elapses before *check* passes.
    """
    attempts = math.ceil(timeout / interval) + 1
    retrying = Retrying(
        stop=stop_after_delay(timeout) | stop_after_attempt(attempts),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda ok: not ok),
        sleep=sleep,
    )
    logger.debug("Waiting up to %gs for %s (interval %gs)", timeout, what, interval)
    try:
        retrying(check)
    except RetryError as err:
        last = observe() if observe is not None else None
        raise ReadinessTimeout(what, timeout, last) from err


def deployment_available(context_args: list[str], namespace: str, name: str) -> bool:
    """Return True when a deployment reports its Available condition.

    Args:
        context_args: Leading kubectl arguments selecting the kube context.
        namespace: Namespace of the deployment.
        name: Deployment name.

    Returns:
        Whether the ``Available`` condition is ``True``.
    """
    ok, stdout, _ = run_kubectl([
        *context_args,
        "get", "deployment", name, "-n", namespace,
        "-o", "jsonpath={.status.conditions[?(@.type==\"Available\")].status}",
    ])
    return ok and stdout.strip() == "True"


def ensure_namespace(context_args: list[str], namespace: str) -> None:
    """Create *namespace* if missing using client dry-run piped into apply.

    Args:
        context_args: Leading kubectl arguments selecting the kube context.
        namespace: Namespace to create.

    Raises:
        RuntimeError: If the namespace cannot be rendered or applied.
    """
    ok, manifest, stderr = run_kubectl([
        *context_args, "create", "namespace", namespace, "--dry-run=client", "-o", "yaml",
    ])
    if not ok:
        raise RuntimeError(f"Failed to render namespace {namespace}: {stderr.strip()}")
    ok, _, stderr = run_kubectl([*context_args, "apply", "-f", "-"], input_text=manifest)
    if not ok:
        raise RuntimeError(f"Failed to create namespace {namespace}: {stderr.strip()}")
