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

"""Prerequisite checks for the external CLI tools."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import sh
from rich.panel import Panel

from devenv_manager import console, logger
from devenv_manager.utils import require_command


@dataclass(frozen=True)
class ToolSpec:
    """A required CLI tool.

    Attributes:
        name: Executable name looked up on PATH.
        version_args: Arguments that make the tool print its version.
    """

    name: str
    version_args: tuple[str, ...] = ("version",)


DEFAULT_TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec("k3d", ("version",)),
    ToolSpec("kubectl", ("version", "--client")),
    ToolSpec("helm", ("version", "--short")),
)


def _probe_version(path: str, version_args: tuple[str, ...]) -> str:
    """Return the first line of a tool's version output, or ``unknown``."""
    try:
        output = str(sh.Command(path)(*version_args, _timeout=10))
    except (sh.ErrorReturnCode, sh.TimeoutException) as exc:
        logger.debug("Version probe for %s failed: %s", path, exc)
        return "unknown"
    first_line = output.strip().splitlines()[0] if output.strip() else ""
    return first_line or "unknown"


def check_prerequisites(tools: Sequence[ToolSpec] = DEFAULT_TOOLS) -> dict[str, str]:
    """Verify every tool is on PATH before any stage runs.

    Fails on the first missing tool; version probing is best-effort.

    Args:
        tools: Tools to resolve, checked in order.

    Returns:
        Mapping of tool name to its reported version.

    Raises:
        MissingToolError: If a tool cannot be resolved.
    """
    console.print(Panel.fit("Checking prerequisites", style="bold blue"))
    resolved = [(tool, require_command(tool.name)) for tool in tools]
    versions = {tool.name: _probe_version(path, tool.version_args) for tool, path in resolved}
    console.print("[green]\u2705 All required tools are available[/green]")
    return versions
