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

"""Error taxonomy for the provisioning flow."""

from __future__ import annotations


class DevenvError(RuntimeError):
    """Base class for all provisioning errors."""


class MissingToolError(DevenvError):
    """A required CLI tool is not on PATH."""

    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(f"Required command '{tool}' not found. Please install it first.")


class ReadinessTimeout(DevenvError):
    """A readiness check did not pass within its bound."""

    def __init__(self, what: str, timeout: float, last_observed: str | None = None) -> None:
        self.what = what
        self.timeout = timeout
        self.last_observed = last_observed
        message = f"timed out after {timeout:g}s waiting for {what}"
        if last_observed:
            message += f" (last observed: {last_observed})"
        super().__init__(message)


class StageError(DevenvError):
    """A named stage failed; carries the underlying cause."""

    def __init__(self, stage: str, cause: BaseException | str) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"Stage '{stage}' failed: {cause}")


class TunnelError(DevenvError):
    """The background tunnel could not be started."""


class TunnelStopError(DevenvError):
    """Stopping the background tunnel failed. Logged, never escalated."""


class CredentialExtractionWarning(UserWarning):
    """The bootstrap credential could not be read; the run continues."""
