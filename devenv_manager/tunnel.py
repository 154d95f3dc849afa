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

"""Background port-forward tunnel: start, stop, status, and scoped guard.

The tunnel's PID is written to a well-known file so a later, independent
invocation (``devenv-manager tunnel stop``) can find and terminate it. The
file is advisory: its content is re-validated against the live process table
before anything is killed.
"""

from __future__ import annotations

import os
import subprocess
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import psutil
from filelock import FileLock, Timeout

from devenv_manager import console, logger
from devenv_manager.config import TunnelConfig
from devenv_manager.constants import (
    ARGOCD_SERVICE,
    NS_ARGOCD,
    TUNNEL_MARKER,
    TUNNEL_STARTUP_GRACE_SECONDS,
    TUNNEL_TERMINATE_TIMEOUT,
)
from devenv_manager.context import ProvisioningContext
from devenv_manager.errors import TunnelError, TunnelStopError

LOCK_TIMEOUT_SECONDS = 10


@dataclass(frozen=True)
class BackgroundProcessHandle:
    """A spawned port-forward process.

    Attributes:
        pid: Process identifier.
        service: Forwarded service reference (``svc/<name>``).
        namespace: Namespace of the service.
        local_port: Local listening port.
        remote_port: Service port traffic is forwarded to.
        pid_file: Where the PID is persisted.
    """

    pid: int
    service: str
    namespace: str
    local_port: int
    remote_port: int
    pid_file: Path

    @property
    def alive(self) -> bool:
        return _is_tunnel_process(self.pid)

    @property
    def url(self) -> str:
        return f"https://localhost:{self.local_port}"


def _lock_for(pid_file: Path) -> FileLock:
    return FileLock(str(pid_file) + ".lock", timeout=LOCK_TIMEOUT_SECONDS)


def _is_tunnel_process(pid: int) -> bool:
    """Return True if *pid* is a live (non-zombie) port-forward process."""
    try:
        proc = psutil.Process(pid)
        if proc.status() == psutil.STATUS_ZOMBIE:
            return False
        return TUNNEL_MARKER in proc.cmdline()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False


def read_pid(pid_file: Path) -> int | None:
    """Read the persisted PID; missing or garbled content yields None."""
    try:
        content = pid_file.read_text().strip()
    except FileNotFoundError:
        return None
    except OSError as exc:
        logger.warning("Cannot read %s: %s", pid_file, exc)
        return None
    try:
        pid = int(content)
    except ValueError:
        logger.warning("Ignoring malformed pid file %s: %r", pid_file, content[:40])
        return None
    return pid if pid > 0 else None


def write_pid(pid_file: Path, pid: int) -> None:
    """Atomically replace *pid_file* with *pid*."""
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=pid_file.parent, prefix=f".{pid_file.name}.")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(f"{pid}\n")
        os.replace(tmp_name, pid_file)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _remove_pid_file(pid_file: Path, expected_pid: int | None) -> None:
    """Delete the record unless it was rewritten by someone else meanwhile."""
    current = read_pid(pid_file)
    if expected_pid is not None and current is not None and current != expected_pid:
        logger.warning("%s now holds PID %d, leaving it in place", pid_file, current)
        return
    pid_file.unlink(missing_ok=True)


def _stop_unlocked(pid_file: Path, terminate_timeout: float) -> bool:
    pid = read_pid(pid_file)
    if pid is None:
        _remove_pid_file(pid_file, None)
        return False

    try:
        proc = psutil.Process(pid)
        if not _is_tunnel_process(pid):
            logger.info("PID %d from %s is not a running tunnel; dropping stale record", pid, pid_file)
            _remove_pid_file(pid_file, pid)
            return False
        proc.terminate()
        try:
            proc.wait(timeout=terminate_timeout)
        except psutil.TimeoutExpired:
            logger.warning("Tunnel PID %d ignored SIGTERM, killing", pid)
            proc.kill()
            proc.wait(timeout=terminate_timeout)
    except psutil.NoSuchProcess:
        _remove_pid_file(pid_file, pid)
        return False
    except (psutil.AccessDenied, psutil.TimeoutExpired) as exc:
        raise TunnelStopError(f"Failed to stop tunnel PID {pid}: {exc}") from exc

    _remove_pid_file(pid_file, pid)
    logger.info("Stopped tunnel PID %d", pid)
    return True


def stop_tunnel(pid_file: Path, *, terminate_timeout: float = TUNNEL_TERMINATE_TIMEOUT) -> bool:
    """Terminate the persisted tunnel and remove its record.

    A missing file, a dead process, or a PID that no longer belongs to a
    port-forward is a successful no-op.

    Args:
        pid_file: Well-known pid file path.
        terminate_timeout: Seconds to wait after SIGTERM before SIGKILL.

    Returns:
        Whether a running tunnel was stopped.

    Raises:
        TunnelStopError: If the process cannot be signalled or the record is locked.
    """
    try:
        with _lock_for(pid_file):
            return _stop_unlocked(pid_file, terminate_timeout)
    except Timeout as exc:
        raise TunnelStopError(f"Timed out locking {pid_file}") from exc


def tunnel_status(pid_file: Path) -> int | None:
    """Return the PID of a live tunnel recorded in *pid_file*, or None."""
    pid = read_pid(pid_file)
    if pid is None or not _is_tunnel_process(pid):
        return None
    return pid


def tunnel_command(ctx: ProvisioningContext, tunnel_cfg: TunnelConfig) -> list[str]:
    """Build the kubectl port-forward command for the Argo CD server."""
    return [
        "kubectl", *ctx.kubectl_args(
            TUNNEL_MARKER, f"svc/{ARGOCD_SERVICE}", "-n", NS_ARGOCD,
            f"{tunnel_cfg.local_port}:{tunnel_cfg.remote_port}",
        ),
    ]


def start_tunnel(
    ctx: ProvisioningContext,
    tunnel_cfg: TunnelConfig,
    *,
    command: list[str] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> BackgroundProcessHandle:
    """Spawn a detached port-forward and persist its PID.

    Any tunnel already recorded in the pid file is stopped first.

    Args:
        ctx: Run-scoped provisioning context; receives the handle and URL.
        tunnel_cfg: Tunnel settings.
        command: Command to spawn instead of ``kubectl port-forward``.
        sleep: Sleep function used for the startup grace period.

    Returns:
        Handle of the spawned process.

    Raises:
        TunnelError: If a stale tunnel cannot be reaped or the new one exits at once.
    """
    pid_file = tunnel_cfg.pid_file
    argv = command or tunnel_command(ctx, tunnel_cfg)
    console.print(f"[yellow]\u2139\ufe0f  Setting up port forwarding for Argo CD "
                  f"(localhost:{tunnel_cfg.local_port})...[/yellow]")
    try:
        with _lock_for(pid_file):
            try:
                if _stop_unlocked(pid_file, tunnel_cfg.terminate_timeout):
                    console.print("[yellow]   Stopped stale tunnel[/yellow]")
            except TunnelStopError as exc:
                raise TunnelError(f"Cannot reap existing tunnel: {exc}") from exc

            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
            # The process is owned by this call until the handle is returned.
            try:
                write_pid(pid_file, proc.pid)
                sleep(TUNNEL_STARTUP_GRACE_SECONDS)
                if proc.poll() is not None:
                    raise TunnelError(f"port-forward exited immediately with code {proc.returncode}")
            except BaseException:
                proc.kill()
                proc.wait()
                _remove_pid_file(pid_file, proc.pid)
                raise
    except Timeout as exc:
        raise TunnelError(f"Timed out locking {pid_file}") from exc

    handle = BackgroundProcessHandle(
        pid=proc.pid,
        service=f"svc/{ARGOCD_SERVICE}",
        namespace=NS_ARGOCD,
        local_port=tunnel_cfg.local_port,
        remote_port=tunnel_cfg.remote_port,
        pid_file=pid_file,
    )
    ctx.tunnel = handle
    ctx.endpoints["argocd"] = handle.url
    console.print(f"[green]  \u2713 Tunnel PID {handle.pid} saved to {pid_file}[/green]")
    return handle


class TunnelGuard:
    """Scoped ownership of the tunnel: stop runs exactly once on exit.

    Used as a context manager around everything that follows a successful
    start. Stop failures are logged and never propagate.
    """

    def __init__(
        self,
        tunnel_cfg: TunnelConfig,
        *,
        starter: Callable[..., BackgroundProcessHandle] = start_tunnel,
        stopper: Callable[..., bool] = stop_tunnel,
    ) -> None:
        self._cfg = tunnel_cfg
        self._starter = starter
        self._stopper = stopper
        self._stopped = False
        self.handle: BackgroundProcessHandle | None = None

    def __enter__(self) -> TunnelGuard:
        return self

    def __exit__(self, *exc_info) -> bool:
        self.stop()
        return False

    def start(self, ctx: ProvisioningContext, **kwargs) -> BackgroundProcessHandle:
        self.handle = self._starter(ctx, self._cfg, **kwargs)
        return self.handle

    def stop(self) -> None:
        if self.handle is None or self._stopped:
            return
        self._stopped = True
        console.print("[yellow]\u2139\ufe0f  Stopping Argo CD port forward...[/yellow]")
        try:
            self._stopper(self._cfg.pid_file, terminate_timeout=self._cfg.terminate_timeout)
        except TunnelStopError as exc:
            logger.error("Tunnel cleanup failed: %s", exc)
            console.print(f"[red]\u274c Tunnel cleanup failed: {exc}[/red]")
