"""Shared fixtures and fakes for the test suite."""

from __future__ import annotations

import itertools
import json
import os
from collections.abc import Callable

import pytest
import sh

from devenv_manager.context import ProvisioningContext


class FakeSh:
    """Stand-in for the ``sh`` module tracking k3d clusters and helm releases."""

    ErrorReturnCode = sh.ErrorReturnCode
    ErrorReturnCode_1 = sh.ErrorReturnCode_1
    TimeoutException = sh.TimeoutException

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.clusters: dict[str, int] = {}
        self.releases: dict[tuple[str, str], str] = {}
        self._clock = itertools.count(1)

    def _fail(self, *args: str) -> sh.ErrorReturnCode:
        return sh.ErrorReturnCode_1(" ".join(args), b"", b"not found")

    def k3d(self, *args: str) -> str:
        self.calls.append(("k3d", *args))
        if args[:2] == ("cluster", "list"):
            return json.dumps([{"name": name} for name in self.clusters])
        if args[:2] == ("cluster", "delete"):
            if args[2] not in self.clusters:
                raise self._fail("k3d", *args)
            del self.clusters[args[2]]
            return ""
        if args[:2] == ("cluster", "create"):
            if args[2] in self.clusters:
                raise self._fail("k3d", *args)
            self.clusters[args[2]] = next(self._clock)
            return ""
        return ""

    def helm(self, *args: str) -> str:
        self.calls.append(("helm", *args))
        if "upgrade" in args and "--install" in args:
            release = args[args.index("--install") + 1]
            namespace = args[args.index("--namespace") + 1]
            self.releases[(namespace, release)] = args[args.index("--version") + 1]
        return ""


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep DEVENV_* variables from the developer's shell out of the tests."""
    for key in list(os.environ):
        if key.startswith("DEVENV_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def ctx() -> ProvisioningContext:
    """Return a fresh provisioning context."""
    return ProvisioningContext(cluster_name="test-env")


@pytest.fixture
def sleeps() -> list[float]:
    """Record of every sleep requested through :func:`fake_sleep`."""
    return []


@pytest.fixture
def fake_sleep(sleeps: list[float]) -> Callable[[float], None]:
    """Sleep replacement that records durations instead of waiting."""
    return sleeps.append


@pytest.fixture
def fake_sh() -> FakeSh:
    """Return a fresh fake ``sh`` module."""
    return FakeSh()
