"""Pytest configuration and fixtures for testgrid tests."""

import threading
from collections.abc import Callable, Mapping
from typing import Any

import pytest

from testgrid.core.context import ExecutionContext
from testgrid.core.types import TestId
from testgrid.resources.handles import ResourceProfile
from testgrid.resources.providers.base import ResourceProvider
from testgrid.resources.registry import ResourceRegistry


@pytest.fixture(autouse=True)
def reset_and_load_minimal_config(request):
    """Reset config singleton and load an empty (all defaults) config.

    Tests that need NO config (e.g., testing config loading itself) can use:
        @pytest.mark.no_auto_config
    """
    from testgrid.core.config import _reset_config, load_config

    _reset_config()
    if not request.node.get_closest_marker("no_auto_config"):
        load_config({"cleanup": {"register_exit_hook": False}})

    yield

    _reset_config()


# =============================================================================
# Fake resources
# =============================================================================


class FakeResource:
    """Stand-in for a browser/page/request context."""

    def __init__(self, kind: str, dependencies: Mapping[str, Any]) -> None:
        self.kind = kind
        self.dependencies = dict(dependencies)
        self.opened_on = threading.current_thread().name
        self.closed = False

    def __repr__(self) -> str:
        return f"FakeResource({self.kind!r}, closed={self.closed})"


class FakeProvider(ResourceProvider):
    """Provider recording open/close events, optionally failing."""

    def __init__(
        self,
        kind: str,
        requires: tuple[str, ...] = (),
        *,
        events: list[tuple[str, str]] | None = None,
        fail_open: bool = False,
        fail_close: bool = False,
    ) -> None:
        self._kind = kind
        self._requires = requires
        self.events = events if events is not None else []
        self.fail_open = fail_open
        self.fail_close = fail_close
        self.opened: list[FakeResource] = []
        self._lock = threading.Lock()

    @property
    def kind(self) -> str:
        return self._kind

    @property
    def requires(self) -> tuple[str, ...]:
        return self._requires

    def open(self, profile: ResourceProfile, dependencies: Mapping[str, Any]) -> FakeResource:
        with self._lock:
            self.events.append(("open", self._kind))
        if self.fail_open:
            raise RuntimeError(f"{self._kind} unavailable")
        resource = FakeResource(self._kind, dependencies)
        with self._lock:
            self.opened.append(resource)
        return resource

    def close(self, resource: FakeResource) -> None:
        with self._lock:
            self.events.append(("close", self._kind))
        if self.fail_close:
            raise RuntimeError(f"{self._kind} refused to close")
        resource.closed = True


@pytest.fixture
def make_provider() -> type[FakeProvider]:
    """FakeProvider class, for tests that need custom providers."""
    return FakeProvider


@pytest.fixture
def events() -> list[tuple[str, str]]:
    """Shared open/close event log for the registry fixture's providers."""
    return []


@pytest.fixture
def providers(events: list[tuple[str, str]]) -> dict[str, FakeProvider]:
    """driver <- browser <- page chain plus an independent api provider."""
    return {
        "driver": FakeProvider("driver", events=events),
        "browser": FakeProvider("browser", ("driver",), events=events),
        "page": FakeProvider("page", ("browser",), events=events),
        "api": FakeProvider("api", ("driver",), events=events),
    }


@pytest.fixture
def registry(providers: dict[str, FakeProvider]) -> ResourceRegistry:
    return ResourceRegistry(providers.values())


@pytest.fixture
def make_context() -> Callable[..., ExecutionContext]:
    """Factory for ExecutionContext bound to a worker."""

    def _make(
        worker: str = "worker-1", name: str = "test_example", suite: str = "suite"
    ) -> ExecutionContext:
        return ExecutionContext(worker=worker, test_id=TestId(name, suite))

    return _make
