"""Tests for ResourceRegistry: acquire/release ordering, isolation and leaks."""

import threading
from unittest.mock import MagicMock

import pytest

from testgrid.core.exceptions import (
    ResourceAcquisitionError,
    ResourceLeakError,
    ResourceReleaseError,
)
from testgrid.core.types import Outcome
from testgrid.resources.handles import ResourceProfile
from testgrid.resources.registry import ActiveResource, ResourceRegistry


# =============================================================================
# Test: acquire
# =============================================================================


class TestAcquire:
    """Tests for ResourceRegistry.acquire()."""

    def test_opens_dependencies_first(self, registry, make_context, events) -> None:
        """Requesting a page opens driver, browser, page in that order."""
        ctx = make_context()
        handles = registry.acquire("worker-1", ResourceProfile.of("page"), ctx)

        assert handles.kinds == ("driver", "browser", "page")
        assert events == [("open", "driver"), ("open", "browser"), ("open", "page")]

    def test_dependencies_passed_to_provider(self, registry, make_context) -> None:
        """Each resource receives its already-opened dependencies by kind."""
        handles = registry.acquire("worker-1", ResourceProfile.of("page"), make_context())

        page = handles["page"]
        assert page.dependencies["browser"] is handles["browser"]

    def test_shared_dependency_opened_once(self, registry, make_context, events) -> None:
        """page and api both need driver; it is opened only once."""
        registry.acquire("worker-1", ResourceProfile.of("page", "api"), make_context())

        assert events.count(("open", "driver")) == 1
        assert registry.handle_count() == 4

    def test_binds_handles_to_context(self, registry, make_context) -> None:
        """The acquired set is stored on the context."""
        ctx = make_context()
        handles = registry.acquire("worker-1", ResourceProfile.of("browser"), ctx)

        assert ctx.handles is handles
        assert registry.handles_for("worker-1") is handles

    def test_idempotent_for_same_context(self, registry, make_context, events) -> None:
        """Second acquire for the same context returns the bound set without opening."""
        ctx = make_context()
        first = registry.acquire("worker-1", ResourceProfile.of("page"), ctx)
        second = registry.acquire("worker-1", ResourceProfile.of("page"), ctx)

        assert second is first
        assert len(events) == 3

    def test_different_context_without_release_raises_leak(self, registry, make_context) -> None:
        """Re-acquiring for another context fails loudly instead of leaking."""
        registry.acquire("worker-1", ResourceProfile.of("page"), make_context(name="test_a"))

        with pytest.raises(ResourceLeakError) as exc_info:
            registry.acquire("worker-1", ResourceProfile.of("page"), make_context(name="test_b"))

        assert exc_info.value.worker == "worker-1"
        assert "suite.test_a" in str(exc_info.value)

    def test_empty_profile_registers_empty_set(self, registry, make_context, events) -> None:
        """A test without resources still owns an (empty) entry."""
        handles = registry.acquire("worker-1", ResourceProfile(), make_context())

        assert len(handles) == 0
        assert registry.active_count() == 1
        assert events == []

    def test_unknown_kind_raises_acquisition_error(self, registry, make_context) -> None:
        """Missing provider is an acquisition error naming the kind."""
        with pytest.raises(ResourceAcquisitionError, match="video"):
            registry.acquire("worker-1", ResourceProfile.of("video"), make_context())

        assert registry.active_count() == 0

    def test_dependency_cycle_raises_acquisition_error(self, make_provider, make_context) -> None:
        """Providers requiring each other cannot be opened."""
        registry = ResourceRegistry([make_provider("a", ("b",)), make_provider("b", ("a",))])

        with pytest.raises(ResourceAcquisitionError, match="cycle"):
            registry.acquire("worker-1", ResourceProfile.of("a"), make_context())


class TestPartialFailure:
    """Tests for open failures midway through a profile."""

    def test_opened_handles_closed_in_reverse(self, make_provider, make_context) -> None:
        """browser fails: driver (already open) is closed and the error raised."""
        events: list[tuple[str, str]] = []
        registry = ResourceRegistry(
            [
                make_provider("driver", events=events),
                make_provider("context", ("driver",), events=events),
                make_provider("browser", ("context",), events=events, fail_open=True),
            ]
        )

        with pytest.raises(ResourceAcquisitionError) as exc_info:
            registry.acquire("worker-1", ResourceProfile.of("browser"), make_context())

        assert events == [
            ("open", "driver"),
            ("open", "context"),
            ("open", "browser"),
            ("close", "context"),
            ("close", "driver"),
        ]
        assert exc_info.value.kind == "browser"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert registry.active_count() == 0

    def test_context_not_bound_after_failure(self, make_provider, make_context) -> None:
        """A failed acquire leaves the context without handles."""
        registry = ResourceRegistry([make_provider("browser", fail_open=True)])
        ctx = make_context()

        with pytest.raises(ResourceAcquisitionError):
            registry.acquire("worker-1", ResourceProfile.of("browser"), ctx)

        assert ctx.handles is None


# =============================================================================
# Test: release
# =============================================================================


class TestRelease:
    """Tests for ResourceRegistry.release()."""

    def test_closes_in_reverse_opening_order(self, registry, make_context, events) -> None:
        """Dependents close before their parents."""
        registry.acquire("worker-1", ResourceProfile.of("page"), make_context())
        events.clear()

        errors = registry.release("worker-1")

        assert errors == []
        assert events == [("close", "page"), ("close", "browser"), ("close", "driver")]

    def test_unknown_worker_is_noop(self, registry) -> None:
        """Releasing a worker that holds nothing returns no errors."""
        assert registry.release("nobody") == []

    def test_second_release_is_noop(self, registry, make_context, events) -> None:
        """Release is idempotent."""
        registry.acquire("worker-1", ResourceProfile.of("browser"), make_context())
        registry.release("worker-1")
        events.clear()

        assert registry.release("worker-1") == []
        assert events == []

    def test_failure_does_not_abort_remaining_steps(self, make_provider, make_context) -> None:
        """A failing close is returned while the others still close."""
        events: list[tuple[str, str]] = []
        driver = make_provider("driver", events=events)
        browser = make_provider("browser", ("driver",), events=events, fail_close=True)
        page = make_provider("page", ("browser",), events=events)
        registry = ResourceRegistry([driver, browser, page])
        handles = registry.acquire("worker-1", ResourceProfile.of("page"), make_context())

        errors = registry.release("worker-1")

        assert len(errors) == 1
        assert isinstance(errors[0], ResourceReleaseError)
        assert errors[0].kind == "browser"
        assert handles["page"].closed
        assert handles["driver"].closed
        assert ("close", "driver") in events
        assert registry.active_count() == 0

    def test_failure_callback_invoked(self, make_provider, make_context) -> None:
        """on_release_failure receives each release error."""
        callback = MagicMock()
        registry = ResourceRegistry(
            [make_provider("browser", fail_close=True)], on_release_failure=callback
        )
        registry.acquire("worker-1", ResourceProfile.of("browser"), make_context())

        registry.release("worker-1")

        callback.assert_called_once()
        assert isinstance(callback.call_args[0][0], ResourceReleaseError)

    def test_failing_callback_is_contained(self, make_provider, make_context) -> None:
        """A raising callback never escapes release()."""
        registry = ResourceRegistry(
            [make_provider("browser", fail_close=True)],
            on_release_failure=MagicMock(side_effect=ValueError("boom")),
        )
        registry.acquire("worker-1", ResourceProfile.of("browser"), make_context())

        errors = registry.release("worker-1")

        assert len(errors) == 1

    def test_context_handles_cleared(self, registry, make_context) -> None:
        """After release the context no longer references the handles."""
        ctx = make_context()
        registry.acquire("worker-1", ResourceProfile.of("browser"), ctx)

        registry.release("worker-1")

        assert ctx.handles is None

    def test_acquire_after_release_for_new_context(self, registry, make_context) -> None:
        """Release then acquire for another context works without leak errors."""
        registry.acquire("worker-1", ResourceProfile.of("page"), make_context(name="a"))
        registry.release("worker-1")

        handles = registry.acquire("worker-1", ResourceProfile.of("page"), make_context(name="b"))

        assert "page" in handles


class TestBulkRelease:
    """Tests for release_idle() and release_all()."""

    def test_release_idle_leaves_pending(self, registry, make_context) -> None:
        """Only entries whose context finished are released."""
        done = make_context(worker="w-done", name="done")
        running = make_context(worker="w-running", name="running")
        registry.acquire("w-done", ResourceProfile.of("page"), done)
        registry.acquire("w-running", ResourceProfile.of("page"), running)
        done.finish(Outcome.PASSED)

        released = registry.release_idle()

        assert released == 1
        assert registry.handles_for("w-done") is None
        assert registry.handles_for("w-running") is not None
        assert registry.active_count() == 1

    def test_release_all_releases_pending_too(self, registry, make_context) -> None:
        """Shutdown path releases everything unconditionally."""
        registry.acquire("w1", ResourceProfile.of("page"), make_context(worker="w1"))
        registry.acquire("w2", ResourceProfile.of("api"), make_context(worker="w2"))

        assert registry.release_all() == 2
        assert registry.active_count() == 0
        assert registry.handle_count() == 0

    def test_snapshot_active_lists_each_handle(self, registry, make_context) -> None:
        """snapshot_active exposes (worker, kind, test key, pending) without handles."""
        registry.acquire("w1", ResourceProfile.of("browser"), make_context(worker="w1", name="t"))

        active = registry.snapshot_active()

        assert active == [
            ActiveResource(worker="w1", kind="driver", test_key="suite.t", pending=True),
            ActiveResource(worker="w1", kind="browser", test_key="suite.t", pending=True),
        ]


# =============================================================================
# Test: concurrency
# =============================================================================


class TestWorkerIsolation:
    """Concurrent workers never observe each other's handles."""

    def test_concurrent_workers_get_distinct_handles(self, registry, make_context) -> None:
        """N threads acquire, check ownership and release concurrently."""
        worker_count = 16
        rounds = 20
        barrier = threading.Barrier(worker_count)
        failures: list[str] = []

        def work(index: int) -> None:
            worker = f"worker-{index}"
            barrier.wait()
            for round_no in range(rounds):
                ctx = make_context(worker=worker, name=f"t{round_no}")
                handles = registry.acquire(worker, ResourceProfile.of("page"), ctx)
                page = handles["page"]
                if registry.handles_for(worker) is not handles:
                    failures.append(f"{worker} saw a foreign handle set")
                if page.opened_on != threading.current_thread().name:
                    failures.append(f"{worker} got a page opened on another thread")
                ctx.finish(Outcome.PASSED)
                registry.release(worker)
                if not page.closed:
                    failures.append(f"{worker} page not closed")

        threads = [
            threading.Thread(target=work, args=(i,), name=f"t-{i}") for i in range(worker_count)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert failures == []
        assert registry.active_count() == 0
        assert registry.handle_count() == 0
