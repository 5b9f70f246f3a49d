"""Per-worker resource registry.

The registry maps each worker to the handle set it currently owns. All
structural changes happen under one lock, while provider I/O (open/close)
runs outside it so a slow browser launch on one worker never blocks
another worker's release.

Ownership rules:
    - A worker owns at most one handle set at a time, bound to exactly one
      ExecutionContext.
    - acquire() for the same context is idempotent. acquire() for another
      context before release() raises ResourceLeakError.
    - release() never raises. Each handle is closed independently, in
      reverse opening order, and failures are returned to the caller.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from testgrid.core.exceptions import (
    ResourceAcquisitionError,
    ResourceLeakError,
    ResourceReleaseError,
)
from testgrid.core.types import WorkerId
from testgrid.resources.handles import HandleSet, ResourceHandle, ResourceProfile

if TYPE_CHECKING:
    from testgrid.core.context import ExecutionContext
    from testgrid.resources.providers.base import ResourceProvider

logger = logging.getLogger(__name__)

__all__ = ["ActiveResource", "ResourceRegistry"]

ReleaseFailureCallback = Callable[[ResourceReleaseError], None]


@dataclass(frozen=True)
class ActiveResource:
    """Read-only view of one registered handle, used for sweeps and reports."""

    worker: WorkerId
    kind: str
    test_key: str
    pending: bool


@dataclass
class _Entry:
    context: ExecutionContext
    handles: HandleSet


class ResourceRegistry:
    """Creates, tracks and tears down per-worker resource handles.

    Args:
        providers: One provider per resource kind.
        on_release_failure: Called with every ResourceReleaseError, e.g. to
            forward it to the metrics warning channel.

    Example:
        >>> registry = ResourceRegistry([TempDirProvider()])
        >>> handles = registry.acquire(worker, ResourceProfile.of("tmpdir"), ctx)
        >>> handles["tmpdir"]
        '/tmp/tmpa1b2c3'
        >>> registry.release(worker)
        []

    """

    def __init__(
        self,
        providers: Iterable[ResourceProvider] = (),
        *,
        on_release_failure: ReleaseFailureCallback | None = None,
    ) -> None:
        self._providers: dict[str, ResourceProvider] = {}
        for provider in providers:
            self.register_provider(provider)
        self._entries: dict[WorkerId, _Entry] = {}
        self._lock = threading.Lock()
        self.on_release_failure = on_release_failure

    # =========================================================================
    # Providers
    # =========================================================================

    def register_provider(self, provider: ResourceProvider) -> None:
        """Register a provider. A later provider replaces an earlier one of the same kind."""
        if provider.kind in self._providers:
            logger.debug("Replacing provider for kind %r", provider.kind)
        self._providers[provider.kind] = provider

    @property
    def kinds(self) -> tuple[str, ...]:
        return tuple(self._providers)

    def _resolve_order(self, kinds: Iterable[str]) -> list[str]:
        """Expand requested kinds with their dependencies, parents first."""
        order: list[str] = []
        visiting: set[str] = set()

        def visit(kind: str) -> None:
            if kind in order:
                return
            if kind in visiting:
                raise ResourceAcquisitionError(
                    f"Dependency cycle at resource kind {kind!r}", kind=kind
                )
            provider = self._providers.get(kind)
            if provider is None:
                raise ResourceAcquisitionError(
                    f"No provider registered for kind {kind!r}", kind=kind
                )
            visiting.add(kind)
            for dependency in provider.requires:
                visit(dependency)
            visiting.discard(kind)
            order.append(kind)

        for kind in kinds:
            visit(kind)
        return order

    # =========================================================================
    # Acquire / release
    # =========================================================================

    def acquire(
        self,
        worker: WorkerId,
        profile: ResourceProfile,
        context: ExecutionContext,
    ) -> HandleSet:
        """Open and bind a handle set for the worker.

        Returns the already-bound set if this context acquired before.

        Raises:
            ResourceLeakError: The worker still holds handles bound to a
                different context.
            ResourceAcquisitionError: A provider failed to open. Handles opened
                before the failure are closed again.

        """
        with self._lock:
            entry = self._entries.get(worker)
            if entry is not None:
                if entry.context is context:
                    return entry.handles
                raise ResourceLeakError(
                    f"Worker {worker} still holds {list(entry.handles.kinds)} for "
                    f"{entry.context.test_id.key}; release before acquiring for "
                    f"{context.test_id.key}",
                    worker=worker,
                )

        order = self._resolve_order(profile.kinds)
        opened: list[ResourceHandle] = []
        resources: dict[str, Any] = {}
        for kind in order:
            provider = self._providers[kind]
            dependencies = {dep: resources[dep] for dep in provider.requires}
            try:
                resource = provider.open(profile, dependencies)
            except Exception as e:
                logger.warning("Failed to open %s for worker %s: %s", kind, worker, e)
                self._close_handles(worker, opened)
                raise ResourceAcquisitionError(
                    f"Failed to open {kind} for {context.test_id.key}: {e}",
                    kind=kind,
                    worker=worker,
                ) from e
            resources[kind] = resource
            opened.append(ResourceHandle(kind=kind, resource=resource, worker=worker))

        handles = HandleSet(worker=worker, handles=tuple(opened))
        with self._lock:
            self._entries[worker] = _Entry(context=context, handles=handles)
        context.handles = handles
        logger.debug("Acquired %s for worker %s", list(handles.kinds) or "no resources", worker)
        return handles

    def release(self, worker: WorkerId) -> list[ResourceReleaseError]:
        """Tear down the worker's handles in reverse opening order.

        Unknown workers are a no-op. Never raises.

        Returns:
            One ResourceReleaseError per handle that failed to close.

        """
        with self._lock:
            entry = self._entries.pop(worker, None)
        if entry is None:
            return []
        return self._release_entry(worker, entry)

    def _release_entry(self, worker: WorkerId, entry: _Entry) -> list[ResourceReleaseError]:
        errors = self._close_handles(worker, list(entry.handles))
        if entry.context.handles is entry.handles:
            entry.context.handles = None
        logger.debug(
            "Released %d handle(s) for worker %s (%d failure(s))",
            len(entry.handles),
            worker,
            len(errors),
        )
        return errors

    def _close_handles(
        self, worker: WorkerId, handles: list[ResourceHandle]
    ) -> list[ResourceReleaseError]:
        errors: list[ResourceReleaseError] = []
        for handle in reversed(handles):
            try:
                self._providers[handle.kind].close(handle.resource)
            except Exception as e:
                error = ResourceReleaseError(
                    f"Failed to close {handle.kind} for worker {worker}: {e}",
                    kind=handle.kind,
                    worker=worker,
                )
                error.__cause__ = e
                logger.warning("%s", error)
                errors.append(error)
                self._notify_release_failure(error)
        return errors

    def _notify_release_failure(self, error: ResourceReleaseError) -> None:
        if self.on_release_failure is None:
            return
        try:
            self.on_release_failure(error)
        except Exception:
            logger.exception("Release failure callback raised")

    def release_idle(self) -> int:
        """Release every handle set whose context is no longer pending.

        Handles of pending contexts are never touched.

        Returns:
            Number of handle sets released.

        """
        with self._lock:
            idle = [(w, e) for w, e in self._entries.items() if not e.context.is_pending]
            for worker, _ in idle:
                del self._entries[worker]
        for worker, entry in idle:
            self._release_entry(worker, entry)
        if idle:
            logger.info("Released %d idle handle set(s)", len(idle))
        return len(idle)

    def release_all(self) -> int:
        """Release every registered handle set unconditionally."""
        with self._lock:
            entries = list(self._entries.items())
            self._entries.clear()
        for worker, entry in entries:
            self._release_entry(worker, entry)
        if entries:
            logger.info("Released all %d handle set(s)", len(entries))
        return len(entries)

    # =========================================================================
    # Introspection
    # =========================================================================

    def snapshot_active(self) -> list[ActiveResource]:
        """Point-in-time view of every registered handle."""
        with self._lock:
            entries = list(self._entries.items())
        return [
            ActiveResource(
                worker=worker,
                kind=handle.kind,
                test_key=entry.context.test_id.key,
                pending=entry.context.is_pending,
            )
            for worker, entry in entries
            for handle in entry.handles
        ]

    def handles_for(self, worker: WorkerId) -> HandleSet | None:
        with self._lock:
            entry = self._entries.get(worker)
        return entry.handles if entry is not None else None

    def active_count(self) -> int:
        """Number of workers currently holding a handle set."""
        with self._lock:
            return len(self._entries)

    def handle_count(self) -> int:
        with self._lock:
            return sum(len(entry.handles) for entry in self._entries.values())
