"""Resource handles and the per-worker handle set."""

from __future__ import annotations

import itertools
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from testgrid.core.types import WorkerId

__all__ = ["HandleSet", "ResourceHandle", "ResourceProfile"]

_handle_ids = itertools.count(1)


@dataclass(frozen=True)
class ResourceProfile:
    """Which resource kinds a test needs, plus provider options.

    Attributes:
        kinds: Resource kinds to acquire (e.g. ("page", "api")). Dependencies
            declared by providers are added automatically.
        options: Per-test provider options, passed to ResourceProvider.open().

    Example:
        >>> ResourceProfile.of("page").kinds
        ('page',)

    """

    kinds: tuple[str, ...] = ()
    options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def of(cls, *kinds: str, **options: Any) -> ResourceProfile:
        return cls(kinds=tuple(kinds), options=MappingProxyType(dict(options)))

    @property
    def is_empty(self) -> bool:
        return not self.kinds


@dataclass(frozen=True)
class ResourceHandle:
    """Opaque capability wrapping one externally provisioned resource."""

    kind: str
    resource: Any
    worker: WorkerId
    handle_id: int = field(default_factory=lambda: next(_handle_ids))
    opened_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __repr__(self) -> str:
        return f"ResourceHandle(kind={self.kind!r}, worker={self.worker!r}, id={self.handle_id})"


@dataclass(frozen=True)
class HandleSet:
    """Handles owned by one worker, in opening order.

    Release walks the set in reverse, so dependents close before parents.
    """

    worker: WorkerId
    handles: tuple[ResourceHandle, ...] = ()

    def get(self, kind: str) -> Any:
        """Return the resource of the given kind.

        Raises:
            KeyError: If no handle of that kind is bound.

        """
        for handle in self.handles:
            if handle.kind == kind:
                return handle.resource
        raise KeyError(f"No {kind!r} resource bound for worker {self.worker}")

    def __getitem__(self, kind: str) -> Any:
        return self.get(kind)

    def __contains__(self, kind: object) -> bool:
        return any(h.kind == kind for h in self.handles)

    def __iter__(self) -> Iterator[ResourceHandle]:
        return iter(self.handles)

    def __len__(self) -> int:
        return len(self.handles)

    @property
    def kinds(self) -> tuple[str, ...]:
        return tuple(h.kind for h in self.handles)
