"""Abstract base class for resource providers.

A provider knows how to open and close one kind of external resource.
Providers may depend on other kinds: a "page" needs a "context", which
needs a "browser". The registry opens dependencies first and passes them
to open() by kind.

Example:
    >>> class TempDirProvider(ResourceProvider):
    ...     @property
    ...     def kind(self) -> str:
    ...         return "tmpdir"
    ...
    ...     def open(self, profile, dependencies):
    ...         return tempfile.mkdtemp()
    ...
    ...     def close(self, resource):
    ...         shutil.rmtree(resource, ignore_errors=True)

"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from testgrid.resources.handles import ResourceProfile

__all__ = ["ResourceProvider"]


class ResourceProvider(ABC):
    """Contract for opening and closing one kind of resource."""

    @property
    @abstractmethod
    def kind(self) -> str:
        """Unique kind name, e.g. "browser"."""
        ...

    @property
    def requires(self) -> tuple[str, ...]:
        """Kinds that must be opened before this one."""
        return ()

    @abstractmethod
    def open(self, profile: ResourceProfile, dependencies: Mapping[str, Any]) -> Any:
        """Open a new resource.

        Args:
            profile: The requesting test's profile (options live here).
            dependencies: Already-opened resources keyed by kind, covering
                every kind listed in ``requires``.

        Returns:
            The resource object. The registry wraps it in a ResourceHandle.

        """
        ...

    @abstractmethod
    def close(self, resource: Any) -> None:
        """Close a resource returned by open(). May raise; the registry logs it."""
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r})"
