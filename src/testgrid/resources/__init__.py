"""Per-worker resource lifecycle: handles, providers and the registry."""

from testgrid.resources.handles import HandleSet, ResourceHandle, ResourceProfile
from testgrid.resources.providers import ResourceProvider, default_providers
from testgrid.resources.registry import ActiveResource, ResourceRegistry

__all__ = [
    "ActiveResource",
    "HandleSet",
    "ResourceHandle",
    "ResourceProfile",
    "ResourceProvider",
    "ResourceRegistry",
    "default_providers",
]
