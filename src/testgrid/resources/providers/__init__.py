"""Resource providers: the contract and the Playwright implementations."""

from __future__ import annotations

from typing import TYPE_CHECKING

from testgrid.resources.providers.base import ResourceProvider
from testgrid.resources.providers.playwright import (
    ApiRequestProvider,
    BrowserContextProvider,
    BrowserProvider,
    PageProvider,
    PlaywrightDriverProvider,
)

if TYPE_CHECKING:
    from testgrid.core.config.models import Config

__all__ = [
    "ApiRequestProvider",
    "BrowserContextProvider",
    "BrowserProvider",
    "PageProvider",
    "PlaywrightDriverProvider",
    "ResourceProvider",
    "default_providers",
]


def default_providers(config: Config) -> list[ResourceProvider]:
    """Build the Playwright provider chain from configuration."""
    return [
        PlaywrightDriverProvider(),
        BrowserProvider(config.browser),
        BrowserContextProvider(config.browser),
        PageProvider(config.browser),
        ApiRequestProvider(config.api),
    ]
