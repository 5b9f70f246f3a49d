"""Playwright sync-API resource providers.

Kinds and their dependencies:

    playwright            driver process
    browser  -> playwright
    context  -> browser   isolated cookies/storage, optional video and tracing
    page     -> context
    api      -> playwright  APIRequestContext for HTTP tests

Playwright's sync API is bound to the thread that started it, so every
worker opens its own driver. Handles are released on the same worker by
ExecutionCoordinator after each attempt.

Profile options (ResourceProfile.options) override configuration per test:
``headless``, ``viewport`` (``{"width": .., "height": ..}``), ``base_url``,
``extra_http_headers``, ``storage_state``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from testgrid.resources.providers.base import ResourceProvider

if TYPE_CHECKING:
    from testgrid.core.config.models import ApiConfig, BrowserConfig
    from testgrid.resources.handles import ResourceProfile

logger = logging.getLogger(__name__)

__all__ = [
    "ApiRequestProvider",
    "BrowserContextProvider",
    "BrowserProvider",
    "PageProvider",
    "PlaywrightDriverProvider",
]

# Branded channels are launched through the chromium engine
_CHANNEL_BROWSERS = {"chrome": "chrome", "msedge": "msedge"}


class PlaywrightDriverProvider(ResourceProvider):
    """Starts and stops the Playwright driver for one worker."""

    @property
    def kind(self) -> str:
        return "playwright"

    def open(self, profile: ResourceProfile, dependencies: Mapping[str, Any]) -> Any:
        from playwright.sync_api import sync_playwright

        return sync_playwright().start()

    def close(self, resource: Any) -> None:
        resource.stop()


class BrowserProvider(ResourceProvider):
    """Launches a browser according to BrowserConfig."""

    def __init__(self, config: BrowserConfig) -> None:
        self._config = config

    @property
    def kind(self) -> str:
        return "browser"

    @property
    def requires(self) -> tuple[str, ...]:
        return ("playwright",)

    def open(self, profile: ResourceProfile, dependencies: Mapping[str, Any]) -> Any:
        playwright = dependencies["playwright"]
        name = self._config.browser
        launch_kwargs: dict[str, Any] = {
            "headless": profile.options.get("headless", self._config.headless),
            "slow_mo": self._config.slow_mo,
            "args": list(self._config.args),
        }
        if name in _CHANNEL_BROWSERS:
            launch_kwargs["channel"] = _CHANNEL_BROWSERS[name]
            engine = playwright.chromium
        else:
            engine = getattr(playwright, name)
        if self._config.devtools and engine is playwright.chromium:
            launch_kwargs["devtools"] = True

        logger.debug("Launching %s (headless=%s)", name, launch_kwargs["headless"])
        return engine.launch(**launch_kwargs)

    def close(self, resource: Any) -> None:
        resource.close()


class BrowserContextProvider(ResourceProvider):
    """Creates an isolated browser context, optionally recording a trace."""

    def __init__(self, config: BrowserConfig) -> None:
        self._config = config

    @property
    def kind(self) -> str:
        return "context"

    @property
    def requires(self) -> tuple[str, ...]:
        return ("browser",)

    def open(self, profile: ResourceProfile, dependencies: Mapping[str, Any]) -> Any:
        options = profile.options
        context_kwargs: dict[str, Any] = {
            "viewport": options.get("viewport", self._config.viewport_size()),
        }
        for key in ("base_url", "storage_state", "extra_http_headers"):
            if key in options:
                context_kwargs[key] = options[key]
        if self._config.video_dir:
            context_kwargs["record_video_dir"] = self._config.video_dir

        context = dependencies["browser"].new_context(**context_kwargs)
        context.set_default_timeout(self._config.timeout)
        if self._config.tracing:
            context.tracing.start(screenshots=True, snapshots=True, sources=True)
        return context

    def close(self, resource: Any) -> None:
        if self._config.tracing:
            trace_dir = Path(self._config.trace_dir)
            trace_dir.mkdir(parents=True, exist_ok=True)
            trace_path = trace_dir / f"trace-{time.time_ns()}.zip"
            try:
                resource.tracing.stop(path=str(trace_path))
                logger.debug("Trace saved to %s", trace_path)
            except Exception as e:
                logger.warning("Failed to save trace %s: %s", trace_path, e)
        resource.close()


class PageProvider(ResourceProvider):
    """Opens a page in the worker's browser context."""

    def __init__(self, config: BrowserConfig) -> None:
        self._config = config

    @property
    def kind(self) -> str:
        return "page"

    @property
    def requires(self) -> tuple[str, ...]:
        return ("context",)

    def open(self, profile: ResourceProfile, dependencies: Mapping[str, Any]) -> Any:
        page = dependencies["context"].new_page()
        page.set_default_timeout(self._config.timeout)
        return page

    def close(self, resource: Any) -> None:
        if not resource.is_closed():
            resource.close()


class ApiRequestProvider(ResourceProvider):
    """Creates a Playwright APIRequestContext for HTTP tests."""

    def __init__(self, config: ApiConfig) -> None:
        self._config = config

    @property
    def kind(self) -> str:
        return "api"

    @property
    def requires(self) -> tuple[str, ...]:
        return ("playwright",)

    def open(self, profile: ResourceProfile, dependencies: Mapping[str, Any]) -> Any:
        options = profile.options
        headers = {**self._config.headers, **options.get("extra_http_headers", {})}
        return dependencies["playwright"].request.new_context(
            base_url=options.get("base_url", self._config.base_url),
            extra_http_headers=headers or None,
            timeout=self._config.timeout,
            ignore_https_errors=self._config.ignore_https_errors,
        )

    def close(self, resource: Any) -> None:
        resource.dispose()
