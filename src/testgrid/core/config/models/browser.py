"""Resource provider configuration models (Browser, API)."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

BrowserName = Literal["chromium", "firefox", "webkit", "chrome", "msedge"]


class BrowserConfig(BaseModel):
    """Browser session configuration for the Playwright providers.

    Attributes:
        browser: Browser engine or branded channel.
        headless: Run without a visible window.
        slow_mo: Delay between Playwright operations (ms).
        devtools: Open devtools (Chromium only).
        viewport: Viewport size as WIDTHxHEIGHT.
        timeout: Default page timeout (ms).
        args: Extra browser launch arguments.
        tracing: Record a Playwright trace per context.
        trace_dir: Directory for trace archives.
        video_dir: Directory for recorded videos (None = no recording).

    """

    model_config = ConfigDict(frozen=True)

    browser: BrowserName = Field(default="chromium")
    headless: bool = Field(default=True)
    slow_mo: int = Field(default=0, ge=0, description="Slow-motion delay in ms")
    devtools: bool = Field(default=False)
    viewport: str = Field(default="1280x720", description="Viewport size as WIDTHxHEIGHT")
    timeout: int = Field(default=30_000, ge=0, description="Default page timeout in ms")
    args: list[str] = Field(default_factory=list)
    tracing: bool = Field(default=False)
    trace_dir: str = Field(default="traces")
    video_dir: str | None = Field(default=None)

    @field_validator("viewport")
    @classmethod
    def _check_viewport(cls, value: str) -> str:
        parts = value.lower().split("x")
        if len(parts) != 2 or not all(p.strip().isdigit() for p in parts):
            raise ValueError(f"viewport must look like 1280x720, got {value!r}")
        return value

    def viewport_size(self) -> dict[str, int]:
        """Viewport as a Playwright size mapping."""
        width, height = (int(p) for p in self.viewport.lower().split("x"))
        return {"width": width, "height": height}


class ApiConfig(BaseModel):
    """HTTP request context configuration.

    Attributes:
        base_url: Base URL prepended to relative request paths.
        timeout: Request timeout (ms).
        headers: Extra headers sent with every request.
        ignore_https_errors: Accept invalid TLS certificates.

    """

    model_config = ConfigDict(frozen=True)

    base_url: str | None = Field(default=None)
    timeout: int = Field(default=30_000, ge=0, description="Request timeout in ms")
    headers: dict[str, str] = Field(default_factory=dict)
    ignore_https_errors: bool = Field(default=False)
