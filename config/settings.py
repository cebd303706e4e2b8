"""Process-wide ScrapeTrail settings, read from the environment and ``.env``.

Values defined here are server-trusted defaults. Per-session overrides
(delays, image limits, feature flags) arrive with each scrape request and
are folded into an immutable ScrapeConfig by src.models.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GlobalConfig(BaseSettings):
    """Settings bound to environment variables (case-insensitive, unknown keys ignored).

    Delays and timeouts are in milliseconds. The defaults suit a local run
    against a slow, ad-heavy page.

    Attributes:
        app_name: Application identifier for logging and telemetry.
        environment: Deployment environment.
        debug: Enable verbose debugging output.
        headless: Run Chromium without a visible window.
        viewport_width: Fixed viewport width for every tab.
        viewport_height: Fixed viewport height for every tab.
        user_agent: Request identity string applied to the browser context.
        navigation_timeout_ms: Timeout for the primary page navigation.
        image_navigation_timeout_ms: Timeout for clicked-image tabs.
        contact_navigation_timeout_ms: Timeout for the contact/about tab.
        scroll_step_px: Pixel distance scrolled per tick.
        scroll_interval_ms: Delay between scroll ticks.
        max_scroll_steps: Upper bound on scroll ticks for endless pages.
        page_load_delay_ms: Default settle delay after navigation.
        after_scroll_delay_ms: Default settle delay after scrolling.
        before_screenshot_delay_ms: Default settle delay before capture.
        before_close_delay_ms: Default delay before completing a session.
        between_actions_delay_ms: Default delay between clicked images.
        default_max_images: Default cap on clicked images per session.
        image_concurrency: Secondary tabs processed at once (1 = sequential).
        settle_strategy: How the pipeline waits for a page to render.
        session_ttl_seconds: Evict finished sessions older than this (None = never).
        max_sessions: Evict oldest finished sessions beyond this count (None = unbounded).
        screenshot_dir: Directory for captured screenshots.
        output_dir: Directory for JSON, report and markup artifacts.
        log_level: Minimum log level for output filtering.
        log_dir: Directory path for structured JSON log files.
        log_rotation: Log file rotation interval.
        log_retention: Log file retention period.
        host: Bind address for the HTTP API.
        port: Bind port for the HTTP API.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Metadata
    app_name: str = Field(default="ScrapeTrail", description="Application identifier")
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Browser Configuration
    headless: bool = Field(default=True, description="Run browser in headless mode")
    viewport_width: int = Field(default=1920, ge=320, le=7680, description="Viewport width")
    viewport_height: int = Field(default=1080, ge=240, le=4320, description="Viewport height")
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        min_length=1,
        description="Browser user-agent string",
    )
    navigation_timeout_ms: int = Field(
        default=120000, ge=1000, le=600000, description="Primary navigation timeout"
    )
    image_navigation_timeout_ms: int = Field(
        default=30000, ge=1000, le=600000, description="Clicked-image navigation timeout"
    )
    contact_navigation_timeout_ms: int = Field(
        default=60000, ge=1000, le=600000, description="Contact page navigation timeout"
    )
    scroll_step_px: int = Field(default=300, ge=1, description="Pixels per scroll tick")
    scroll_interval_ms: int = Field(default=500, ge=0, description="Delay between scroll ticks")
    max_scroll_steps: int = Field(
        default=500, ge=1, description="Scroll tick cap for infinitely growing pages"
    )

    # Default Delays (milliseconds, overridable per session)
    page_load_delay_ms: int = Field(default=15000, ge=0, description="Settle after load")
    after_scroll_delay_ms: int = Field(default=10000, ge=0, description="Settle after scroll")
    before_screenshot_delay_ms: int = Field(
        default=3000, ge=0, description="Settle before screenshot"
    )
    before_close_delay_ms: int = Field(default=5000, ge=0, description="Wait before close")
    between_actions_delay_ms: int = Field(
        default=2000, ge=0, description="Wait between secondary tabs"
    )

    # Exploration Policy
    default_max_images: int = Field(default=5, ge=1, le=100, description="Clicked image cap")
    image_concurrency: int = Field(
        default=1, ge=1, le=8, description="Concurrent secondary tabs"
    )
    settle_strategy: Literal["fixed", "network_idle"] = Field(
        default="fixed", description="Page settle policy"
    )

    # Session Store Policy
    session_ttl_seconds: float | None = Field(
        default=None, gt=0, description="Finished session time-to-live"
    )
    max_sessions: int | None = Field(default=None, ge=1, description="Session capacity")

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Minimum log level"
    )
    log_dir: Path = Field(default=Path("logs"), description="Log output directory")
    log_rotation: str = Field(default="1 week", description="Log rotation interval")
    log_retention: str = Field(default="1 month", description="Log retention period")

    # Output Configuration
    screenshot_dir: Path = Field(
        default=Path("screenshots"), description="Screenshot output directory"
    )
    output_dir: Path = Field(default=Path("output"), description="Artifact output directory")

    # HTTP API
    host: str = Field(default="0.0.0.0", description="API bind address")
    port: int = Field(default=3000, ge=1, le=65535, description="API bind port")

    @field_validator("log_dir", "output_dir", "screenshot_dir", mode="before")
    @classmethod
    def ensure_path(cls, value: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(value) if isinstance(value, str) else value


@lru_cache(maxsize=1)
def get_config() -> GlobalConfig:
    """Return the process-wide GlobalConfig, built on first call.

    Tests call ``get_config.cache_clear()`` after changing the environment.
    """
    return GlobalConfig()
