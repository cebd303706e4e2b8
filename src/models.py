"""Pydantic schemas for scrape requests, sessions and results.

This module implements:
- ScrapeConfig / Delays: the immutable per-session configuration
- ScrapeSession / LogEntry: the mutable state a poller observes
- PageSnapshot / ScrapeResult / FileManifest: the produced data

All wire-facing models serialize with camelCase aliases so JSON artifacts
and API responses keep the field names observers expect
(``clickedImages``, ``linkHref``, ``adMarkers`` ...), while Python code uses
snake_case attributes.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from config.settings import GlobalConfig, get_config


class CamelModel(BaseModel):
    """Base model serializing to camelCase and accepting either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Dump to a JSON-compatible dict using wire (camelCase) names."""
        return self.model_dump(mode="json", by_alias=True)


class SessionStatus(str, Enum):
    """Pipeline stages, in the order a session passes through them."""

    STARTING = "starting"
    INITIALIZING = "initializing"
    LOADING_PAGE = "loading_page"
    WAITING_CONTENT = "waiting_content"
    SCROLLING = "scrolling"
    SCREENSHOT_HOMEPAGE = "screenshot_homepage"
    CLICKING_IMAGES = "clicking_images"
    VISITING_CONTACT = "visiting_contact"
    SAVING_RESULTS = "saving_results"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.ERROR)


Severity = Literal["info", "warning", "error"]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class Delays(CamelModel):
    """Settle and pacing delays for one session, in milliseconds."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    page_load: int = Field(..., ge=0)
    after_scroll: int = Field(..., ge=0)
    before_screenshot: int = Field(..., ge=0)
    before_close: int = Field(..., ge=0)
    between_actions: int = Field(..., ge=0)

    @classmethod
    def from_settings(cls, settings: GlobalConfig) -> "Delays":
        """Build the server-trusted default delay set."""
        return cls(
            page_load=settings.page_load_delay_ms,
            after_scroll=settings.after_scroll_delay_ms,
            before_screenshot=settings.before_screenshot_delay_ms,
            before_close=settings.before_close_delay_ms,
            between_actions=settings.between_actions_delay_ms,
        )


class ScrapeOptions(CamelModel):
    """Caller-supplied options; every field is optional.

    Missing fields fall back to GlobalConfig defaults. An explicit ``0``
    delay is honoured rather than replaced by the default.
    """

    click_images: bool | None = None
    visit_contact: bool | None = None
    max_images: int | None = Field(default=None, ge=1)
    page_load_delay: int | None = Field(default=None, ge=0)
    after_scroll_delay: int | None = Field(default=None, ge=0)
    before_screenshot_delay: int | None = Field(default=None, ge=0)
    before_close_delay: int | None = Field(default=None, ge=0)
    between_actions_delay: int | None = Field(default=None, ge=0)


class ScrapeConfig(CamelModel):
    """Immutable configuration of one scrape session.

    Attributes:
        url: Seed page; must use http or https.
        click_images: Follow anchor-wrapped images into secondary tabs.
        visit_contact: Look for and capture a contact/about page.
        max_images: Upper bound on followed images.
        delays: Settle and pacing delays.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    url: str
    click_images: bool = True
    visit_contact: bool = True
    max_images: int = Field(default=5, ge=1)
    delays: Delays

    @field_validator("url")
    @classmethod
    def validate_scheme(cls, value: str) -> str:
        """Reject anything that is not an absolute http(s) URL."""
        value = value.strip()
        parsed = urlparse(value)
        if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
            raise ValueError("Only http and https URLs are supported")
        return value

    @classmethod
    def from_request(
        cls,
        url: str,
        options: ScrapeOptions | None = None,
        settings: GlobalConfig | None = None,
    ) -> "ScrapeConfig":
        """Merge caller options over server defaults.

        Args:
            url: Target URL from the request.
            options: Optional caller overrides.
            settings: Optional GlobalConfig. Uses singleton if not provided.

        Raises:
            pydantic.ValidationError: If the URL or any override is invalid.
        """
        settings = settings or get_config()
        options = options or ScrapeOptions()
        defaults = Delays.from_settings(settings)

        def pick(override: Any, default: Any) -> Any:
            return default if override is None else override

        return cls(
            url=url,
            click_images=pick(options.click_images, True),
            visit_contact=pick(options.visit_contact, True),
            max_images=pick(options.max_images, settings.default_max_images),
            delays=Delays(
                page_load=pick(options.page_load_delay, defaults.page_load),
                after_scroll=pick(options.after_scroll_delay, defaults.after_scroll),
                before_screenshot=pick(
                    options.before_screenshot_delay, defaults.before_screenshot
                ),
                before_close=pick(options.before_close_delay, defaults.before_close),
                between_actions=pick(options.between_actions_delay, defaults.between_actions),
            ),
        )


# ---------------------------------------------------------------------------
# Extracted data
# ---------------------------------------------------------------------------


class Link(CamelModel):
    text: str
    url: str


class Image(CamelModel):
    src: str
    alt: str = ""


class AdMarkers(CamelModel):
    iframe_count: int = Field(default=0, ge=0)
    ad_slot_count: int = Field(default=0, ge=0)


class PageSnapshot(CamelModel):
    """Structured data extracted from a loaded page's rendered DOM."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    title: str = ""
    url: str
    heading: str = ""
    sections: list[str] = Field(default_factory=list)
    links: list[Link] = Field(default_factory=list)
    images: list[Image] = Field(default_factory=list)
    ad_markers: AdMarkers = Field(default_factory=AdMarkers)


class ClickableImage(CamelModel):
    """An anchor-wrapped image discovered on the homepage."""

    index: int
    src: str
    alt: str
    link_href: str


class ClickedImage(ClickableImage):
    screenshot: str


class ContactPage(CamelModel):
    url: str
    data: PageSnapshot
    screenshot: str


class ScrapeResult(CamelModel):
    """Aggregate result of a completed session."""

    homepage: PageSnapshot
    screenshots: list[str] = Field(default_factory=list)
    clicked_images: list[ClickedImage] = Field(default_factory=list)
    contact_page: ContactPage | None = None


class FileManifest(CamelModel):
    """Public locations of every artifact a session produced."""

    screenshots: list[str]
    json_file: str = Field(alias="json")
    report: str
    html: str


# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------


class LogEntry(CamelModel):
    time: datetime
    type: Severity
    message: str


class ScrapeSession(CamelModel):
    """Mutable state of one scrape request.

    Written only by the orchestrator that owns it; read concurrently by
    status queries.
    """

    id: str
    config: ScrapeConfig
    status: SessionStatus = SessionStatus.STARTING
    progress: float = Field(default=0, ge=0, le=100)
    logs: list[LogEntry] = Field(default_factory=list)
    error: str | None = None
    files: FileManifest | None = None
    results: ScrapeResult | None = None
    start_time: datetime = Field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None

    def status_view(self, log_window: int | None = None) -> dict[str, Any]:
        """Snapshot returned to pollers.

        Args:
            log_window: Return only the last N log entries (all if None).
        """
        logs = self.logs if log_window is None else self.logs[-log_window:]
        return {
            "sessionId": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "logs": [entry.to_wire() for entry in logs],
            "error": self.error,
            "files": self.files.to_wire() if self.files else None,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat() if self.end_time else None,
        }
