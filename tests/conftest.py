"""Pytest configuration and shared fixtures for the ScrapeTrail test suite.

Shared fixtures and fakes. Every test runs with:
- No external network requests and no real browser (Playwright is mocked)
- No waiting: every settle and scroll delay is configured to zero
- Isolated state (fresh config singleton and tmp_path directories per test)

Design Rationale:
    Orchestrator tests drive the real pipeline against FakeBrowser and
    FakeExtractor, which record every call. Browser tests use the
    Playwright mock chain so BrowserManager is exercised for real.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, AsyncIterator, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
from pytest_mock import MockerFixture

from config.settings import GlobalConfig
from src.exceptions import BrowserInitializationError, NavigationError
from src.models import (
    ClickableImage,
    Delays,
    PageSnapshot,
    ScrapeConfig,
    ScrapeSession,
    SessionStatus,
)
from src.session_store import SessionStore


@pytest.fixture
def mock_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> GlobalConfig:
    """GlobalConfig rooted in tmp_path with every delay set to zero.

    The get_config() cache is cleared on entry and exit.
    """
    from config.settings import get_config

    get_config.cache_clear()

    log_dir = tmp_path / "logs"
    output_dir = tmp_path / "output"
    screenshot_dir = tmp_path / "screenshots"
    log_dir.mkdir()
    output_dir.mkdir()
    screenshot_dir.mkdir()

    test_env = {
        "APP_NAME": "ScrapeTrail-Test",
        "ENVIRONMENT": "test",
        "DEBUG": "false",
        "HEADLESS": "true",
        "LOG_LEVEL": "DEBUG",
        "LOG_DIR": str(log_dir),
        "LOG_ROTATION": "1 day",
        "LOG_RETENTION": "1 day",
        "OUTPUT_DIR": str(output_dir),
        "SCREENSHOT_DIR": str(screenshot_dir),
        "PAGE_LOAD_DELAY_MS": "0",
        "AFTER_SCROLL_DELAY_MS": "0",
        "BEFORE_SCREENSHOT_DELAY_MS": "0",
        "BEFORE_CLOSE_DELAY_MS": "0",
        "BETWEEN_ACTIONS_DELAY_MS": "0",
        "SCROLL_INTERVAL_MS": "0",
        "NAVIGATION_TIMEOUT_MS": "120000",
        "IMAGE_NAVIGATION_TIMEOUT_MS": "30000",
        "CONTACT_NAVIGATION_TIMEOUT_MS": "60000",
    }

    for key, value in test_env.items():
        monkeypatch.setenv(key, value)

    config = get_config()

    yield config

    get_config.cache_clear()


def make_snapshot(url: str = "https://example.test/", **overrides: Any) -> PageSnapshot:
    """Build a PageSnapshot with realistic defaults."""
    data: dict[str, Any] = {
        "title": "Example Domain",
        "url": url,
        "heading": "Welcome",
        "sections": ["Products", "News"],
        "links": [{"text": "Home", "url": "https://example.test/"}],
        "images": [{"src": "https://example.test/logo.png", "alt": "Logo"}],
        "adMarkers": {"iframeCount": 0, "adSlotCount": 1},
    }
    data.update(overrides)
    return PageSnapshot.model_validate(data)


def make_scrape_config(
    url: str = "https://example.test",
    click_images: bool = True,
    visit_contact: bool = False,
    max_images: int = 5,
) -> ScrapeConfig:
    return ScrapeConfig(
        url=url,
        click_images=click_images,
        visit_contact=visit_contact,
        max_images=max_images,
        delays=Delays(
            page_load=0, after_scroll=0, before_screenshot=0, before_close=0, between_actions=0
        ),
    )


class FrozenClock:
    """Manually advanced clock returning seconds since the epoch."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def finish(store: SessionStore, session_id: str, clock: FrozenClock) -> None:
    """Mark a stored session completed at the clock's current time."""

    def apply(session: ScrapeSession) -> None:
        session.status = SessionStatus.COMPLETED
        session.end_time = datetime.fromtimestamp(clock(), UTC)

    store.mutate(session_id, apply)


class FakePage:
    """Stand-in for a Playwright tab."""

    def __init__(self, number: int) -> None:
        self.number = number
        self.url = "about:blank"
        self.closed = False


class FakeBrowser:
    """Records the BrowserManager calls the pipeline makes.

    Attributes:
        fail_urls: Navigations to these URLs raise NavigationError.
        fail_on_init: Entering the factory raises BrowserInitializationError.
        fail_on_release: Leaving the factory raises RuntimeError.
    """

    def __init__(
        self,
        fail_urls: set[str] | None = None,
        fail_on_init: bool = False,
        fail_on_release: bool = False,
    ) -> None:
        self.fail_urls = fail_urls or set()
        self.fail_on_init = fail_on_init
        self.fail_on_release = fail_on_release
        self.pages: list[FakePage] = []
        self.navigations: list[tuple[str, int]] = []
        self.screenshots: list[str] = []
        self.release_count = 0

    async def new_page(self) -> FakePage:
        page = FakePage(len(self.pages))
        self.pages.append(page)
        return page

    async def close_page(self, page: FakePage) -> None:
        page.closed = True

    async def navigate(self, page: FakePage, url: str, timeout_ms: int) -> None:
        self.navigations.append((url, timeout_ms))
        if url in self.fail_urls:
            raise NavigationError(url=url, reason="net::ERR_CONNECTION_REFUSED")
        page.url = url

    async def auto_scroll(self, page: FakePage) -> int:
        return 3

    async def scroll_to_top(self, page: FakePage) -> None:
        return None

    async def screenshot(self, page: FakePage, path: Path) -> Path:
        self.screenshots.append(path.name)
        return path

    async def content(self, page: FakePage) -> str:
        return f"<html><body><h1>{page.url}</h1></body></html>"

    @property
    def open_pages(self) -> list[FakePage]:
        return [page for page in self.pages if not page.closed]

    def factory(self) -> Callable[[GlobalConfig], Any]:
        @asynccontextmanager
        async def _create(settings: GlobalConfig) -> AsyncIterator["FakeBrowser"]:
            try:
                if self.fail_on_init:
                    raise BrowserInitializationError(reason="Executable doesn't exist")
                yield self
            finally:
                self.release_count += 1
                if self.fail_on_release:
                    raise RuntimeError("Target closed")

        return _create


class FakeExtractor:
    """PageDataExtractor double with a configurable homepage."""

    def __init__(self, image_count: int = 5, contact_link: str | None = None) -> None:
        self.image_count = image_count
        self.contact_link = contact_link
        self.requested_limits: list[int] = []

    async def extract(self, page: FakePage) -> PageSnapshot:
        return make_snapshot(url=page.url, title=f"Title of {page.url}")

    async def find_clickable_images(self, page: FakePage, limit: int) -> list[ClickableImage]:
        self.requested_limits.append(limit)
        images = [
            ClickableImage(
                index=position * 2,
                src=f"https://example.test/img/{position}.jpg",
                alt=f"Image {position}",
                link_href=f"https://example.test/item/{position}",
            )
            for position in range(1, self.image_count + 1)
        ]
        return images[:limit]

    async def find_contact_link(self, page: FakePage) -> str | None:
        return self.contact_link


class RecordingStore(SessionStore):
    """SessionStore that records (status, progress) after every mutation."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.history: list[tuple[str, float]] = []

    def mutate(self, session_id: str, fn: Callable[[ScrapeSession], None]) -> ScrapeSession:
        session = super().mutate(session_id, fn)
        self.history.append((session.status.value, session.progress))
        return session


@pytest.fixture
def fake_browser() -> FakeBrowser:
    return FakeBrowser()


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def recording_store() -> RecordingStore:
    return RecordingStore()


def create_playwright_mock() -> tuple[MagicMock, MagicMock, MagicMock, MagicMock]:
    """Create the mock chain behind ``async_playwright().start()``.

    Returns:
        Tuple of (async_playwright_instance, playwright_mock, browser_mock, context_mock)
    """
    context_mock = MagicMock()
    context_mock.add_init_script = AsyncMock()
    context_mock.new_page = AsyncMock(side_effect=lambda: create_page_mock())
    context_mock.close = AsyncMock()

    browser_mock = MagicMock()
    browser_mock.new_context = AsyncMock(return_value=context_mock)
    browser_mock.close = AsyncMock()

    playwright_mock = MagicMock()
    playwright_mock.chromium.launch = AsyncMock(return_value=browser_mock)
    playwright_mock.stop = AsyncMock()

    async_playwright_instance = MagicMock()
    async_playwright_instance.start = AsyncMock(return_value=playwright_mock)

    return async_playwright_instance, playwright_mock, browser_mock, context_mock


def create_page_mock() -> MagicMock:
    """Create a Playwright Page mock with async operations."""
    page = MagicMock()
    page.url = "https://example.test/"
    page.goto = AsyncMock(return_value=MagicMock(status=200))
    page.evaluate = AsyncMock()
    page.screenshot = AsyncMock()
    page.content = AsyncMock(return_value="<html></html>")
    page.set_viewport_size = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.close = AsyncMock()
    return page


@pytest.fixture
def playwright_mocks(mocker: MockerFixture) -> tuple[MagicMock, MagicMock, MagicMock, MagicMock]:
    """Patch ``src.browser.async_playwright`` with the mock chain."""
    mocks = create_playwright_mock()
    mocker.patch("src.browser.async_playwright", return_value=mocks[0])
    return mocks


def pytest_configure(config: Any) -> None:
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests requiring full stack",
    )
