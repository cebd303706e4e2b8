"""Per-session Chromium handle.

Every scrape session launches its own driver, browser and context through
``BrowserManager.create()``; nothing here is shared between sessions. The
context carries the fixed viewport, the configured user agent and an init
script that hides the usual automation fingerprints. Tabs opened through
the manager are tracked so that ``release()`` can close whatever a failed
stage left behind before closing the context, the browser and the driver.
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Self

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from config.settings import GlobalConfig, get_config
from src.exceptions import BrowserInitializationError, NavigationError
from src.logger import get_logger

log = get_logger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
]

STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', {
    get: () => undefined,
});
Object.defineProperty(navigator, 'languages', {
    get: () => ['en-US', 'en'],
});
window.chrome = window.chrome || { runtime: {} };
"""

# Scrolls one step and reports the document height measured before the step.
SCROLL_STEP_JS = """
(distance) => {
    const scrollHeight = document.body ? document.body.scrollHeight : 0;
    window.scrollBy(0, distance);
    return scrollHeight;
}
"""

SCROLL_TOP_JS = "() => window.scrollTo(0, 0)"


class BrowserManager:
    """One session's driver, browser, context and open tabs.

    ``_pages`` holds the tabs opened through ``new_page()`` that have not
    been closed yet; ``release()`` closes them first.

    Example:
        async with BrowserManager.create(config) as browser:
            page = await browser.new_page()
            await browser.navigate(page, "https://example.com", timeout_ms=30000)
            await browser.screenshot(page, Path("shot.png"))
    """

    def __init__(self, config: GlobalConfig) -> None:
        # Use create(); a bare instance has no browser until _initialize().
        self.config = config
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._pages: list[Page] = []
        self._released = False

    @classmethod
    @asynccontextmanager
    async def create(
        cls, config: GlobalConfig | None = None
    ) -> AsyncGenerator[Self, None]:
        """Launch a browser for one session and release it on exit.

        Raises:
            BrowserInitializationError: If the driver, browser or context
                cannot be started. Whatever did start is released first.
        """
        if config is None:
            config = get_config()

        instance = cls(config)
        try:
            await instance._initialize()
            yield instance
        finally:
            await instance.release()

    async def _initialize(self) -> None:
        """Start Playwright, launch Chromium and create the stealth context.

        Raises:
            BrowserInitializationError: If any initialization step fails.
        """
        log.info("Launching chromium", headless=self.config.headless)

        try:
            self._playwright = await async_playwright().start()

            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=LAUNCH_ARGS,
            )

            self._context = await self._browser.new_context(
                viewport={
                    "width": self.config.viewport_width,
                    "height": self.config.viewport_height,
                },
                user_agent=self.config.user_agent,
                locale="en-US",
                java_script_enabled=True,
            )
            await self._context.add_init_script(STEALTH_JS)

            log.info(
                "Chromium context ready",
                viewport=f"{self.config.viewport_width}x{self.config.viewport_height}",
            )

        except Exception as exc:
            raise BrowserInitializationError(
                reason=str(exc), browser_type="chromium"
            ) from exc

    async def new_page(self) -> Page:
        """Open a new tab in this session's context.

        Raises:
            BrowserInitializationError: If called before launch or after release.
        """
        if self._context is None:
            raise BrowserInitializationError(
                reason="Browser context not initialized", browser_type="chromium"
            )

        page = await self._context.new_page()
        await page.set_viewport_size(
            {"width": self.config.viewport_width, "height": self.config.viewport_height}
        )
        self._pages.append(page)

        log.debug("New page created", open_pages=len(self._pages))
        return page

    async def close_page(self, page: Page) -> None:
        """Close a tab opened through this manager. Errors are logged only."""
        if page in self._pages:
            self._pages.remove(page)
        try:
            await page.close()
        except Exception as exc:
            log.warning("Error closing page", error=str(exc))

    async def navigate(self, page: Page, url: str, timeout_ms: int) -> None:
        """Load ``url`` in ``page`` and return once the DOM is parsed.

        An HTTP error status is logged but does not fail the navigation;
        the page is still scraped as rendered.

        Raises:
            NavigationError: On timeout or a network-level failure.
        """
        log.debug("Navigating to URL", url=url, timeout_ms=timeout_ms)

        try:
            response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except (PlaywrightTimeoutError, TimeoutError) as exc:
            raise NavigationError(
                url=url,
                reason=f"Navigation timeout after {timeout_ms}ms",
            ) from exc
        except Exception as exc:
            raise NavigationError(url=url, reason=str(exc)) from exc

        status_code = response.status if response is not None else None
        if status_code is not None and status_code >= 400:
            log.warning("Page responded with error status", url=url, status_code=status_code)
        else:
            log.info("Navigation successful", url=url, status_code=status_code)

    async def auto_scroll(self, page: Page) -> int:
        """Scroll the tab step by step to trigger lazy-loaded content.

        Stops once the distance covered reaches the document height measured
        at the current tick, or after ``max_scroll_steps`` ticks.

        Returns:
            Number of scroll ticks performed.
        """
        distance = self.config.scroll_step_px
        interval = self.config.scroll_interval_ms / 1000
        total = 0
        steps = 0

        while steps < self.config.max_scroll_steps:
            scroll_height = await page.evaluate(SCROLL_STEP_JS, distance)
            total += distance
            steps += 1
            if total >= (scroll_height or 0):
                break
            await asyncio.sleep(interval)

        log.debug("Auto-scroll finished", steps=steps, distance=total)
        return steps

    async def scroll_to_top(self, page: Page) -> None:
        await page.evaluate(SCROLL_TOP_JS)

    async def screenshot(self, page: Page, path: Path) -> Path:
        """Capture a full-page screenshot of the tab's current render."""
        path.parent.mkdir(parents=True, exist_ok=True)
        await page.screenshot(path=str(path), full_page=True)
        log.debug("Screenshot captured", path=str(path))
        return path

    async def content(self, page: Page) -> str:
        """Return the tab's current serialized markup."""
        return await page.content()

    async def release(self) -> None:
        """Close open tabs, then the context, the browser and the driver.

        Safe to call more than once. A failing close is logged and the
        remaining resources are still closed.
        """
        if self._released:
            return
        self._released = True

        for page in list(self._pages):
            await self.close_page(page)

        context, browser, driver = self._context, self._browser, self._playwright
        self._context = self._browser = self._playwright = None

        for name, closer in (
            ("context", context.close if context is not None else None),
            ("browser", browser.close if browser is not None else None),
            ("driver", driver.stop if driver is not None else None),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except Exception as exc:
                log.warning("Failed to close chromium resource", resource=name, error=str(exc))

        log.info("Chromium released")

    @property
    def open_pages(self) -> int:
        return len(self._pages)

    @property
    def is_initialized(self) -> bool:
        return None not in (self._playwright, self._browser, self._context)
