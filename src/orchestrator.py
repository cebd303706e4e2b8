"""Scrape session pipeline.

ScrapeOrchestrator drives one session through an ordered list of stages:

    starting -> initializing -> loading_page -> waiting_content -> scrolling
    -> screenshot_homepage -> [clicking_images] -> [visiting_contact]
    -> saving_results -> completed

Any uncaught error moves the session to ``error`` instead. Each stage owns a
fixed progress value (image clicking interpolates between 50 and 70), and
progress never moves backwards. Every stage transition is preceded by a log
entry on the session, so pollers see a causally ordered trace.

Design Rationale:
    The orchestrator is the only writer of its session's store entry. The
    browser is entered through an AsyncExitStack and released before the
    session is finalized, on every exit path, so a session observed as
    ``completed`` or ``error`` no longer holds a browser.
"""

import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager, AsyncExitStack
from datetime import UTC, datetime
from typing import Any

from config.settings import GlobalConfig, get_config
from src.browser import BrowserManager
from src.exceptions import RecoverableItemError, ScrapeTrailError, SessionCancelledError
from src.extractor import PageDataExtractor
from src.logger import get_session_logger
from src.models import (
    ClickableImage,
    ClickedImage,
    ContactPage,
    FileManifest,
    LogEntry,
    ScrapeResult,
    ScrapeSession,
    SessionStatus,
    Severity,
)
from src.reporter import (
    ArtifactWriter,
    contact_screenshot_name,
    homepage_screenshot_name,
    image_screenshot_name,
)
from src.session_store import SessionStore
from src.settle import SettleStrategy, build_settle_strategy

BrowserFactory = Callable[[GlobalConfig], AbstractAsyncContextManager[BrowserManager]]

STAGE_PROGRESS: dict[SessionStatus, float] = {
    SessionStatus.STARTING: 0,
    SessionStatus.INITIALIZING: 5,
    SessionStatus.LOADING_PAGE: 10,
    SessionStatus.WAITING_CONTENT: 20,
    SessionStatus.SCROLLING: 30,
    SessionStatus.SCREENSHOT_HOMEPAGE: 40,
    SessionStatus.CLICKING_IMAGES: 50,
    SessionStatus.VISITING_CONTACT: 75,
    SessionStatus.SAVING_RESULTS: 90,
    SessionStatus.COMPLETED: 100,
}
IMAGE_PROGRESS_END = 70


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, ScrapeTrailError):
        return exc.message
    return str(exc) or type(exc).__name__


class ScrapeOrchestrator:
    """Runs the stage pipeline for one session.

    Attributes:
        session_id: Session this orchestrator owns.
        store: SessionStore holding the session.
        settings: GlobalConfig with timeouts and scroll parameters.
        extractor: PageDataExtractor used for snapshots and link discovery.
        writer: ArtifactWriter used for file names and persistence.
        settle: Strategy used for every settle wait.

    Example:
        session_id = store.create(config)
        orchestrator = ScrapeOrchestrator(session_id, store)
        session = await orchestrator.run()
        print(session.status, session.progress)
    """

    def __init__(
        self,
        session_id: str,
        store: SessionStore,
        settings: GlobalConfig | None = None,
        *,
        browser_factory: BrowserFactory | None = None,
        extractor: PageDataExtractor | None = None,
        writer: ArtifactWriter | None = None,
        settle: SettleStrategy | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self.session_id = session_id
        self.store = store
        self.settings = settings or get_config()
        self.extractor = extractor or PageDataExtractor()
        self.writer = writer or ArtifactWriter(self.settings)
        self.settle = settle or build_settle_strategy(self.settings.settle_strategy)
        self._browser_factory = browser_factory or BrowserManager.create
        self._cancel_event = cancel_event or asyncio.Event()
        self._log = get_session_logger(__name__, session_id)
        self._browser_acquired = False

    @property
    def session(self) -> ScrapeSession:
        session = self.store.get(self.session_id)
        if session is None:
            raise KeyError(self.session_id)
        return session

    def cancel(self) -> None:
        """Request cancellation; honoured at the next stage boundary."""
        self._cancel_event.set()

    # ------------------------------------------------------------------
    # Session mutation helpers
    # ------------------------------------------------------------------

    def log(self, message: str, severity: Severity = "info") -> None:
        """Append a LogEntry to the session and mirror it to loguru."""

        def append(session: ScrapeSession) -> None:
            now = datetime.now(UTC)
            if session.logs and session.logs[-1].time > now:
                now = session.logs[-1].time
            session.logs.append(LogEntry(time=now, type=severity, message=message))

        self.store.mutate(self.session_id, append)
        getattr(self._log, severity)(message)

    def _advance(self, status: SessionStatus, progress: float) -> None:
        def apply(session: ScrapeSession) -> None:
            session.status = status
            session.progress = max(session.progress, min(progress, 100))

        self.store.mutate(self.session_id, apply)

    def _check_cancelled(self, stage: SessionStatus) -> None:
        if self._cancel_event.is_set():
            raise SessionCancelledError(self.session_id, stage.value)

    def _enter(self, stage: SessionStatus, message: str) -> None:
        self._check_cancelled(stage)
        self.log(message)
        self._advance(stage, STAGE_PROGRESS[stage])

    async def _wait(self, page: Any, delay_ms: int) -> None:
        await self.settle.settle(page, delay_ms)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def run(self) -> ScrapeSession:
        """Drive the session to ``completed`` or ``error``.

        Never raises for pipeline failures; they are recorded on the
        session. Task cancellation is recorded and then re-raised.

        Returns:
            The finalized session.
        """
        stack = AsyncExitStack()
        failure: BaseException | None = None
        outcome: tuple[ScrapeResult, FileManifest] | None = None

        try:
            outcome = await self._drive(stack)
        except asyncio.CancelledError as exc:
            failure = exc
            raise
        except Exception as exc:
            failure = exc
        finally:
            await self._release(stack)
            if failure is None and outcome is not None:
                self._complete(*outcome)
            else:
                self._fail(failure or RuntimeError("Pipeline ended without a result"))

        return self.session

    async def _release(self, stack: AsyncExitStack) -> None:
        try:
            await stack.aclose()
        except Exception as exc:
            self.log(f"Error while closing browser: {_error_message(exc)}", "warning")
        else:
            if self._browser_acquired:
                self.log("Browser closed")

    def _complete(self, result: ScrapeResult, manifest: FileManifest) -> None:
        self.log("Scraping completed successfully")

        def apply(session: ScrapeSession) -> None:
            session.files = manifest
            session.results = result
            session.end_time = datetime.now(UTC)
            session.status = SessionStatus.COMPLETED
            session.progress = 100

        self.store.mutate(self.session_id, apply)

    def _fail(self, exc: BaseException) -> None:
        if isinstance(exc, asyncio.CancelledError):
            message = "Scrape task was cancelled"
        else:
            message = _error_message(exc)
        self.log(f"Error: {message}", "error")

        def apply(session: ScrapeSession) -> None:
            session.status = SessionStatus.ERROR
            session.error = message
            session.end_time = datetime.now(UTC)

        self.store.mutate(self.session_id, apply)

    async def _drive(self, stack: AsyncExitStack) -> tuple[ScrapeResult, FileManifest]:
        config = self.session.config
        delays = config.delays

        self.log("Starting scraper")
        self._enter(SessionStatus.INITIALIZING, "Launching browser")
        browser = await stack.enter_async_context(self._browser_factory(self.settings))
        self._browser_acquired = True
        page = await browser.new_page()

        self._enter(SessionStatus.LOADING_PAGE, f"Navigating to {config.url}")
        await browser.navigate(page, config.url, self.settings.navigation_timeout_ms)

        self._enter(SessionStatus.WAITING_CONTENT, "Page loaded, waiting for content")
        await self._wait(page, delays.page_load)

        self._enter(SessionStatus.SCROLLING, "Scrolling to load all content")
        await browser.auto_scroll(page)
        await self._wait(page, delays.after_scroll)

        self._enter(SessionStatus.SCREENSHOT_HOMEPAGE, "Taking homepage screenshot")
        await browser.scroll_to_top(page)
        await self._wait(page, delays.before_screenshot)
        homepage_shot = homepage_screenshot_name(self.session_id)
        await browser.screenshot(page, self.writer.screenshot_path(homepage_shot))

        self.log("Extracting homepage data")
        result = ScrapeResult(
            homepage=await self.extractor.extract(page),
            screenshots=[homepage_shot],
        )

        if config.click_images:
            await self._click_images(browser, page, result)

        if config.visit_contact:
            await self._visit_contact(browser, page, result)

        self._enter(SessionStatus.SAVING_RESULTS, "Saving results")
        homepage_html = await browser.content(page)
        manifest = await asyncio.to_thread(
            self.writer.write, self.session_id, result, config, homepage_html
        )
        self.log(f"Saved {len(manifest.screenshots)} screenshots and 3 data files")

        await self._wait(page, delays.before_close)
        self._check_cancelled(SessionStatus.COMPLETED)
        return result, manifest

    async def _click_images(self, browser: BrowserManager, page: Any, result: ScrapeResult) -> None:
        """Follow anchor-wrapped images, at most ``max_images``.

        Images are processed by up to ``image_concurrency`` tabs at a time
        (1 = strictly sequential); results keep document order regardless.
        A failed image is logged as a warning and dropped.
        """
        config = self.session.config
        self._enter(SessionStatus.CLICKING_IMAGES, "Finding clickable images")

        images = await self.extractor.find_clickable_images(page, config.max_images)
        total = len(images)
        self.log(f"Found {total} clickable images")

        captured: list[ClickedImage | None] = [None] * total
        semaphore = asyncio.Semaphore(self.settings.image_concurrency)
        band = IMAGE_PROGRESS_END - STAGE_PROGRESS[SessionStatus.CLICKING_IMAGES]
        finished = 0

        async def process(position: int, image: ClickableImage) -> None:
            nonlocal finished
            async with semaphore:
                self._check_cancelled(SessionStatus.CLICKING_IMAGES)
                self.log(f"Processing image {position}/{total}: {image.alt}")
                try:
                    captured[position - 1] = await self._capture_image(browser, position, image)
                except RecoverableItemError as exc:
                    self.log(f"Error processing image {position}: {exc.reason}", "warning")
                else:
                    await self._wait(None, config.delays.between_actions)
                finally:
                    finished += 1
                    self._advance(
                        SessionStatus.CLICKING_IMAGES,
                        STAGE_PROGRESS[SessionStatus.CLICKING_IMAGES] + finished / total * band,
                    )

        tasks = [
            asyncio.create_task(process(position, image))
            for position, image in enumerate(images, start=1)
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        self._advance(SessionStatus.CLICKING_IMAGES, IMAGE_PROGRESS_END)
        for clicked in captured:
            if clicked is not None:
                result.clicked_images.append(clicked)
                result.screenshots.append(clicked.screenshot)

    async def _capture_image(
        self, browser: BrowserManager, position: int, image: ClickableImage
    ) -> ClickedImage:
        """Open the image's link in a new tab and screenshot it.

        Raises:
            RecoverableItemError: On any navigation or capture failure.
        """
        delays = self.session.config.delays
        screenshot = image_screenshot_name(self.session_id, position)
        tab = None
        try:
            tab = await browser.new_page()
            await browser.navigate(tab, image.link_href, self.settings.image_navigation_timeout_ms)
            await self._wait(tab, delays.page_load)
            await browser.screenshot(tab, self.writer.screenshot_path(screenshot))
        except Exception as exc:
            raise RecoverableItemError(
                position=position, url=image.link_href, reason=_error_message(exc)
            ) from exc
        finally:
            if tab is not None:
                await browser.close_page(tab)

        return ClickedImage(**image.model_dump(), screenshot=screenshot)

    async def _visit_contact(self, browser: BrowserManager, page: Any, result: ScrapeResult) -> None:
        """Capture the first contact/about page, if the homepage links one."""
        delays = self.session.config.delays
        self._enter(SessionStatus.VISITING_CONTACT, "Looking for contact page")

        link = await self.extractor.find_contact_link(page)
        if not link:
            self.log("Contact page not found", "warning")
            return

        self.log(f"Found contact page: {link}")
        screenshot = contact_screenshot_name(self.session_id)
        tab = await browser.new_page()
        try:
            await browser.navigate(tab, link, self.settings.contact_navigation_timeout_ms)
            await self._wait(tab, delays.page_load)
            await browser.auto_scroll(tab)
            await self._wait(tab, delays.after_scroll)
            await browser.scroll_to_top(tab)
            await self._wait(tab, delays.before_screenshot)
            await browser.screenshot(tab, self.writer.screenshot_path(screenshot))
            data = await self.extractor.extract(tab)
        finally:
            await browser.close_page(tab)

        result.screenshots.append(screenshot)
        result.contact_page = ContactPage(url=link, data=data, screenshot=screenshot)
