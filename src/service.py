"""Session lifecycle service.

ScrapeService is the seam between callers (HTTP routes, the CLI) and the
pipeline. ``start`` registers a session and returns its id immediately
while the orchestrator runs as a background asyncio task; ``status`` and
``files`` read the store; ``cancel`` sets the session's cancellation token.
"""

import asyncio

from pydantic import ValidationError

from config.settings import GlobalConfig, get_config
from src.exceptions import ConfigValidationError, SessionNotFoundError
from src.extractor import PageDataExtractor
from src.logger import get_logger
from src.models import FileManifest, ScrapeConfig, ScrapeOptions, ScrapeSession
from src.orchestrator import BrowserFactory, ScrapeOrchestrator
from src.reporter import ArtifactWriter
from src.session_store import EvictionPolicy, SessionStore

log = get_logger(__name__)


class ScrapeService:
    """Starts scrape sessions and answers status queries.

    Attributes:
        settings: GlobalConfig shared by every session.
        store: SessionStore holding all sessions.

    Example:
        service = ScrapeService()
        session_id = service.start("https://example.com")
        await service.wait(session_id)
        print(service.files(session_id))
    """

    def __init__(
        self,
        settings: GlobalConfig | None = None,
        store: SessionStore | None = None,
        *,
        browser_factory: BrowserFactory | None = None,
        extractor: PageDataExtractor | None = None,
        writer: ArtifactWriter | None = None,
    ) -> None:
        self.settings = settings or get_config()
        self.store = store or SessionStore(
            EvictionPolicy(
                ttl_seconds=self.settings.session_ttl_seconds,
                max_sessions=self.settings.max_sessions,
            )
        )
        self._browser_factory = browser_factory
        self._extractor = extractor or PageDataExtractor()
        self._writer = writer or ArtifactWriter(self.settings)
        self._tasks: dict[str, asyncio.Task] = {}
        self._orchestrators: dict[str, ScrapeOrchestrator] = {}

    def build_config(self, url: str | None, options: ScrapeOptions | None = None) -> ScrapeConfig:
        """Validate caller input into a ScrapeConfig.

        Raises:
            ConfigValidationError: If the URL is missing or invalid.
        """
        if not url:
            raise ConfigValidationError(field="url", value=url, reason="URL is required")
        try:
            return ScrapeConfig.from_request(url, options, self.settings)
        except ValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or "url"
            raise ConfigValidationError(
                field=field, value=first.get("input"), reason=first.get("msg", str(exc))
            ) from exc

    def start(self, url: str | None, options: ScrapeOptions | None = None) -> str:
        """Register a session and launch its pipeline in the background.

        Must be called from within a running event loop.

        Returns:
            The new session id.

        Raises:
            ConfigValidationError: If the request is invalid.
        """
        config = self.build_config(url, options)
        session_id = self.store.create(config)

        orchestrator = ScrapeOrchestrator(
            session_id,
            self.store,
            self.settings,
            browser_factory=self._browser_factory,
            extractor=self._extractor,
            writer=self._writer,
        )
        task = asyncio.create_task(orchestrator.run(), name=f"scrape-{session_id}")
        self._tasks[session_id] = task
        self._orchestrators[session_id] = orchestrator
        task.add_done_callback(lambda t, sid=session_id: self._on_done(sid, t))

        log.info(
            "Scraping started",
            session_id=session_id,
            url=config.url,
            click_images=config.click_images,
            visit_contact=config.visit_contact,
            max_images=config.max_images,
        )
        return session_id

    def _on_done(self, session_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(session_id, None)
        self._orchestrators.pop(session_id, None)
        if task.cancelled():
            log.warning("Scrape task cancelled", session_id=session_id)
            return
        exc = task.exception()
        if exc is not None:
            log.opt(exception=exc).error("Scrape task crashed", session_id=session_id)

    def get(self, session_id: str) -> ScrapeSession | None:
        """Look up a session after applying the eviction policy.

        Expired sessions disappear on the next read, not only when a new
        session is created.
        """
        self.store.evict_expired()
        return self.store.get(session_id)

    def status(self, session_id: str, log_window: int | None = None) -> dict | None:
        """Poll snapshot for a session, or None if unknown or evicted."""
        session = self.get(session_id)
        if session is None:
            return None
        return session.status_view(log_window)

    def files(self, session_id: str) -> FileManifest | None:
        """File manifest once the session completed, else None."""
        session = self.get(session_id)
        if session is None:
            return None
        return session.files

    def cancel(self, session_id: str) -> bool:
        """Request cancellation of a running session.

        Returns:
            True if a running session was signalled, False if it had
            already finished.

        Raises:
            SessionNotFoundError: If the id is unknown.
        """
        if self.store.get(session_id) is None:
            raise SessionNotFoundError(session_id)
        orchestrator = self._orchestrators.get(session_id)
        if orchestrator is None:
            return False
        orchestrator.cancel()
        log.info("Cancellation requested", session_id=session_id)
        return True

    async def wait(self, session_id: str) -> ScrapeSession:
        """Wait for a session's pipeline task to finish.

        Raises:
            SessionNotFoundError: If the id is unknown.
        """
        task = self._tasks.get(session_id)
        if task is not None:
            await asyncio.wait({task})
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def shutdown(self) -> None:
        """Cancel every running session and wait for cleanup to finish."""
        for orchestrator in list(self._orchestrators.values()):
            orchestrator.cancel()
        tasks = list(self._tasks.values())
        if tasks:
            log.info("Waiting for running sessions", count=len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)

    @property
    def running(self) -> int:
        return len(self._tasks)
