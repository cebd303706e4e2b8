"""FastAPI application exposing the scrape service.

Routes:
    POST /api/scrape             start a session, returns its id immediately
    GET  /api/status/{id}        poll progress, logs and errors
    GET  /api/files/{id}         file manifest once completed
    POST /api/cancel/{id}        request cancellation of a running session
    GET  /healthz                liveness probe

Screenshots and output artifacts are served from ``/screenshots`` and
``/output`` so manifest entries resolve directly.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from config.settings import GlobalConfig, get_config
from src.exceptions import ConfigValidationError, SessionNotFoundError
from src.logger import get_logger
from src.models import ScrapeOptions
from src.service import ScrapeService

log = get_logger(__name__)


class ScrapeRequest(BaseModel):
    """Request body for starting a session."""

    url: str | None = None
    options: ScrapeOptions | None = None


def _not_found() -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "Session not found"})


def create_app(
    service: ScrapeService | None = None,
    settings: GlobalConfig | None = None,
) -> FastAPI:
    """Build the API application around a ScrapeService.

    Args:
        service: Optional pre-built service (tests inject one).
        settings: Optional GlobalConfig. Uses singleton if not provided.
    """
    settings = settings or (service.settings if service else get_config())
    service = service or ScrapeService(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("API started", host=settings.host, port=settings.port)
        yield
        await service.shutdown()
        log.info("API stopped")

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    settings.screenshot_dir.mkdir(parents=True, exist_ok=True)
    settings.output_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/screenshots", StaticFiles(directory=settings.screenshot_dir), name="screenshots")
    app.mount("/output", StaticFiles(directory=settings.output_dir), name="output")

    @app.get("/healthz")
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/scrape")
    async def start_scrape(request: ScrapeRequest) -> Any:
        try:
            session_id = service.start(request.url, request.options)
        except ConfigValidationError as exc:
            log.warning("Scrape request rejected", field=exc.field, reason=exc.reason)
            return JSONResponse(
                status_code=400, content={"error": exc.reason, "field": exc.field}
            )

        session = service.get(session_id)
        return {
            "success": True,
            "sessionId": session_id,
            "message": "Scraping started",
            "config": session.config.to_wire() if session else None,
        }

    @app.get("/api/status/{session_id}")
    async def get_status(
        session_id: str,
        log_window: int | None = Query(default=None, alias="logWindow", ge=1),
    ) -> Any:
        snapshot = service.status(session_id, log_window)
        if snapshot is None:
            return _not_found()
        return snapshot

    @app.get("/api/files/{session_id}")
    async def get_files(session_id: str) -> Any:
        manifest = service.files(session_id)
        if manifest is None:
            return {"files": []}
        return {"files": manifest.to_wire()}

    @app.post("/api/cancel/{session_id}")
    async def cancel_scrape(session_id: str) -> Any:
        try:
            signalled = service.cancel(session_id)
        except SessionNotFoundError:
            return _not_found()
        return {"success": signalled, "sessionId": session_id}

    return app
