"""Custom exception hierarchy for ScrapeTrail.

Every error carries a message plus a context dict of the values involved
(session id, URL, stage, artifact path) so a log line says what failed.

Error classes map onto how the scrape pipeline reacts to them:
    - FatalStageError subclasses abort the whole session and move it to
      the ``error`` status.
    - RecoverableItemError is raised and caught inside a single
      secondary-tab scope and never leaves its stage.
"""

from datetime import UTC, datetime
from typing import Any


class ScrapeTrailError(Exception):
    """Base exception for all ScrapeTrail errors.

    Catch this to handle any pipeline, storage or configuration failure while
    letting programming errors propagate.

    Attributes:
        message: Human-readable error description.
        context: Optional dictionary with additional debugging information.
        timestamp: UTC timestamp when the exception was raised.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now(UTC)
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format exception message with context for logging."""
        base = f"[{self.timestamp.isoformat()}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base} | Context: {context_str}"
        return base


class ConfigValidationError(ScrapeTrailError):
    """Raised when a scrape request carries an invalid configuration.

    Surfaces to the caller as a rejected request; no session is created.
    """

    def __init__(self, field: str, value: Any, reason: str) -> None:
        super().__init__(
            message=f"Configuration validation failed for '{field}': {reason}",
            context={"field": field, "value": value, "reason": reason},
        )
        self.field = field
        self.reason = reason


class FatalStageError(ScrapeTrailError):
    """Base for errors that abort an entire scrape session."""


class BrowserInitializationError(FatalStageError):
    """Raised when browser instance fails to initialize.

    Common causes include missing Playwright browsers, resource constraints,
    or conflicting browser processes.
    """

    def __init__(self, reason: str, browser_type: str = "chromium") -> None:
        super().__init__(
            message=f"Failed to initialize {browser_type} browser: {reason}",
            context={"browser_type": browser_type, "reason": reason},
        )


class NavigationError(FatalStageError):
    """Raised when page navigation fails.

    This may indicate network issues, invalid URLs, or blocked requests.
    Fatal for the primary tab; secondary tabs wrap it in RecoverableItemError.
    """

    def __init__(self, url: str, reason: str, status_code: int | None = None) -> None:
        super().__init__(
            message=f"Navigation to '{url}' failed: {reason}",
            context={"url": url, "reason": reason, "status_code": status_code},
        )
        self.url = url


class ArtifactWriteError(FatalStageError):
    """Raised when session artifacts cannot be written to disk."""

    def __init__(self, artifact: str, reason: str, output_path: str | None = None) -> None:
        super().__init__(
            message=f"Failed to write {artifact} artifact: {reason}",
            context={"artifact": artifact, "reason": reason, "output_path": output_path},
        )


class SessionCancelledError(FatalStageError):
    """Raised between stages once a session's cancellation token is set."""

    def __init__(self, session_id: str, stage: str) -> None:
        super().__init__(
            message=f"Session '{session_id}' cancelled before stage '{stage}'",
            context={"session_id": session_id, "stage": stage},
        )


class ExtractionError(ScrapeTrailError):
    """Raised when an in-page extraction script returns unusable data."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(
            message=f"Extraction failed for '{url}': {reason}",
            context={"url": url, "reason": reason},
        )


class RecoverableItemError(ScrapeTrailError):
    """Raised when one clicked image cannot be processed.

    Caught at the per-image scope; the image is skipped and the
    pipeline continues with the next one.
    """

    def __init__(self, position: int, url: str, reason: str) -> None:
        super().__init__(
            message=f"Image {position} ({url}) skipped: {reason}",
            context={"position": position, "url": url, "reason": reason},
        )
        self.position = position
        self.reason = reason


class SessionNotFoundError(ScrapeTrailError):
    """Raised when a session identifier is not present in the store."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            message=f"Session '{session_id}' not found",
            context={"session_id": session_id},
        )
        self.session_id = session_id


class LoggingInitializationError(ScrapeTrailError):
    """Raised when the logging system fails to initialize.

    This is a startup-blocking error - the application cannot proceed
    without a functioning logging infrastructure.
    """

    def __init__(self, log_dir: str, reason: str) -> None:
        super().__init__(
            message=f"Failed to initialize logging at '{log_dir}': {reason}",
            context={"log_dir": log_dir, "reason": reason},
        )
