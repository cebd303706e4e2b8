"""Process-wide loguru configuration for ScrapeTrail.

Two sinks are installed:
- stderr: colorized, one line per event, prefixed with ``[<session_id>]``
  when the event belongs to a scrape session
- ``<log_dir>/scrapetrail_<date>.json``: one JSON object per line, rotated
  and retained per GlobalConfig, with ``session_id`` promoted to a top-level
  key so a single session's trace can be grepped out of the file

Session traces that pollers read (LogEntry records on the session) are kept
by the orchestrator and mirrored here through ``get_session_logger``.
"""

import json
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from config.settings import GlobalConfig, get_config
from src.exceptions import LoggingInitializationError

CONSOLE_PREFIX = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[module]}</cyan> | "
)

# Keys that are sink plumbing, not event context.
_RESERVED_EXTRA = {"serialized", "module", "session_id"}


def _console_format(record: dict[str, Any]) -> str:
    session = "[{extra[session_id]}] " if "session_id" in record["extra"] else ""
    return CONSOLE_PREFIX + session + "<level>{message}</level>\n{exception}"


def _json_line(record: dict[str, Any]) -> str:
    """Serialize one loguru record as a single JSON line.

    Args:
        record: Loguru record dictionary.

    Returns:
        JSON text without a trailing newline.
    """
    extra = record["extra"]
    entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "session_id": extra.get("session_id"),
        "module": extra.get("module", record["name"]),
        "message": record["message"],
    }

    context = {k: v for k, v in extra.items() if k not in _RESERVED_EXTRA}
    if context:
        entry["context"] = context

    exc = record["exception"]
    if exc is not None:
        entry["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "value": str(exc.value) if exc.value else None,
        }

    return json.dumps(entry, default=str)


def _attach_json_line(record: dict[str, Any]) -> bool:
    record["extra"]["serialized"] = _json_line(record)
    return True


def _json_format(record: dict[str, Any]) -> str:
    # One JSON object per line, no traceback suffix.
    return "{extra[serialized]}\n"


def _ensure_writable_dir(log_dir: Path) -> Path:
    """Create ``log_dir`` and prove it is writable.

    Raises:
        LoggingInitializationError: If the directory cannot be created or written.
    """
    probe = log_dir / ".write_probe"
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        probe.write_text("ok")
        probe.unlink()
    except PermissionError as exc:
        raise LoggingInitializationError(
            log_dir=str(log_dir), reason=f"Permission denied: {exc}"
        ) from exc
    except OSError as exc:
        raise LoggingInitializationError(
            log_dir=str(log_dir), reason=f"OS error during directory validation: {exc}"
        ) from exc
    return log_dir


def configure_logging(config: GlobalConfig | None = None) -> None:
    """Install the console and JSON file sinks.

    Call once during bootstrap, before any session starts. Calling again
    replaces the sinks (tests rely on this).

    Args:
        config: Optional GlobalConfig instance. If None, uses singleton.

    Raises:
        LoggingInitializationError: If the log directory is unusable.
    """
    if config is None:
        config = get_config()

    logger.remove()
    log_dir = _ensure_writable_dir(config.log_dir)

    logger.configure(extra={"module": "scrapetrail"})
    logger.add(
        sys.stderr,
        format=_console_format,
        level=config.log_level,
        colorize=True,
        backtrace=config.debug,
        diagnose=config.debug,
    )
    logger.add(
        str(log_dir / "scrapetrail_{time:YYYY-MM-DD}.json"),
        format=_json_format,
        level=config.log_level,
        rotation=config.log_rotation,
        retention=config.log_retention,
        compression="gz",
        filter=_attach_json_line,
    )

    logger.info(
        "Logging initialized",
        app_name=config.app_name,
        environment=config.environment,
        log_level=config.log_level,
        log_dir=str(log_dir),
    )


def get_logger(name: str) -> "logger":
    """Return a logger bound with the module name.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("Artifacts written", session_id="1700000000000")
    """
    return logger.bind(module=name)


def get_session_logger(name: str, session_id: str) -> "logger":
    """Return a logger bound to one scrape session.

    Every event carries ``session_id``: as a console prefix and as a
    top-level key in the JSON file.
    """
    return logger.bind(module=name, session_id=session_id)
