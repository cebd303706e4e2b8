"""Command-line entry for ScrapeTrail.

Loads settings, installs logging and creates the artifact directories, then
either serves the HTTP API (the default) or runs one scrape in-process and
prints its file manifest as JSON.

Usage:
    scrapetrail                          # serve the API
    scrapetrail scrape https://example.com --max-images 3
"""

import argparse
import asyncio
import json
import sys
from typing import NoReturn

from loguru import logger

from config.settings import GlobalConfig, get_config
from src.exceptions import (
    ConfigValidationError,
    LoggingInitializationError,
    ScrapeTrailError,
)
from src.logger import configure_logging
from src.models import ScrapeOptions, SessionStatus


def _validate_startup_requirements(config: GlobalConfig) -> None:
    """Create the screenshot and output directories, exiting with 1 on failure."""
    for directory in (config.screenshot_dir, config.output_dir):
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.critical(
                "Failed to create output directory",
                directory=str(directory),
                error=str(exc),
            )
            sys.exit(1)

    logger.debug(
        "Startup validation complete",
        screenshot_dir=str(config.screenshot_dir),
        output_dir=str(config.output_dir),
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scrapetrail")
    commands = parser.add_subparsers(dest="command")

    commands.add_parser("serve", help="Run the HTTP API (default)")

    scrape = commands.add_parser("scrape", help="Run one session and print its manifest")
    scrape.add_argument("url")
    scrape.add_argument("--no-images", action="store_true", help="Do not follow image links")
    scrape.add_argument("--no-contact", action="store_true", help="Skip the contact page")
    scrape.add_argument("--max-images", type=int, default=None)
    return parser


async def _run_single(config: GlobalConfig, url: str, options: ScrapeOptions) -> int:
    """Run one session to completion in this process.

    Returns:
        Exit code (0 for completed, 1 for error).
    """
    from src.service import ScrapeService

    service = ScrapeService(config)
    session_id = service.start(url, options)
    session = await service.wait(session_id)

    if session.status is SessionStatus.COMPLETED and session.files is not None:
        print(json.dumps(session.files.to_wire(), indent=2))
        return 0

    logger.error("Session failed", session_id=session_id, error=session.error)
    return 1


def _serve(config: GlobalConfig) -> int:
    import uvicorn

    from src.api import create_app

    uvicorn.run(create_app(settings=config), host=config.host, port=config.port)
    return 0


def _handle_fatal_error(exc: Exception) -> NoReturn:
    """Log an unhandled error and exit with status 1."""
    if isinstance(exc, ScrapeTrailError):
        logger.critical(
            "Fatal application error",
            error_type=type(exc).__name__,
            message=exc.message,
            context=exc.context,
        )
        sys.exit(1)

    logger.exception("Unexpected fatal error", error=str(exc))
    sys.exit(1)


def main(argv: list[str] | None = None) -> int:
    """Parse ``argv`` and run the chosen command.

    Returns:
        0 on success, 1 on startup or scrape failure, 2 for a rejected
        scrape request, 130 on Ctrl+C.
    """
    args = _build_parser().parse_args(argv)

    try:
        config = get_config()
    except Exception as exc:
        print(f"FATAL: Configuration loading failed: {exc}", file=sys.stderr)
        return 1

    try:
        configure_logging(config)
    except LoggingInitializationError as exc:
        print(f"FATAL: {exc}", file=sys.stderr)
        return 1

    try:
        _validate_startup_requirements(config)
    except SystemExit:
        raise
    except Exception as exc:
        logger.exception("Startup validation failed", error=str(exc))
        return 1

    try:
        if args.command == "scrape":
            options = ScrapeOptions(
                click_images=not args.no_images,
                visit_contact=not args.no_contact,
                max_images=args.max_images,
            )
            return asyncio.run(_run_single(config, args.url, options))
        return _serve(config)
    except ConfigValidationError as exc:
        logger.error("Invalid scrape request", field=exc.field, reason=exc.reason)
        return 2
    except KeyboardInterrupt:
        logger.warning("Interrupted by user (Ctrl+C)")
        return 130
    except Exception as exc:
        _handle_fatal_error(exc)


if __name__ == "__main__":
    sys.exit(main())
