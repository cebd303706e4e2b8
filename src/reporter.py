"""Artifact persistence for completed scrape sessions.

This module turns a ScrapeResult into on-disk artifacts:
- ``<session>-data.json``: the full structured result (camelCase keys)
- ``<session>-report.txt``: a plain-text summary
- ``<session>-homepage.html``: the homepage markup as rendered

Screenshots are written by the browser during the pipeline; this module
only decides their names. Every file name starts with the session id, so
concurrent sessions never overwrite each other.
"""

from datetime import UTC, datetime
from pathlib import Path

from config.settings import GlobalConfig, get_config
from src.exceptions import ArtifactWriteError
from src.logger import get_logger
from src.models import FileManifest, ScrapeConfig, ScrapeResult

log = get_logger(__name__)

SCREENSHOT_URL_PREFIX = "/screenshots"
OUTPUT_URL_PREFIX = "/output"


def homepage_screenshot_name(session_id: str) -> str:
    return f"{session_id}-01-homepage.png"


def image_screenshot_name(session_id: str, position: int) -> str:
    return f"{session_id}-02-image-{position}.png"


def contact_screenshot_name(session_id: str) -> str:
    return f"{session_id}-03-contact.png"


def render_report(result: ScrapeResult, config: ScrapeConfig, captured_at: datetime) -> str:
    """Render the plain-text summary report.

    The output depends only on its arguments.

    Args:
        result: Completed scrape result.
        config: Configuration the session ran with.
        captured_at: Capture time printed in the header.
    """
    homepage = result.homepage
    lines = [
        "WEB SCRAPER - COMPLETE REPORT",
        "==============================",
        "",
        f"URL: {config.url}",
        f"Scraped: {captured_at.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}",
        "",
        "HOMEPAGE:",
        f"  Title: {homepage.title}",
        f"  Heading: {homepage.heading}",
        f"  Sections: {len(homepage.sections)}",
        f"  Links: {len(homepage.links)}",
        f"  Images: {len(homepage.images)}",
        "",
    ]

    if result.clicked_images:
        lines.append(f"CLICKED IMAGES: {len(result.clicked_images)}")
        lines.extend(
            f"  {i}. {image.alt}" for i, image in enumerate(result.clicked_images, start=1)
        )
        lines.append("")

    if result.contact_page is not None:
        lines.extend([
            "CONTACT PAGE:",
            f"  URL: {result.contact_page.url}",
            f"  Title: {result.contact_page.data.title}",
            "",
        ])

    screenshot_count = len(result.screenshots)
    lines.append(f"SCREENSHOTS: {screenshot_count}")
    lines.append(f"FILES GENERATED: JSON, HTML, Report, {screenshot_count} images")

    return "\n".join(lines) + "\n"


class ArtifactWriter:
    """Writes a session's artifacts and returns their public locations.

    Attributes:
        config: GlobalConfig instance for output paths.

    Example:
        writer = ArtifactWriter()
        manifest = writer.write(session_id, result, scrape_config, html)
        print(manifest.report)  # /output/<session>-report.txt
    """

    def __init__(self, config: GlobalConfig | None = None) -> None:
        """Initialize ArtifactWriter with configuration.

        Args:
            config: Optional GlobalConfig. Uses singleton if not provided.
        """
        self.config = config or get_config()

    def screenshot_path(self, name: str) -> Path:
        return self.config.screenshot_dir / name

    def _ensure_output_dir(self) -> Path:
        """Ensure output directory exists and return path.

        Raises:
            ArtifactWriteError: If directory cannot be created.
        """
        try:
            self.config.output_dir.mkdir(parents=True, exist_ok=True)
            return self.config.output_dir
        except OSError as exc:
            raise ArtifactWriteError(
                artifact="output_directory",
                reason=f"Cannot create output directory: {exc}",
                output_path=str(self.config.output_dir),
            ) from exc

    def _write_text(self, artifact: str, path: Path, content: str) -> None:
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise ArtifactWriteError(
                artifact=artifact, reason=str(exc), output_path=str(path)
            ) from exc
        log.debug("Artifact written", artifact=artifact, path=str(path), size=len(content))

    def write(
        self,
        session_id: str,
        result: ScrapeResult,
        config: ScrapeConfig,
        homepage_html: str,
        captured_at: datetime | None = None,
    ) -> FileManifest:
        """Persist JSON, report and homepage markup for one session.

        Args:
            session_id: Owning session; prefixes every file name.
            result: Completed scrape result.
            config: Configuration the session ran with.
            homepage_html: Serialized markup of the primary tab.
            captured_at: Report timestamp (defaults to now, UTC).

        Returns:
            FileManifest with public locations of every artifact.

        Raises:
            ArtifactWriteError: If any file cannot be written.
        """
        output_dir = self._ensure_output_dir()
        captured_at = captured_at or datetime.now(UTC)

        json_name = f"{session_id}-data.json"
        report_name = f"{session_id}-report.txt"
        html_name = f"{session_id}-homepage.html"

        self._write_text(
            "JSON",
            output_dir / json_name,
            result.model_dump_json(by_alias=True, indent=2),
        )
        self._write_text("report", output_dir / report_name, render_report(result, config, captured_at))
        self._write_text("HTML", output_dir / html_name, homepage_html)

        manifest = FileManifest(
            screenshots=[f"{SCREENSHOT_URL_PREFIX}/{name}" for name in result.screenshots],
            json_file=f"{OUTPUT_URL_PREFIX}/{json_name}",
            report=f"{OUTPUT_URL_PREFIX}/{report_name}",
            html=f"{OUTPUT_URL_PREFIX}/{html_name}",
        )

        log.info(
            "Artifacts written",
            session_id=session_id,
            output_dir=str(output_dir),
            screenshots=len(manifest.screenshots),
        )
        return manifest
