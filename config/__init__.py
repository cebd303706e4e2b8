"""Settings package for ScrapeTrail.

``get_config()`` returns the process-wide GlobalConfig; the API, the CLI and
every scrape session read their defaults (directories, delays, browser
options) from it.
"""

from config.settings import GlobalConfig, get_config

__all__ = ["GlobalConfig", "get_config"]
