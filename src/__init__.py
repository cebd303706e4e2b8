"""ScrapeTrail core source package.

This package contains the components of the scrape session pipeline:
- orchestrator: the stage-by-stage session state machine
- browser: Playwright-based browser lifecycle with stealth settings
- extractor: in-page extraction of page snapshots and link discovery
- reporter: JSON, text report and markup artifact persistence
- session_store: registry of sessions with an eviction policy
- service / api: background task management and the HTTP surface
- models, settle, logger, exceptions: shared building blocks
"""

__version__ = "1.0.0"
