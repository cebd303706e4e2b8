"""Test suite for ScrapeTrail.

This package contains hermetic tests following the pytest framework.
Tests are structured to mirror the src/ package hierarchy for discoverability.

Testing Philosophy:
    - Use pytest-mock and the Playwright mock chain for browser isolation
    - Focus coverage on the stage pipeline, progress and cleanup guarantees
    - Avoid external dependencies - no real browser, network or waits
"""
