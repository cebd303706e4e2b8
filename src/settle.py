"""Settle strategies: how the pipeline waits for a page to render.

The pipeline calls ``await strategy.settle(page, delay_ms)`` wherever it
needs a page to be usably rendered. The fixed-delay strategy simply sleeps,
which keeps runs deterministic; the network-idle strategy returns as soon as
the page stops issuing requests and uses the delay only as an upper bound.
"""

import asyncio
from typing import Protocol

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.logger import get_logger

log = get_logger(__name__)


class SettleStrategy(Protocol):
    async def settle(self, page: Page | None, delay_ms: int) -> None: ...


class FixedDelaySettle:
    """Sleep for the configured delay; the page is never inspected."""

    async def settle(self, page: Page | None, delay_ms: int) -> None:
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)


class NetworkIdleSettle:
    """Wait for Playwright's ``networkidle`` state, bounded by the delay.

    Falls back to a plain sleep when no page is given.
    """

    async def settle(self, page: Page | None, delay_ms: int) -> None:
        if delay_ms <= 0:
            return
        if page is None:
            await asyncio.sleep(delay_ms / 1000)
            return
        try:
            await page.wait_for_load_state("networkidle", timeout=delay_ms)
        except PlaywrightTimeoutError:
            log.debug("Network did not go idle within settle window", delay_ms=delay_ms)


def build_settle_strategy(name: str) -> SettleStrategy:
    """Map a ``settle_strategy`` config value to its implementation."""
    if name == "network_idle":
        return NetworkIdleSettle()
    return FixedDelaySettle()
