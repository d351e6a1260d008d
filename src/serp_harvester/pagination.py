"""Search-results pagination."""

from __future__ import annotations

import logging
import random

from playwright.async_api import Error as PlaywrightError

from .models import PageLike, SleepFn

NEXT_PAGE_SELECTORS = [
    "a#pnnext",
    "a#pnnext span.oeN89d",
    'a[aria-label="Next page"]',
    'a[aria-label="Next"]',
]
RESULTS_SELECTOR = "div#search"
RESULTS_TIMEOUT = 15.0


class Paginator:
    """Find and activate the "next page" link, with human-ish timing."""

    def __init__(
        self,
        *,
        sleep_fn: SleepFn,
        logger: logging.Logger,
        rng: random.Random | None = None,
    ) -> None:
        self._sleep_fn = sleep_fn
        self._logger = logger
        self._rng = rng or random.Random()

    async def advance(self, page: PageLike) -> bool:
        for selector in NEXT_PAGE_SELECTORS:
            try:
                element = await page.query_selector(selector)
                if element is None:
                    continue
                await element.scroll_into_view_if_needed()
                await self._sleep_fn(0.5, 1.0)
                try:
                    await element.click(delay=self._rng.uniform(50, 200))
                except PlaywrightError:
                    try:
                        await page.click(selector)
                    except PlaywrightError as exc:
                        self._logger.debug("Fallback click on %s failed: %s", selector, exc)
                try:
                    await page.wait_for_selector(RESULTS_SELECTOR, timeout=RESULTS_TIMEOUT)
                except PlaywrightError:
                    self._logger.debug("Results container did not reappear after paging.")
                await self._sleep_fn(1.0, 2.0)
                return True
            except PlaywrightError as exc:
                self._logger.debug("Next-page selector %s failed: %s", selector, exc)
        return False
