"""Playwright browser adapter and per-query context lifecycle."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from bs4 import BeautifulSoup
from playwright.async_api import Browser, ElementHandle, Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from .models import PageLike

VIEWPORT = {"width": 1366, "height": 820}
BROWSER_ARGS = [
    "--disable-dev-shm-usage",
    "--no-first-run",
    "--disable-default-apps",
]


class PlaywrightElement:
    """ElementLike view of a Playwright element handle."""

    def __init__(self, handle: ElementHandle) -> None:
        self._handle = handle

    async def click(self, *, delay: float = 0) -> None:
        await self._handle.click(delay=delay)

    async def scroll_into_view_if_needed(self) -> None:
        await self._handle.scroll_into_view_if_needed()

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        return await self._handle.evaluate(expression, arg)


class PlaywrightPage:
    """PageLike view of a Playwright page. Timeouts are in seconds."""

    def __init__(self, page: Page) -> None:
        self._page = page

    @property
    def url(self) -> str:
        return self._page.url

    async def goto(self, url: str, *, timeout: float) -> None:
        await self._page.goto(url, wait_until="domcontentloaded", timeout=timeout * 1000)

    async def reload(self) -> None:
        await self._page.reload(wait_until="domcontentloaded")

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        return await self._page.evaluate(expression, arg)

    async def query_selector(self, selector: str) -> PlaywrightElement | None:
        handle = await self._page.query_selector(selector)
        return PlaywrightElement(handle) if handle else None

    async def click(self, selector: str) -> None:
        await self._page.click(selector)

    async def wait_for_selector(self, selector: str, *, timeout: float) -> None:
        await self._page.wait_for_selector(selector, timeout=timeout * 1000)

    async def wait_for_load_state(self, state: str = "domcontentloaded") -> None:
        await self._page.wait_for_load_state(state)  # type: ignore[arg-type]

    async def content(self) -> str:
        return await self._page.content()

    def frame_urls(self) -> list[str]:
        return [frame.url for frame in self._page.frames]


async def read_page_text(page: PageLike, logger: logging.Logger) -> str:
    """Return rendered body text, falling back to parsing the serialized HTML."""
    try:
        text = await page.evaluate("() => document.body ? document.body.innerText : ''")
        if text:
            return str(text)
    except PlaywrightError as exc:
        logger.debug("innerText read failed on %s: %s", page.url, exc)
    try:
        html = await page.content()
    except PlaywrightError as exc:
        logger.warning("Could not read page content on %s: %s", page.url, exc)
        return ""
    return BeautifulSoup(html or "", "html.parser").get_text(" ")


@asynccontextmanager
async def launch_browser(*, headless: bool) -> AsyncIterator[Browser]:
    """Start Playwright and one shared Chromium process for the whole run."""
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=headless, args=BROWSER_ARGS)
        try:
            yield browser
        finally:
            await browser.close()


@asynccontextmanager
async def query_page(
    browser: Browser, *, user_agent: str, logger: logging.Logger
) -> AsyncIterator[PlaywrightPage]:
    """Open an isolated browser context for one query and always close it."""
    context = await browser.new_context(viewport=VIEWPORT, user_agent=user_agent)
    try:
        page = await context.new_page()
        yield PlaywrightPage(page)
    finally:
        try:
            await context.close()
        except PlaywrightError as exc:
            logger.debug("Closing browser context failed: %s", exc)
