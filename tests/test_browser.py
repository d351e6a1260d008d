import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from serp_harvester.browser import VIEWPORT, PlaywrightPage, query_page, read_page_text

from fakes import FakePage

LOGGER = logging.getLogger("test")


class NoInnerTextPage(FakePage):
    async def evaluate(self, expression: str, arg: object = None) -> object:
        raise PlaywrightError("Execution context was destroyed")


class DeadPage(NoInnerTextPage):
    async def content(self) -> str:
        raise PlaywrightError("Target closed")


def test_read_page_text_prefers_inner_text() -> None:
    page = FakePage(text="hello a@acme.io", html="<p>ignored</p>")
    assert asyncio.run(read_page_text(page, LOGGER)) == "hello a@acme.io"


def test_read_page_text_falls_back_to_html() -> None:
    page = NoInnerTextPage(html="<html><body><p>Mail</p><p>a@acme.io</p></body></html>")
    text = asyncio.run(read_page_text(page, LOGGER))
    assert "a@acme.io" in text
    assert "<p>" not in text


def test_read_page_text_gives_empty_string_when_page_is_gone() -> None:
    assert asyncio.run(read_page_text(DeadPage(), LOGGER)) == ""


def test_playwright_page_adapter_translates_calls() -> None:
    raw = MagicMock()
    raw.url = "https://www.google.com/search?q=x"
    raw.goto = AsyncMock()
    raw.wait_for_selector = AsyncMock()
    raw.query_selector = AsyncMock(side_effect=[MagicMock(), None])
    raw.frames = [MagicMock(url="https://a.test/"), MagicMock(url="https://www.google.com/recaptcha/api2/anchor")]

    page = PlaywrightPage(raw)

    async def scenario() -> None:
        await page.goto("https://www.google.com/search?q=y", timeout=30.0)
        await page.wait_for_selector("div#search", timeout=15.0)
        assert await page.query_selector("a#pnnext") is not None
        assert await page.query_selector("a#pnnext") is None

    asyncio.run(scenario())
    raw.goto.assert_awaited_once_with(
        "https://www.google.com/search?q=y", wait_until="domcontentloaded", timeout=30000.0
    )
    raw.wait_for_selector.assert_awaited_once_with("div#search", timeout=15000.0)
    assert page.url == "https://www.google.com/search?q=x"
    assert page.frame_urls() == [
        "https://a.test/",
        "https://www.google.com/recaptcha/api2/anchor",
    ]


def _fake_browser(close_error: Exception | None = None) -> tuple[MagicMock, MagicMock]:
    context = MagicMock()
    context.new_page = AsyncMock(return_value=MagicMock())
    context.close = AsyncMock(side_effect=close_error)
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    return browser, context


def test_query_page_opens_isolated_context_and_closes_it() -> None:
    browser, context = _fake_browser()

    async def scenario() -> None:
        async with query_page(browser, user_agent="agent", logger=LOGGER) as page:
            assert isinstance(page, PlaywrightPage)

    asyncio.run(scenario())
    browser.new_context.assert_awaited_once_with(viewport=VIEWPORT, user_agent="agent")
    context.close.assert_awaited_once()


def test_query_page_closes_context_on_error() -> None:
    browser, context = _fake_browser(close_error=PlaywrightError("already closed"))

    async def scenario() -> None:
        async with query_page(browser, user_agent="agent", logger=LOGGER):
            raise RuntimeError("session blew up")

    with pytest.raises(RuntimeError):
        asyncio.run(scenario())
    context.close.assert_awaited_once()
