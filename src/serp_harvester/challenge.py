"""Consent-wall and reCAPTCHA detection and resolution."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from pathlib import Path
from urllib.parse import parse_qs, urlparse

from playwright.async_api import Error as PlaywrightError

from .extraction import build_search_url, query_from_url
from .models import (
    ChallengeContext,
    ChallengeKind,
    PageLike,
    ResolveResult,
    SleepFn,
    TokenSolver,
)

SitekeyStrategy = Callable[[PageLike], Awaitable[str | None]]
RevalidateStrategy = Callable[[PageLike], Awaitable[bool]]

CONSENT_URL_REGEX = re.compile(r"consent", re.IGNORECASE)
CHALLENGE_URL_REGEX = re.compile(r"recaptcha|challenge|sorry", re.IGNORECASE)
CHALLENGE_FRAME_REGEX = re.compile(r"recaptcha|google\.com/recaptcha|anchor", re.IGNORECASE)
CONSENT_SELECTORS = [
    "#L2AGLb",
    'button[aria-label*="Agree" i]',
    'button:has-text("I agree")',
    'button:has-text("Accept all")',
]
WIDGET_SELECTORS = ["div.g-recaptcha", 'iframe[src*="recaptcha"]']
VISIBLE_WIDGET_SELECTOR = ".g-recaptcha"
FRAME_KEY_PARAMS = ("k", "sitekey", "render")
EXTENSION_GRACE = 4.0

SITEKEY_ATTRIBUTE_JS = """() => {
  const els = [
    ...Array.from(document.querySelectorAll('[data-sitekey]')),
    ...Array.from(document.querySelectorAll('.g-recaptcha'))
  ];
  for (const el of els) {
    const v = el.getAttribute('data-sitekey') || (el.dataset && el.dataset.sitekey);
    if (v) return v;
  }
  return null;
}"""
SCRIPT_SOURCES_JS = """() => Array.from(
  document.querySelectorAll('script[src*="recaptcha/api.js"],script[src*="grecaptcha"]')
).map(s => s.src)"""
HAS_GRECAPTCHA_JS = "() => typeof window.grecaptcha !== 'undefined'"
INJECT_TOKEN_JS = """tok => {
  const ta = document.querySelector('textarea#g-recaptcha-response');
  if (ta) { ta.value = tok; ta.dispatchEvent(new Event('change', { bubbles: true })); }
  window.__grecaptcha_token = tok;
}"""


def _location(url: str) -> str:
    """Host and path only; query strings carry user search text."""
    parsed = urlparse(url)
    return parsed.netloc + parsed.path


def _param_from_url(url: str, names: tuple[str, ...]) -> str | None:
    params = parse_qs(urlparse(url).query)
    for name in names:
        values = params.get(name)
        if values and values[0]:
            return values[0]
    return None


async def accept_consent(page: PageLike, *, sleep_fn: SleepFn, logger: logging.Logger) -> bool:
    """Click through a consent wall. Returns True once the page leaves the consent URL."""
    for selector in CONSENT_SELECTORS:
        try:
            element = await page.query_selector(selector)
            if element is None:
                continue
            try:
                await element.click()
            except PlaywrightError:
                try:
                    await page.click(selector)
                except PlaywrightError as exc:
                    logger.debug("Consent click on %s failed: %s", selector, exc)
            await sleep_fn(1.0, 1.0)
            if not CONSENT_URL_REGEX.search(_location(page.url)):
                logger.info("Accepted consent wall via %s", selector)
                return True
        except PlaywrightError as exc:
            logger.debug("Consent selector %s failed: %s", selector, exc)
    return False


class ChallengeDetector:
    """Classify the current page as clear, consent wall or interactive challenge."""

    def __init__(self, *, sleep_fn: SleepFn, logger: logging.Logger) -> None:
        self._sleep_fn = sleep_fn
        self._logger = logger
        self._sitekey_strategies: list[SitekeyStrategy] = [
            self._sitekey_from_attributes,
            self._sitekey_from_frames,
            self._sitekey_from_scripts,
        ]

    async def detect(self, page: PageLike) -> ChallengeContext | None:
        """Return None for a clear page.

        A ``CONSENT`` context means a consent wall was present and has already
        been accepted. A wall that stays up falls through to the interactive
        checks.
        """
        url = page.url
        if CONSENT_URL_REGEX.search(_location(url)):
            if await accept_consent(page, sleep_fn=self._sleep_fn, logger=self._logger):
                return ChallengeContext(page_url=url, kind=ChallengeKind.CONSENT)
            self._logger.debug("Consent wall on %s could not be accepted", url)
            url = page.url

        if not await self._challenge_present(page):
            return None
        return ChallengeContext(
            page_url=url,
            kind=ChallengeKind.INTERACTIVE,
            sitekey=await self.find_sitekey(page),
            type_hint=await self._type_hint(page),
        )

    async def _challenge_present(self, page: PageLike) -> bool:
        if CHALLENGE_URL_REGEX.search(_location(page.url)):
            return True
        for selector in WIDGET_SELECTORS:
            if await self._has_element(page, selector):
                return True
        return any(CHALLENGE_FRAME_REGEX.search(url) for url in page.frame_urls())

    async def find_sitekey(self, page: PageLike) -> str | None:
        """Run sitekey strategies in order; the first non-empty result wins."""
        for strategy in self._sitekey_strategies:
            try:
                sitekey = await strategy(page)
            except PlaywrightError as exc:
                self._logger.debug("Sitekey probe %s failed: %s", strategy.__name__, exc)
                continue
            if sitekey:
                return sitekey
        return None

    async def _sitekey_from_attributes(self, page: PageLike) -> str | None:
        value = await page.evaluate(SITEKEY_ATTRIBUTE_JS)
        return str(value) if value else None

    async def _sitekey_from_frames(self, page: PageLike) -> str | None:
        for frame_url in page.frame_urls():
            if not CHALLENGE_FRAME_REGEX.search(frame_url):
                continue
            sitekey = _param_from_url(frame_url, FRAME_KEY_PARAMS)
            if sitekey:
                return sitekey
        return None

    async def _sitekey_from_scripts(self, page: PageLike) -> str | None:
        sources = await page.evaluate(SCRIPT_SOURCES_JS) or []
        for source in sources:
            render = _param_from_url(str(source), ("render",))
            if render and render != "explicit":
                return render
        return None

    async def _type_hint(self, page: PageLike) -> str | None:
        try:
            has_api = bool(await page.evaluate(HAS_GRECAPTCHA_JS))
        except PlaywrightError:
            return None
        if has_api and not await self._has_element(page, VISIBLE_WIDGET_SELECTOR):
            return "recaptcha3"
        return None

    async def _has_element(self, page: PageLike, selector: str) -> bool:
        try:
            return await page.query_selector(selector) is not None
        except PlaywrightError:
            return False


class ChallengeResolver:
    """Obtain a token for a detected challenge and push it back into the page."""

    def __init__(
        self,
        *,
        solver: TokenSolver | None,
        search_endpoint: str,
        navigation_timeout: float,
        sleep_fn: SleepFn,
        logger: logging.Logger,
        extension_path: str | None = None,
    ) -> None:
        self._solver = solver
        self._search_endpoint = search_endpoint
        self._navigation_timeout = navigation_timeout
        self._sleep_fn = sleep_fn
        self._logger = logger
        self._extension_path = extension_path

    async def resolve(
        self, page: PageLike, context: ChallengeContext, query: str | None = None
    ) -> ResolveResult:
        if context.kind is ChallengeKind.CONSENT:
            return ResolveResult(solved=True)

        if not context.sitekey:
            if self._extension_path and Path(self._extension_path).exists():
                self._logger.info("CAPTCHA detected; giving the solver extension a moment to act.")
                await self._sleep_fn(EXTENSION_GRACE, EXTENSION_GRACE)
            else:
                self._logger.warning("CAPTCHA detected but no sitekey found; skipping solve.")
            return ResolveResult(solved=False)

        if self._solver is None:
            self._logger.warning("CAPTCHA detected but no NopeCHA key is configured.")
            return ResolveResult(solved=False)

        token = await asyncio.to_thread(
            self._solver.solve, context.sitekey, context.page_url, context.type_hint
        )
        if not token:
            self._logger.warning("CAPTCHA detected but no token was returned.")
            return ResolveResult(solved=False)

        try:
            await page.evaluate(INJECT_TOKEN_JS, token)
            await self._sleep_fn(0.6, 0.6)
            await self._revalidate(page, query or query_from_url(context.page_url))
            await page.wait_for_load_state("domcontentloaded")
        except PlaywrightError as exc:
            self._logger.debug("Token injection/resubmission failed: %s", exc)
        return ResolveResult(solved=True, token=token)

    async def _revalidate(self, page: PageLike, query: str | None) -> None:
        async def submit_form(target: PageLike) -> bool:
            form = await target.query_selector("form")
            if form is None:
                return False
            await form.evaluate("f => f.submit()")
            return True

        async def reopen_results(target: PageLike) -> bool:
            if not query:
                return False
            url = build_search_url(query, self._search_endpoint)
            await target.goto(url, timeout=self._navigation_timeout)
            return True

        async def reload(target: PageLike) -> bool:
            await target.reload()
            return True

        strategies: list[RevalidateStrategy] = [submit_form, reopen_results, reload]
        for strategy in strategies:
            if await strategy(page):
                self._logger.debug("Re-validated challenge page via %s", strategy.__name__)
                return
