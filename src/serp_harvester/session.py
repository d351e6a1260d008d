"""Per-query session controller: detect, resolve, extract, paginate."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from playwright.async_api import Error as PlaywrightError

from .browser import read_page_text
from .challenge import ChallengeDetector, ChallengeResolver
from .extraction import build_search_url, extract_emails
from .models import PageLike, Record, SessionOutcome, SessionResult, SleepFn
from .pagination import Paginator
from .storage import RecordDispatcher


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class QuerySession:
    """Run one query to a terminal state on a page it exclusively owns.

    The loop never stops on page count. It ends when the paginator finds no
    next page, when ``max_unsolved_challenges`` consecutive iterations hit a
    challenge that could not be cleared, or after ``max_consecutive_errors``
    iterations in a row raised.
    """

    def __init__(
        self,
        query: str,
        page: PageLike,
        *,
        detector: ChallengeDetector,
        resolver: ChallengeResolver,
        paginator: Paginator,
        dispatcher: RecordDispatcher,
        search_endpoint: str,
        navigation_timeout: float,
        max_unsolved_challenges: int,
        max_consecutive_errors: int,
        sleep_fn: SleepFn,
        logger: logging.Logger,
    ) -> None:
        self.query = query
        self.page = page
        self.seen: set[str] = set()
        self.page_number = 1
        self.unsolved_streak = 0
        self.error_streak = 0
        self.records_emitted = 0
        self._detector = detector
        self._resolver = resolver
        self._paginator = paginator
        self._dispatcher = dispatcher
        self._search_endpoint = search_endpoint
        self._navigation_timeout = navigation_timeout
        self._max_unsolved = max_unsolved_challenges
        self._max_errors = max_consecutive_errors
        self._sleep_fn = sleep_fn
        self._logger = logger

    async def run(self) -> SessionResult:
        self._logger.info("Searching for: %s", self.query)
        await self._load()
        outcome = SessionOutcome.FAILED
        while True:
            try:
                outcome_or_none = await self._iterate()
            except Exception as exc:  # any single-iteration failure is retried from detection
                self.error_streak += 1
                self._logger.warning(
                    "Iteration failed for %r on page %d: %s", self.query, self.page_number, exc
                )
                if self.error_streak >= self._max_errors:
                    outcome = SessionOutcome.FAILED
                    break
                continue
            self.error_streak = 0
            if outcome_or_none is not None:
                outcome = outcome_or_none
                break
        self._logger.info(
            "Done for %r (%s): %d unique emails over %d pages",
            self.query,
            outcome.value,
            len(self.seen),
            self.page_number,
        )
        return SessionResult(
            query=self.query,
            outcome=outcome,
            pages=self.page_number,
            records=self.records_emitted,
        )

    async def _load(self) -> None:
        url = build_search_url(self.query, self._search_endpoint)
        try:
            await self.page.goto(url, timeout=self._navigation_timeout)
        except PlaywrightError as exc:
            self._logger.warning("Page load error for %r: %s", self.query, exc)

    async def _iterate(self) -> SessionOutcome | None:
        self._logger.info("Page %d for %r", self.page_number, self.query)
        context = await self._detector.detect(self.page)
        if context is None:
            self.unsolved_streak = 0
        else:
            result = await self._resolver.resolve(self.page, context, query=self.query)
            if result.solved:
                self.unsolved_streak = 0
                await self._sleep_fn(1.0, 2.5)
            else:
                self.unsolved_streak += 1
                self._logger.warning(
                    "Challenge present and not solved for %r (%d in a row)",
                    self.query,
                    self.unsolved_streak,
                )
                if self.unsolved_streak >= self._max_unsolved:
                    self._logger.warning("Too many unsolved challenges. Stopping %r.", self.query)
                    return SessionOutcome.BLOCKED

        await self.harvest()

        if not await self._paginator.advance(self.page):
            self._logger.info("No more pages for %r.", self.query)
            return SessionOutcome.EXHAUSTED
        self.page_number += 1
        await self._sleep_fn(1.5, 3.0)
        return None

    async def harvest(self) -> list[Record]:
        """Extract emails from the current page and dispatch the unseen ones."""
        text = await read_page_text(self.page, self._logger)
        fresh = sorted(extract_emails(text) - self.seen)
        self.seen.update(fresh)
        if not fresh:
            self._logger.info("No new emails on this page.")
            return []
        timestamp = utc_timestamp()
        records = [Record(email=email, query=self.query, timestamp=timestamp) for email in fresh]
        self.records_emitted += len(records)
        self._dispatcher.dispatch(records)
        self._logger.info("%d new emails stored for %r", len(records), self.query)
        return records
