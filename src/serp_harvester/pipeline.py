"""Core orchestration pipeline."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager

from .browser import launch_browser, query_page
from .challenge import ChallengeDetector, ChallengeResolver
from .config import HarvestConfig
from .io_csv import CsvSink, ensure_header
from .models import PageLike, RecordSink, SessionResult, SleepFn, TokenSolver
from .pagination import Paginator
from .scheduler import run_batches
from .session import QuerySession
from .solver import NopechaClient, make_retry_session
from .storage import RecordDispatcher, SupabaseSink, make_supabase_client
from .validation import polite_sleep

PageOpener = Callable[[str], AbstractAsyncContextManager[PageLike]]


def build_solver(config: HarvestConfig, *, logger: logging.Logger) -> TokenSolver | None:
    if not config.nopecha_key:
        return None
    return NopechaClient(
        session=make_retry_session(config.user_agent),
        api_key=config.nopecha_key,
        timeout=config.request_timeout,
        logger=logger,
        base_url=config.solver_url,
        poll_interval=config.poll_interval,
        max_poll_attempts=config.max_poll_attempts,
        poll_budget=config.poll_budget,
        action=config.recaptcha_action,
    )


def build_sinks(config: HarvestConfig, *, logger: logging.Logger) -> list[RecordSink]:
    """CSV always, Supabase when credentials are configured."""
    sinks: list[RecordSink] = [CsvSink(config.output, logger=logger)]
    if not config.use_supabase:
        return sinks
    try:
        client = make_supabase_client(str(config.supabase_url), str(config.supabase_key))
    except Exception as exc:  # supabase-py rejects malformed URLs and keys at creation
        logger.error("Could not create Supabase client: %s", exc)
        return sinks
    supabase_sink = SupabaseSink(client, config.supabase_table, logger=logger)
    supabase_sink.check_connection()
    sinks.append(supabase_sink)
    return sinks


async def harvest_queries(
    config: HarvestConfig,
    queries: Sequence[str],
    *,
    open_page: PageOpener,
    solver: TokenSolver | None,
    sinks: Sequence[RecordSink],
    sleep_fn: SleepFn = polite_sleep,
    logger: logging.Logger,
) -> list[SessionResult]:
    """Run every query through its own session and wait for all sink writes."""
    dispatcher = RecordDispatcher(sinks, logger=logger)
    detector = ChallengeDetector(sleep_fn=sleep_fn, logger=logger)
    resolver = ChallengeResolver(
        solver=solver,
        search_endpoint=config.search_endpoint,
        navigation_timeout=config.navigation_timeout,
        sleep_fn=sleep_fn,
        logger=logger,
        extension_path=config.extension_path,
    )
    paginator = Paginator(sleep_fn=sleep_fn, logger=logger)

    async def run_one(query: str) -> SessionResult:
        async with open_page(query) as page:
            session = QuerySession(
                query,
                page,
                detector=detector,
                resolver=resolver,
                paginator=paginator,
                dispatcher=dispatcher,
                search_endpoint=config.search_endpoint,
                navigation_timeout=config.navigation_timeout,
                max_unsolved_challenges=config.max_unsolved_challenges,
                max_consecutive_errors=config.max_consecutive_errors,
                sleep_fn=sleep_fn,
                logger=logger,
            )
            return await session.run()

    try:
        results = await run_batches(
            queries,
            config.concurrency,
            run_one,
            logger=logger,
            show_progress=config.show_progress,
        )
    finally:
        await dispatcher.drain()
    logger.info(
        "Completed %d/%d queries, %d new emails",
        len(results),
        len(queries),
        sum(result.records for result in results),
    )
    return results


async def run_pipeline(
    config: HarvestConfig, queries: Sequence[str], *, logger: logging.Logger
) -> list[SessionResult]:
    """Build concrete dependencies, launch the shared browser and harvest."""
    ensure_header(config.output, logger)
    sinks = build_sinks(config, logger=logger)
    solver = build_solver(config, logger=logger)
    async with launch_browser(headless=config.headless) as browser:

        def open_page(_query: str) -> AbstractAsyncContextManager[PageLike]:
            return query_page(browser, user_agent=config.user_agent, logger=logger)

        return await harvest_queries(
            config,
            queries,
            open_page=open_page,
            solver=solver,
            sinks=sinks,
            logger=logger,
        )
