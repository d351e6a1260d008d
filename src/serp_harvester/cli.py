"""CLI entrypoint for serp-harvester."""

from __future__ import annotations

import argparse
import asyncio
import os
from collections.abc import Sequence

from dotenv import load_dotenv

from .config import (
    DEFAULT_MAX_POLL_ATTEMPTS,
    DEFAULT_MAX_UNSOLVED_CHALLENGES,
    DEFAULT_POLL_BUDGET,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SUPABASE_TABLE,
    HarvestConfig,
)
from .errors import ConfigError, InputError, OutputError
from .logging_utils import configure_logging, get_logger
from .pipeline import run_pipeline
from .validation import load_queries, resolve_concurrency


def _env_int(name: str) -> int | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}.") from exc


def _first_env(*names: str) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(
        description="SERP Harvester - paginate search results, clear challenges, collect emails."
    )
    parser.add_argument("--input", default="input.csv", help="Query file (CSV or one per line).")
    parser.add_argument("--output", default="output.csv", help="Output CSV path (appended).")
    parser.add_argument("--env-file", default=".env", help="Optional .env file to load.")
    parser.add_argument(
        "--headless",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Run Chromium headless (or set HEADLESS=true).",
    )
    parser.add_argument("--browsers", type=int, help="Browser instances (or BROWSERS).")
    parser.add_argument(
        "--tabs-per-browser", type=int, help="Tabs per browser (or TABS_PER_BROWSER)."
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        help="Concurrent query sessions (or CONCURRENCY; default browsers x tabs).",
    )
    parser.add_argument("--nopecha-key", help="NopeCHA key (or set NOPECHA_API_KEY).")
    parser.add_argument(
        "--extension-path", help="NopeCHA extension path (or NOPECHA_EXTENSION_PATH)."
    )
    parser.add_argument("--supabase-table", help="Supabase table (or SUPABASE_TABLE).")
    parser.add_argument(
        "--max-unsolved-challenges",
        type=int,
        default=DEFAULT_MAX_UNSOLVED_CHALLENGES,
        help="Consecutive unsolved challenges before a query is abandoned.",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help="Seconds between NopeCHA result polls.",
    )
    parser.add_argument(
        "--max-poll-attempts",
        type=int,
        default=DEFAULT_MAX_POLL_ATTEMPTS,
        help="Maximum NopeCHA result polls per ticket.",
    )
    parser.add_argument(
        "--poll-budget",
        type=float,
        default=DEFAULT_POLL_BUDGET,
        help="Wall-clock seconds allowed per NopeCHA ticket.",
    )
    parser.add_argument("--no-progress", action="store_true", help="Disable tqdm progress bars.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def namespace_to_config(args: argparse.Namespace) -> HarvestConfig:
    """Convert CLI args plus environment fallbacks to a validated HarvestConfig."""
    logger = get_logger()
    headless = args.headless
    if headless is None:
        headless = os.getenv("HEADLESS", "").strip().lower() == "true"
    browsers = args.browsers if args.browsers is not None else _env_int("BROWSERS") or 1
    tabs = (
        args.tabs_per_browser
        if args.tabs_per_browser is not None
        else _env_int("TABS_PER_BROWSER") or 1
    )
    requested = args.concurrency if args.concurrency is not None else _env_int("CONCURRENCY")
    nopecha_key = args.nopecha_key or _first_env("NOPECHA_API_KEY", "NOPECHA_KEY")

    if not nopecha_key:
        logger.warning("No NopeCHA key found; CAPTCHAs will not be solved automatically.")
    elif nopecha_key.lower().startswith("sub_"):
        logger.warning(
            "NopeCHA key looks like a subscription id (sub_...). "
            "Use the API key from the NopeCHA dashboard."
        )

    return HarvestConfig(
        input_path=args.input,
        output=args.output,
        headless=headless,
        browsers=browsers,
        tabs_per_browser=tabs,
        concurrency=resolve_concurrency(browsers, tabs, requested),
        nopecha_key=nopecha_key,
        extension_path=args.extension_path or os.getenv("NOPECHA_EXTENSION_PATH") or None,
        supabase_url=os.getenv("SUPABASE_URL") or None,
        supabase_key=_first_env("SUPABASE_SERVICE_ROLE", "SUPABASE_KEY", "SUPABASE_ANON_KEY"),
        supabase_table=(
            args.supabase_table or os.getenv("SUPABASE_TABLE") or DEFAULT_SUPABASE_TABLE
        ),
        max_unsolved_challenges=args.max_unsolved_challenges,
        poll_interval=args.poll_interval,
        max_poll_attempts=args.max_poll_attempts,
        poll_budget=args.poll_budget,
        show_progress=not args.no_progress,
    )


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    configure_logging(args.verbose)
    logger = get_logger()
    load_dotenv(args.env_file)
    try:
        config = namespace_to_config(args)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    try:
        queries = load_queries(config.input_path)
        results = asyncio.run(run_pipeline(config, queries, logger=logger))
    except (InputError, OutputError) as exc:
        logger.error("%s", exc)
        return 1
    logger.info("All %d queries completed. Output written to %s", len(results), config.output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
