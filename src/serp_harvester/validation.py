"""Validation, input loading and runtime guardrails."""

from __future__ import annotations

import asyncio
import csv
import random
from pathlib import Path

from .errors import ConfigError, InputError

QUERY_COLUMNS = ("query", "q", "search")


async def polite_sleep(min_delay: float, max_delay: float) -> None:
    """Sleep within configured bounds."""
    await asyncio.sleep(random.uniform(min_delay, max_delay))


def load_lines_from_file(path: str) -> list[str]:
    """Load non-empty lines from a UTF-8 text file."""
    content = Path(path).read_text(encoding="utf-8")
    return [line.strip() for line in content.splitlines() if line.strip()]


def _load_csv_queries(path: Path) -> list[str]:
    queries: list[str] = []
    with path.open(newline="", encoding="utf-8") as file_obj:
        for row in csv.DictReader(file_obj):
            value = ""
            for column in QUERY_COLUMNS:
                if row.get(column):
                    value = str(row[column])
                    break
            if value.strip():
                queries.append(value.strip())
    return queries


def load_queries(path: str) -> list[str]:
    """Load search queries from a CSV file (query/q/search column) or a text file.

    Raises InputError when the file is missing or yields no queries.
    """
    input_path = Path(path)
    if not input_path.is_file():
        raise InputError(f"Input file not found: {path}")
    try:
        if input_path.suffix.lower() == ".csv":
            queries = _load_csv_queries(input_path)
        else:
            queries = load_lines_from_file(path)
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise InputError(f"Could not read input file {path}: {exc}") from exc
    if not queries:
        raise InputError(f"No queries found in input file: {path}")
    return queries


def resolve_concurrency(browsers: int, tabs_per_browser: int, requested: int | None) -> int:
    """Return the concurrency ceiling, defaulting to browsers x tabs."""
    if requested is not None:
        return requested
    return max(1, browsers * tabs_per_browser)


def validate_runtime_constraints(
    *,
    browsers: int,
    tabs_per_browser: int,
    concurrency: int,
    max_unsolved_challenges: int,
    max_consecutive_errors: int,
    poll_interval: float,
    max_poll_attempts: int,
    poll_budget: float,
) -> None:
    """Validate CLI/runtime configuration and raise ConfigError on invalid values."""
    if browsers < 1 or tabs_per_browser < 1:
        raise ConfigError("--browsers and --tabs-per-browser must be >= 1.")
    if concurrency < 1:
        raise ConfigError("--concurrency must be >= 1.")
    if max_unsolved_challenges < 1:
        raise ConfigError("--max-unsolved-challenges must be >= 1.")
    if max_consecutive_errors < 1:
        raise ConfigError("max_consecutive_errors must be >= 1.")
    if poll_interval < 0:
        raise ConfigError("--poll-interval must be >= 0.")
    if max_poll_attempts < 1:
        raise ConfigError("--max-poll-attempts must be >= 1.")
    if poll_budget <= 0:
        raise ConfigError("--poll-budget must be > 0.")
