"""Batch scheduler bounding concurrent query sessions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator, Sequence

from tqdm import tqdm

from .models import SessionResult

RunOne = Callable[[str], Awaitable[SessionResult]]


def batched(queries: Sequence[str], size: int) -> Iterator[list[str]]:
    """Yield consecutive slices of at most ``size`` queries."""
    if size < 1:
        raise ValueError("batch size must be >= 1")
    for start in range(0, len(queries), size):
        yield list(queries[start : start + size])


async def run_batches(
    queries: Sequence[str],
    ceiling: int,
    run_one: RunOne,
    *,
    logger: logging.Logger,
    show_progress: bool = False,
) -> list[SessionResult]:
    """Run sessions batch by batch; a batch fully settles before the next starts."""
    results: list[SessionResult] = []
    progress = tqdm(total=len(queries), desc="queries") if show_progress else None
    try:
        for batch in batched(queries, ceiling):
            settled = await asyncio.gather(*(run_one(q) for q in batch), return_exceptions=True)
            for query, outcome in zip(batch, settled):
                if isinstance(outcome, BaseException):
                    logger.error("Session for %r failed: %s", query, outcome)
                    continue
                results.append(outcome)
            if progress is not None:
                progress.update(len(batch))
    finally:
        if progress is not None:
            progress.close()
    return results
