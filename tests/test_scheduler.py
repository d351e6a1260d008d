import asyncio
import logging

import pytest

from serp_harvester.models import SessionOutcome, SessionResult
from serp_harvester.scheduler import batched, run_batches

LOGGER = logging.getLogger("test")


def test_batched_sizes() -> None:
    queries = [f"q{i}" for i in range(7)]
    assert [len(batch) for batch in batched(queries, 3)] == [3, 3, 1]
    assert list(batched([], 3)) == []
    with pytest.raises(ValueError):
        list(batched(queries, 0))


def test_batches_run_concurrently_and_join_before_next_batch() -> None:
    events: list[tuple[str, str]] = []
    in_flight = 0
    peak = 0

    async def run_one(query: str) -> SessionResult:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        events.append(("start", query))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        events.append(("end", query))
        in_flight -= 1
        return SessionResult(query=query, outcome=SessionOutcome.EXHAUSTED, pages=1, records=0)

    queries = [f"q{i}" for i in range(7)]
    results = asyncio.run(run_batches(queries, 3, run_one, logger=LOGGER))

    assert [result.query for result in results] == queries
    assert peak == 3
    kinds = "".join("S" if kind == "start" else "E" for kind, _ in events)
    assert kinds == "SSSEEESSSEEESE"
    assert [query for kind, query in events if kind == "start"] == queries


def test_failed_session_does_not_abort_batch(caplog: pytest.LogCaptureFixture) -> None:
    async def run_one(query: str) -> SessionResult:
        if query == "bad":
            raise RuntimeError("browser context crashed")
        await asyncio.sleep(0)
        return SessionResult(query=query, outcome=SessionOutcome.EXHAUSTED, pages=1, records=2)

    with caplog.at_level(logging.ERROR):
        results = asyncio.run(
            run_batches(["a", "bad", "c", "d"], 2, run_one, logger=LOGGER, show_progress=True)
        )
    assert [result.query for result in results] == ["a", "c", "d"]
    assert "Session for 'bad' failed: browser context crashed" in caplog.text
