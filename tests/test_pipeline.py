import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import pytest

from serp_harvester import pipeline
from serp_harvester.config import HarvestConfig
from serp_harvester.io_csv import CsvSink
from serp_harvester.models import SessionOutcome
from serp_harvester.pipeline import build_sinks, build_solver, harvest_queries, run_pipeline
from serp_harvester.solver import NopechaClient

from fakes import FakePage, RecordingSink, no_sleep

LOGGER = logging.getLogger("test")


class ExplodingPage(FakePage):
    async def evaluate(self, expression: str, arg: object = None) -> object:
        raise RuntimeError("renderer crashed")


class PageFactory:
    def __init__(self, pages: dict[str, FakePage]) -> None:
        self.pages = pages
        self.opened: list[str] = []
        self.closed: list[str] = []

    def __call__(self, query: str):  # type: ignore[no-untyped-def]
        @asynccontextmanager
        async def opener() -> AsyncIterator[FakePage]:
            self.opened.append(query)
            try:
                yield self.pages[query]
            finally:
                self.closed.append(query)

        return opener()


def test_harvest_queries_runs_each_query_in_its_own_page() -> None:
    config = HarvestConfig(concurrency=2, show_progress=False)
    factory = PageFactory(
        {
            "roofers": FakePage(text="a@roof.io b@roof.io"),
            "dentists": FakePage(text="a@roof.io smile@teeth.io"),
            "broken": ExplodingPage(),
        }
    )
    sink = RecordingSink()
    results = asyncio.run(
        harvest_queries(
            config,
            ["roofers", "dentists", "broken"],
            open_page=factory,
            solver=None,
            sinks=[sink],
            sleep_fn=no_sleep,
            logger=LOGGER,
        )
    )
    outcomes = {result.query: result.outcome for result in results}
    assert outcomes == {
        "roofers": SessionOutcome.EXHAUSTED,
        "dentists": SessionOutcome.EXHAUSTED,
        "broken": SessionOutcome.FAILED,
    }
    assert sorted(factory.closed) == ["broken", "dentists", "roofers"]
    assert len(factory.closed) == len(factory.opened)
    # Dedup is per query: the same address is recorded under both queries.
    assert sorted((r.query, r.email) for batch in sink.batches for r in batch) == [
        ("dentists", "a@roof.io"),
        ("dentists", "smile@teeth.io"),
        ("roofers", "a@roof.io"),
        ("roofers", "b@roof.io"),
    ]


def test_build_solver_only_with_key() -> None:
    assert build_solver(HarvestConfig(), logger=LOGGER) is None
    solver = build_solver(HarvestConfig(nopecha_key="key"), logger=LOGGER)
    assert isinstance(solver, NopechaClient)


def test_build_sinks_defaults_to_csv_only(tmp_path: Path) -> None:
    sinks = build_sinks(HarvestConfig(output=str(tmp_path / "out.csv")), logger=LOGGER)
    assert len(sinks) == 1
    assert isinstance(sinks[0], CsvSink)


def test_build_sinks_adds_supabase_when_configured(monkeypatch: pytest.MonkeyPatch) -> None:
    class FakeClient:
        def table(self, _name: str) -> "FakeClient":
            return self

        def select(self, _columns: str) -> "FakeClient":
            return self

        def limit(self, _count: int) -> "FakeClient":
            return self

        def execute(self) -> None:
            return None

    monkeypatch.setattr(pipeline, "make_supabase_client", lambda _url, _key: FakeClient())
    config = HarvestConfig(supabase_url="https://x.supabase.co", supabase_key="k")
    assert len(build_sinks(config, logger=LOGGER)) == 2


def test_build_sinks_falls_back_to_csv_when_client_rejected(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def reject(_url: str, _key: str) -> None:
        raise ValueError("Invalid URL")

    monkeypatch.setattr(pipeline, "make_supabase_client", reject)
    config = HarvestConfig(supabase_url="not-a-url", supabase_key="k")
    sinks = build_sinks(config, logger=LOGGER)
    assert len(sinks) == 1
    assert isinstance(sinks[0], CsvSink)


def test_run_pipeline_initializes_output_and_closes_browser(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    events: list[str] = []

    @asynccontextmanager
    async def fake_launch_browser(*, headless: bool) -> AsyncIterator[object]:
        events.append(f"launch headless={headless}")
        yield object()
        events.append("close")

    async def fake_harvest_queries(config, queries, **kwargs):  # type: ignore[no-untyped-def]
        events.append(f"harvest {list(queries)}")
        assert callable(kwargs["open_page"])
        return []

    monkeypatch.setattr(pipeline, "launch_browser", fake_launch_browser)
    monkeypatch.setattr(pipeline, "harvest_queries", fake_harvest_queries)
    output = tmp_path / "out.csv"
    config = HarvestConfig(output=str(output), headless=True)

    assert asyncio.run(run_pipeline(config, ["q1"], logger=LOGGER)) == []
    assert events == ["launch headless=True", "harvest ['q1']", "close"]
    assert output.read_text(encoding="utf-8") == "email,query,timestamp\n"
