import os

import pytest

from serp_harvester.cli import main

requires_live = pytest.mark.skipif(
    os.getenv("RUN_LIVE_INTEGRATION") != "1",
    reason="Set RUN_LIVE_INTEGRATION=1 to execute live integration tests.",
)


@requires_live
def test_live_help_command_smoke() -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["--help"])
    assert excinfo.value.code == 0


@requires_live
def test_live_single_query_run(tmp_path) -> None:
    queries = tmp_path / "input.csv"
    queries.write_text("query\nplumbers contact email\n", encoding="utf-8")
    output = tmp_path / "out.csv"
    argv = ["--input", str(queries), "--output", str(output), "--headless", "--no-progress"]
    assert main(argv) == 0
    assert output.read_text(encoding="utf-8").startswith("email,query,timestamp")
