"""CSV serialization helpers."""

from __future__ import annotations

import csv
import logging
import shutil
import time
from collections.abc import Sequence
from pathlib import Path

from .errors import OutputError
from .models import Record

CSV_FIELDS = ["email", "query", "timestamp"]
HEADER_LINE = ",".join(CSV_FIELDS)


def ensure_header(path: str, logger: logging.Logger) -> None:
    """Create the output CSV with its header, backing up files with a different header."""
    output_path = Path(path)
    try:
        if output_path.exists():
            with output_path.open(encoding="utf-8") as file_obj:
                first_line = file_obj.readline().strip()
            if first_line == HEADER_LINE:
                return
            backup = output_path.with_name(
                f"{output_path.stem}.backup-{int(time.time() * 1000)}{output_path.suffix}"
            )
            shutil.copyfile(output_path, backup)
            logger.info("Existing output had a different header. Backed up to %s", backup)
        output_path.write_text(HEADER_LINE + "\n", encoding="utf-8")
    except OSError as exc:
        raise OutputError(f"Could not initialize output CSV header: {exc}") from exc


def append_rows(path: str, records: Sequence[Record]) -> None:
    """Append records to the CSV using standard quoting."""
    if not records:
        return
    with Path(path).open("a", newline="", encoding="utf-8") as file_obj:
        writer = csv.writer(file_obj, lineterminator="\n")
        for record in records:
            writer.writerow([record.email, record.query, record.timestamp])


class CsvSink:
    """RecordSink appending to a flat CSV file."""

    def __init__(self, path: str, *, logger: logging.Logger) -> None:
        self._path = path
        self._logger = logger

    async def write(self, records: Sequence[Record]) -> None:
        try:
            append_rows(self._path, records)
        except OSError as exc:
            self._logger.error("Failed to append to CSV %s: %s", self._path, exc)
