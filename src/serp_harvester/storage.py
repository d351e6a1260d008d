"""Supabase sink and fire-and-forget record dispatch."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from supabase import Client, create_client

from .models import Record, RecordSink


def make_supabase_client(url: str, key: str) -> Client:
    return create_client(url, key)


def to_rows(records: Sequence[Record]) -> list[dict[str, str]]:
    return [
        {"email": record.email, "query": record.query, "created_at": record.timestamp}
        for record in records
    ]


class SupabaseSink:
    """RecordSink inserting into a Supabase table. Errors are logged, not raised."""

    def __init__(self, client: Any, table: str, *, logger: logging.Logger) -> None:
        self._client = client
        self._table = table
        self._logger = logger

    def check_connection(self) -> bool:
        """Run a one-row select to confirm the table is reachable."""
        try:
            self._client.table(self._table).select("*").limit(1).execute()
        except Exception as exc:  # supabase-py surfaces several client/transport error types
            self._logger.error("Supabase connection failed: %s", exc)
            return False
        self._logger.info("Supabase connected (%s)", self._table)
        return True

    def _insert(self, rows: list[dict[str, str]]) -> None:
        self._client.table(self._table).insert(rows).execute()

    async def write(self, records: Sequence[Record]) -> None:
        if not records:
            return
        rows = to_rows(records)
        try:
            await asyncio.to_thread(self._insert, rows)
        except Exception as exc:  # supabase-py surfaces several client/transport error types
            self._logger.error("Supabase insert into %s failed: %s", self._table, exc)
            return
        self._logger.info("Inserted %d rows to Supabase (%s)", len(rows), self._table)


class RecordDispatcher:
    """Hand records to every sink without making the caller wait."""

    def __init__(self, sinks: Sequence[RecordSink], *, logger: logging.Logger) -> None:
        self._sinks = list(sinks)
        self._logger = logger
        self._pending: set[asyncio.Task[None]] = set()

    def dispatch(self, records: Sequence[Record]) -> None:
        if not records:
            return
        batch = tuple(records)
        for sink in self._sinks:
            task = asyncio.create_task(sink.write(batch))
            self._pending.add(task)
            task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error("Record sink failed: %s", exc)

    async def drain(self) -> None:
        """Wait for every outstanding sink write."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
