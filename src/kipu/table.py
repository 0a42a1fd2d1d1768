"""The count table: fixed three-column schema, one row per count."""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime

from kipu.models import ColumnSpec, CountResult, Table

TIMESTAMP_PATTERN = "%H:%M:%S"

COUNT_COLUMNS = (
    ColumnSpec("time", "time, in milliseconds since epoch UTC, that the count was executed"),
    ColumnSpec("timestamp", "time that the count was executed"),
    ColumnSpec("count", "the document count"),
)

HELP_COLUMNS = (
    ColumnSpec("column", "column name"),
    ColumnSpec("description", "what the column holds"),
)


def epoch_millis() -> int:
    return time.time_ns() // 1_000_000


def format_timestamp(millis: int) -> str:
    """Render epoch milliseconds as local ``HH:mm:ss``."""
    return datetime.fromtimestamp(millis / 1000).strftime(TIMESTAMP_PATTERN)


class CountTableBuilder:
    """Builds count tables. Holds only the clock, so it is safe to share."""

    def __init__(self, clock: Callable[[], int] = epoch_millis):
        self._clock = clock

    def header(self) -> Table:
        return Table(columns=COUNT_COLUMNS)

    def row(self, result: CountResult, now_millis: int | None = None) -> Table:
        # one clock read feeds both time columns
        now = self._clock() if now_millis is None else now_millis
        return self.header().with_row(now, format_timestamp(now), result.count)

    def help(self) -> Table:
        table = Table(columns=HELP_COLUMNS)
        for column in COUNT_COLUMNS:
            table = table.with_row(column.name, column.description)
        return table
