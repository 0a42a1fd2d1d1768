"""Value types passed between the parser, dispatcher, table and encoder.

All of them are request-local and immutable once built.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class ExecutionMode(str, Enum):
    """How the counting service may fan out a count across shards."""

    SINGLE_THREADED = "single_threaded"
    PARALLEL = "parallel"


QuerySource = Union[str, dict[str, Any]]


@dataclass(frozen=True)
class CountQuery:
    """A count to run against zero or more index patterns.

    ``source`` is either the raw payload the caller sent (``str``) or a
    query built from structured parameters (``dict``). ``None`` counts all.
    """

    indices: tuple[str, ...] = ()
    source: QuerySource | None = None
    execution_mode: ExecutionMode = ExecutionMode.SINGLE_THREADED


@dataclass(frozen=True)
class CountResult:
    count: int
    observed_at_millis: int

    def __post_init__(self) -> None:
        if self.count < 0:
            raise ValueError(f"count must be non-negative, got {self.count}")


@dataclass(frozen=True)
class ColumnSpec:
    name: str
    description: str = ""


@dataclass(frozen=True)
class Table:
    """Header plus rows. Rows are positional and match ``columns``."""

    columns: tuple[ColumnSpec, ...]
    rows: tuple[tuple[Any, ...], ...] = ()

    def __post_init__(self) -> None:
        names = [c.name for c in self.columns]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate column names: {names}")
        for row in self.rows:
            self._check_width(row)

    def _check_width(self, row: tuple[Any, ...]) -> None:
        if len(row) != len(self.columns):
            raise ValueError(
                f"row has {len(row)} cells, table has {len(self.columns)} columns"
            )

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.columns)

    def with_row(self, *cells: Any) -> Table:
        """Return a new table with one more row appended."""
        self._check_width(cells)
        return Table(columns=self.columns, rows=self.rows + (tuple(cells),))

    def as_dicts(self) -> list[dict[str, Any]]:
        names = self.column_names
        return [dict(zip(names, row)) for row in self.rows]


@dataclass(frozen=True)
class RequestContext:
    """Content-negotiation flags of the request being answered."""

    format: str = "text"
    verbose: bool = False
    help: bool = False
    pretty: bool = False


@dataclass(frozen=True)
class ErrorCause:
    type: str
    reason: str


@dataclass(frozen=True)
class ErrorResponse:
    """A failure ready for the encoder. ``causes`` runs outermost first."""

    context: RequestContext
    status: int = 500
    causes: tuple[ErrorCause, ...] = field(default_factory=tuple)

    @property
    def root_cause(self) -> ErrorCause | None:
        return self.causes[-1] if self.causes else None
