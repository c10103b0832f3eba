"""In-memory tables built from Prometheus range query results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from tabulate import tabulate

from .cube import Query

TIME_COLUMN = "Time"
TIME_KIND = "Time"
DIMENSION_KIND = "Dimension"
METRIC_KIND = "Metric"
NAME_LABEL = "__name__"


class MatchError(LookupError):
    """Raised when rows cannot be matched on the requested dimensions."""


@dataclass
class SampleStream:
    """One series of a range query: its labels and (timestamp seconds, value) pairs."""

    metric: dict[str, str] = field(default_factory=dict)
    values: list[tuple[float, float]] = field(default_factory=list)


@dataclass(frozen=True)
class Column:
    name: str
    data_type: str
    column_type: str


@dataclass
class Row:
    time: datetime
    dimensions: dict[str, str] = field(default_factory=dict)
    metrics: dict[str, float] = field(default_factory=dict)

    def ordered_values(self, order: Iterable[Column]) -> list[Any]:
        """Values of this row in column order; missing metrics are None."""
        values: list[Any] = []
        for column in order:
            if column.column_type == DIMENSION_KIND:
                values.append(self.dimensions.get(column.name, ""))
            elif column.column_type == METRIC_KIND:
                values.append(self.metrics.get(column.name))
            elif column.column_type == TIME_KIND:
                values.append(self.time.astimezone(timezone.utc))
        return values


@dataclass
class Table:
    name: str = ""
    dimensions: list[str] = field(default_factory=list)
    metrics: list[str] = field(default_factory=list)
    rows: list[Row] = field(default_factory=list)

    def columns(self) -> list[Column]:
        """The time column, then dimensions, then metrics."""
        return [
            Column(TIME_COLUMN, "DateTime", TIME_KIND),
            *(Column(d, "String", DIMENSION_KIND) for d in self.dimensions),
            *(Column(m, "Float64", METRIC_KIND) for m in self.metrics),
        ]

    def quoted_column_names(self) -> list[str]:
        return [f'"{name}"' for name in (TIME_COLUMN, *self.dimensions, *self.metrics)]

    def add_query_result(self, query: Query, matrix: Iterable[SampleStream]) -> None:
        """Append one row per sample of every series in the matrix."""
        for stream in matrix:
            for timestamp, value in stream.values:
                row = Row(time=datetime.fromtimestamp(int(timestamp), tz=timezone.utc))
                row.metrics[self.metric(query.value)] = float(value)
                for label, label_value in stream.metric.items():
                    if label == NAME_LABEL:
                        continue
                    row.dimensions[self.dimension(label)] = label_value
                self.insert_row(row)

    def insert_row(self, row: Row) -> None:
        self.rows.append(row)

    def render(self, limit: int) -> str:
        """Render at most ``limit`` rows as a text table."""
        columns = self.columns()
        headers = [f"{c.column_type}\n{c.name}\n{c.data_type}" for c in columns]
        body = [row.ordered_values(columns) for row in self.rows[: max(limit, 0)]]
        return tabulate(body, headers=headers, tablefmt="grid", missingval="")

    def pretty_print(self, limit: int) -> None:
        print(self.render(limit))

    def dimension(self, name: str) -> str:
        """Register a dimension column if new and return its name."""
        if name not in self.dimensions:
            self.dimensions.append(name)
        return name

    def metric(self, name: str) -> str:
        """Register a metric column if new and return its name."""
        if name not in self.metrics:
            self.metrics.append(name)
        return name

    def _matches(self, row: Row, dimensions: Sequence[str], other: Row) -> bool:
        equal = True
        for dim in dimensions:
            if dim not in row.dimensions:
                raise MatchError(f"dimension {dim} doesn't exist in table {self.name}")
            if dim not in other.dimensions:
                raise MatchError(f"dimension {dim} doesn't exist in other row")
            equal = equal and row.dimensions[dim] == other.dimensions[dim]
        return equal and row.time == other.time

    def count_matches(self, dimensions: Sequence[str], other: Row) -> int:
        """Number of rows sharing the time and all given dimension values with ``other``."""
        return sum(1 for row in self.rows if self._matches(row, dimensions, other))

    def first_matching_row(self, dimensions: Sequence[str], other: Row) -> Row:
        for row in self.rows:
            if self._matches(row, dimensions, other):
                return row
        raise MatchError(f"no matching row found in table {self.name}")


def metrics_to_table(query: Query, matrix: Iterable[SampleStream]) -> Table:
    """Build a table named after the query from a range query result."""
    table = Table(name=query.name)
    table.add_query_result(query, matrix)
    print(f"Rows added to internal table: {len(table.rows)}")
    return table