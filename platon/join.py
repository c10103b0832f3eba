"""Joining the per-query tables of a cube into one wide table."""

from __future__ import annotations

from typing import Sequence

from .cube import Cube
from .table import TIME_COLUMN, MatchError, Row, Table

WILDCARD = "*"


def _column(name: str, table_name: str, joined_labels: Sequence[str]) -> str:
    if name in joined_labels:
        return name
    return f"{table_name}_{name}"


def _copy(row: Row) -> Row:
    return Row(time=row.time, dimensions=dict(row.dimensions), metrics=dict(row.metrics))


def left_join(left: Table, cube: Cube, right: Table) -> Table:
    """Join ``right`` onto ``left`` on the cube's joined labels and time.

    Dimensions of ``right`` that are not joined labels are prefixed with its
    name. Ambiguous matches produce extra rows with ``*`` for unknown values.
    """
    labels = list(cube.joined_labels)
    joined = Table(name=left.name, dimensions=list(left.dimensions), metrics=list(left.metrics))
    for dim in right.dimensions:
        column = dim if dim == TIME_COLUMN else _column(dim, right.name, labels)
        if column not in joined.dimensions:
            joined.dimensions.append(column)
    for metric in right.metrics:
        if metric not in joined.metrics:
            joined.metrics.append(metric)

    for row in left.rows:
        joined.insert_row(_copy(row))

    for row in right.rows:
        try:
            left_matches = left.count_matches(labels, row)
        except MatchError as exc:
            raise MatchError(
                f"failed to count matches between tables {left.name} and {right.name}: {exc}"
            ) from exc
        renamed = {_column(d, right.name, labels): v for d, v in row.dimensions.items()}

        if left_matches == 0:
            joined.insert_row(Row(time=row.time, dimensions=renamed, metrics=dict(row.metrics)))
            continue

        if left_matches == 1:
            try:
                right_matches = right.count_matches(labels, row)
            except MatchError as exc:
                raise MatchError(
                    f"failed to count matches between tables {left.name} and {right.name}: {exc}"
                ) from exc
            try:
                matching = joined.first_matching_row(labels, row)
            except MatchError as exc:
                raise MatchError(
                    "failed to get matching row in joined table when joining "
                    f"{left.name} and {right.name}"
                ) from exc
            if right_matches == 1:
                matching.dimensions.update(renamed)
                matching.metrics.update(row.metrics)
                continue
            for dim in renamed:
                matching.dimensions[dim] = WILDCARD

        new_row = Row(time=row.time, dimensions=renamed, metrics=dict(row.metrics))
        for dim in joined.dimensions:
            new_row.dimensions.setdefault(dim, WILDCARD)
        joined.insert_row(new_row)

    return joined


def full_table(cube: Cube, tables: Sequence[Table]) -> Table:
    """Join all tables of a cube from left to right into a table named after the cube."""
    if not tables:
        raise ValueError(f"cube {cube.name} has no tables to join")
    first, *rest = tables
    result = Table(
        name=first.name,
        dimensions=list(first.dimensions),
        metrics=list(first.metrics),
        rows=list(first.rows),
    )
    for table in rest:
        try:
            result = left_join(result, cube, table)
        except MatchError as exc:
            raise MatchError(
                f"failed to platon left join tables {result.name} and {table.name}: {exc}"
            ) from exc
    result.name = cube.name
    return result