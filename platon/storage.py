"""Storing cube tables in ClickHouse."""

from __future__ import annotations

from typing import Iterable, Protocol, Sequence

from .clickhouse import ClickHouseError
from .cube import Cube, Cubes
from .table import TIME_COLUMN, Table

BATCH_SIZE = 100


class StorageError(Exception):
    """A table could not be inspected, created, filled or dropped."""


class Connection(Protocol):
    def execute(self, sql: str) -> None: ...

    def query(self, sql: str) -> list[tuple]: ...

    def insert(self, table: str, columns: Sequence[str], rows: Iterable[Sequence]) -> None: ...


def _select(
    columns: Sequence[str],
    source: str,
    *,
    joins: Sequence[tuple[str, str, Sequence[str]]] = (),
    group_by: Sequence[str] = (),
    having: Sequence[str] = (),
) -> str:
    parts = [f"SELECT {', '.join(columns) if columns else '*'}", f"FROM {source}"]
    for option, target, on in joins:
        part = f"{option} JOIN {target}" if option else f"JOIN {target}"
        if on:
            part += " ON " + " AND ".join(on)
        parts.append(part)
    if group_by:
        parts.append("GROUP BY " + ", ".join(group_by))
        if having:
            parts.append("HAVING " + " AND ".join(having))
    return " ".join(parts)


def _grouped_columns(table: Table, join_cols: Sequence[str]) -> list[str]:
    return [
        c.name if c.name in join_cols else f'MAX("{c.name}") "{c.name}"'
        for c in table.columns()
    ]


def view_sql(cube: Cube, tables: Sequence[Table]) -> str:
    """The statement creating a view that joins the cube's tables."""
    if not tables:
        raise ValueError(f"cube {cube.name} has no tables for a view")
    metric_columns = cube.metric_columns()
    join_cols = [*cube.joined_labels, TIME_COLUMN]

    aliased: list[str] = []
    for i, table in enumerate(tables):
        for column in table.columns():
            name = column.name
            if name in metric_columns:
                aliased.append(f'{cube.aggregation(name)}("T{i}"."{name}") "{name}"')
            elif i == 0 and (name in cube.joined_labels or name == TIME_COLUMN):
                aliased.append(f'"T{i}"."{name}" "{name}"')
            else:
                aliased.append(f'"T{i}"."{name}" "{table.name}.{name}"')

    left_columns = _grouped_columns(tables[0], join_cols)
    joins: list[tuple[str, str, list[str]]] = []
    group_by: list[str] = []
    unions: list[str] = []
    for i, table in enumerate(tables[1:], start=1):
        on = [f"T0.{c}=T{i}.{c}" for c in join_cols]
        right_columns = _grouped_columns(table, join_cols)
        right_select = _select(
            right_columns,
            f"{table.name} T{i}",
            group_by=join_cols,
            having=["COUNT(Time) = 1"],
        )
        left_select = _select(
            left_columns, table.name, group_by=join_cols, having=["COUNT(Time) != 1"]
        )
        unions.append(
            _select(
                right_columns,
                f"{table.name} T{i}",
                joins=[("INNER ANY", f"({left_select}) T0", on)],
                group_by=join_cols,
            )
        )
        joins.append(("LEFT", f"({right_select}) T1", on))
        group_by.extend(join_cols)

    select = _select(aliased, f"{tables[0].name} T0", joins=joins, group_by=group_by)
    sql = f"CREATE OR REPLACE VIEW {cube.name} AS {select}"
    if unions:
        sql += " UNION ALL " + " UNION ALL ".join(unions)
    return sql


class Storage:
    """Creates and fills cube tables through a ClickHouse connection."""

    def __init__(self, connection: Connection):
        self.connection = connection

    def table_exists(self, table: Table) -> bool:
        sql = f"EXISTS TABLE {table.name}"
        try:
            rows = self.connection.query(sql)
        except ClickHouseError as exc:
            raise StorageError(f"failed to query result row of sql '{sql}': {exc}") from exc
        if not rows or not rows[0]:
            raise StorageError(f"failed to query result row of sql '{sql}': no rows in result")
        try:
            return int(rows[0][0]) == 1
        except (TypeError, ValueError) as exc:
            raise StorageError(f"failed to query result row of sql '{sql}': {exc}") from exc

    def ensure_table(self, table: Table) -> None:
        """Create the table, or add the columns it lacks if it exists."""
        try:
            exists = self.table_exists(table)
        except StorageError as exc:
            raise StorageError(
                f"failed to figure out if table {table.name} exists: {exc}"
            ) from exc
        if exists:
            try:
                self.ensure_columns(table)
            except StorageError as exc:
                raise StorageError(f"failed to update table {table.name}: {exc}") from exc
            return
        try:
            self.create_table(table)
        except StorageError as exc:
            raise StorageError(f"failed to create table {table.name}: {exc}") from exc

    def ensure_columns(self, table: Table) -> None:
        """Add every column of ``table`` missing from the stored table."""
        sql = f"DESCRIBE TABLE {table.name}"
        print(f"Executing sql: {sql}")
        try:
            described = self.connection.query(sql)
        except ClickHouseError as exc:
            raise StorageError(
                f"failed to query table columns with sql '{sql}': {exc}"
            ) from exc
        names: list[str] = []
        labels = ("Name", "Type", "defaultype", "defaultexpression", "Comment", "Codec", "ttl")
        for entry in described:
            if len(entry) < len(labels):
                raise StorageError(
                    f"failed to scan table columns from sql '{sql}': "
                    f"expected {len(labels)} fields, got {len(entry)}"
                )
            print("---")
            for label, value in zip(labels, entry):
                print(f"{label}: {value}")
            names.append(str(entry[0]))

        print(f"{len(names)} columns found in table {table.name}: {names}")

        for column in table.columns():
            if column.name in names:
                continue
            alter = f"ALTER TABLE {table.name} ADD COLUMN {column.name} {column.data_type}"
            print(f"Executing sql: {alter}")
            try:
                self.connection.execute(alter)
            except ClickHouseError as exc:
                raise StorageError(
                    f"failed to update cube table {table.name} with SQL '{alter}': {exc}"
                ) from exc

    def create_table(self, table: Table) -> None:
        columns = ",".join(f"{c.name} {c.data_type}" for c in table.columns())
        sql = f"CREATE TABLE {table.name} ({columns}) PRIMARY KEY(Time)"
        print(sql)
        try:
            self.connection.execute(sql)
        except ClickHouseError as exc:
            raise StorageError(f"failed to create cube table: {exc}") from exc

    def insert_data(self, table: Table) -> None:
        """Insert the rows in full batches of 100; a trailing partial batch is not sent."""
        columns = table.columns()
        names = table.quoted_column_names()
        full_batches = len(table.rows) // BATCH_SIZE
        for batch in range(full_batches):
            chunk = table.rows[batch * BATCH_SIZE : (batch + 1) * BATCH_SIZE]
            values = [row.ordered_values(columns) for row in chunk]
            try:
                self.connection.insert(table.name, names, values)
            except ClickHouseError as exc:
                raise StorageError(f"failed to execute batch batch: {exc}") from exc

    def delete_cubes(self, cubes: Cubes) -> None:
        """Drop each cube's table and the tables of its queries."""
        for cube in cubes:
            sql = f"DROP TABLE IF EXISTS {cube.name}"
            print(sql)
            try:
                self.connection.execute(sql)
            except ClickHouseError as exc:
                raise StorageError(f"failed to create cube table: {exc}") from exc
            for query in cube.queries:
                sql = f"DROP TABLE IF EXISTS {query.name}"
                print(sql)
                try:
                    self.connection.execute(sql)
                except ClickHouseError as exc:
                    raise StorageError(f"failed to drop metrics table: {exc}") from exc

    def create_view(self, cube: Cube, tables: Sequence[Table]) -> None:
        sql = view_sql(cube, tables)
        print("Executing SQL: " + sql)
        try:
            self.connection.execute(sql)
        except ClickHouseError as exc:
            raise StorageError(f"failed to CREATE or UPDATE cube view: {exc}") from exc