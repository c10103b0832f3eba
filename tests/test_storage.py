from datetime import datetime, timezone

import pytest

from platon.clickhouse import ClickHouseError
from platon.cube import Cube, Cubes, Query
from platon.storage import Storage, StorageError, view_sql
from platon.table import Row, Table


class FakeConnection:
    def __init__(self, answers=None, fail_on=None):
        self.answers = answers or {}
        self.fail_on = fail_on
        self.executed = []
        self.queried = []
        self.inserts = []

    def _check(self, sql):
        if self.fail_on is not None and sql.startswith(self.fail_on):
            raise ClickHouseError("Code: 60. boom", code=60)

    def execute(self, sql):
        self._check(sql)
        self.executed.append(sql)

    def query(self, sql):
        self._check(sql)
        self.queried.append(sql)
        for prefix, rows in self.answers.items():
            if sql.startswith(prefix):
                return rows
        return []

    def insert(self, table, columns, rows):
        self.inserts.append((table, list(columns), list(rows)))


def make_table(name="cpu", rows=0):
    table = Table(name=name, dimensions=["pod"], metrics=["cpu"])
    for i in range(rows):
        table.insert_row(
            Row(
                time=datetime.fromtimestamp(60 * i, tz=timezone.utc),
                dimensions={"pod": f"p{i}"},
                metrics={"cpu": float(i)},
            )
        )
    return table


def describe_row(name, data_type):
    return (name, data_type, "", "", "", "", "")


def test_create_table_sql():
    conn = FakeConnection()
    Storage(conn).create_table(make_table())
    assert conn.executed == [
        "CREATE TABLE cpu (Time DateTime,pod String,cpu Float64) PRIMARY KEY(Time)"
    ]


def test_table_exists_reads_flag():
    assert Storage(FakeConnection({"EXISTS TABLE cpu": [(1,)]})).table_exists(make_table())
    assert not Storage(FakeConnection({"EXISTS TABLE cpu": [(0,)]})).table_exists(make_table())


def test_table_exists_without_rows_raises():
    with pytest.raises(StorageError):
        Storage(FakeConnection()).table_exists(make_table())


def test_ensure_table_creates_missing_table():
    conn = FakeConnection({"EXISTS TABLE": [(0,)]})
    Storage(conn).ensure_table(make_table())
    assert len(conn.executed) == 1
    assert conn.executed[0].startswith("CREATE TABLE cpu")


def test_ensure_table_adds_missing_columns():
    conn = FakeConnection(
        {
            "EXISTS TABLE": [(1,)],
            "DESCRIBE TABLE cpu": [describe_row("Time", "DateTime"), describe_row("pod", "String")],
        }
    )
    Storage(conn).ensure_table(make_table())
    assert conn.executed == ["ALTER TABLE cpu ADD COLUMN cpu Float64"]


def test_ensure_columns_no_change_when_complete():
    conn = FakeConnection(
        {
            "DESCRIBE TABLE cpu": [
                describe_row("Time", "DateTime"),
                describe_row("pod", "String"),
                describe_row("cpu", "Float64"),
            ]
        }
    )
    Storage(conn).ensure_columns(make_table())
    assert conn.executed == []


def test_ensure_table_wraps_errors():
    conn = FakeConnection({"EXISTS TABLE": [(0,)]}, fail_on="CREATE TABLE")
    with pytest.raises(StorageError, match="failed to create table cpu"):
        Storage(conn).ensure_table(make_table())


def test_insert_data_only_full_batches():
    conn = FakeConnection()
    table = make_table(rows=250)
    Storage(conn).insert_data(table)
    assert len(conn.inserts) == 2
    assert all(len(rows) == 100 for _, _, rows in conn.inserts)
    name, columns, rows = conn.inserts[0]
    assert name == "cpu"
    assert columns == table.quoted_column_names()
    assert rows[0] == table.rows[0].ordered_values(table.columns())
    assert conn.inserts[1][2][0] == table.rows[100].ordered_values(table.columns())


def test_insert_data_small_table_sends_nothing():
    conn = FakeConnection()
    Storage(conn).insert_data(make_table(rows=50))
    assert conn.inserts == []


def test_delete_cubes_drops_cube_and_query_tables():
    conn = FakeConnection()
    cubes = Cubes(cubes=[Cube(name="cube", queries=[Query(name="a"), Query(name="b")])])
    Storage(conn).delete_cubes(cubes)
    assert conn.executed == [
        "DROP TABLE IF EXISTS cube",
        "DROP TABLE IF EXISTS a",
        "DROP TABLE IF EXISTS b",
    ]


def test_delete_cubes_error():
    conn = FakeConnection(fail_on="DROP TABLE IF EXISTS a")
    cubes = Cubes(cubes=[Cube(name="cube", queries=[Query(name="a")])])
    with pytest.raises(StorageError, match="failed to drop metrics table"):
        Storage(conn).delete_cubes(cubes)


def test_view_sql_single_table():
    cube = Cube(name="cube", queries=[Query(name="cpu", aggregation="SUM")], joined_labels=["pod"])
    sql = view_sql(cube, [make_table()])
    assert sql.startswith("CREATE OR REPLACE VIEW cube AS SELECT ")
    assert 'SUM("T0"."cpu") "cpu"' in sql
    assert '"T0"."pod" "pod"' in sql
    assert sql.endswith("FROM cpu T0")
    assert "UNION ALL" not in sql


def test_view_sql_two_tables():
    cube = Cube(
        name="cube",
        queries=[Query(name="cpu"), Query(name="mem", aggregation="MAX")],
        joined_labels=["pod"],
    )
    mem = Table(name="mem", dimensions=["pod", "node"], metrics=["mem"])
    sql = view_sql(cube, [make_table(), mem])
    assert sql.count(" UNION ALL ") == 1
    assert "LEFT JOIN (" in sql
    assert "INNER ANY JOIN (" in sql
    assert "T0.pod=T1.pod AND T0.Time=T1.Time" in sql
    assert "HAVING COUNT(Time) = 1" in sql
    assert "HAVING COUNT(Time) != 1" in sql
    assert '"T1"."node" "mem.node"' in sql
    assert 'MAX("T1"."mem") "mem"' in sql


def test_view_sql_without_tables():
    with pytest.raises(ValueError):
        view_sql(Cube(name="cube"), [])


def test_create_view_executes_sql():
    conn = FakeConnection()
    cube = Cube(name="cube", queries=[Query(name="cpu")], joined_labels=["pod"])
    tables = [make_table()]
    Storage(conn).create_view(cube, tables)
    assert conn.executed == [view_sql(cube, tables)]


def test_create_view_error():
    conn = FakeConnection(fail_on="CREATE OR REPLACE VIEW")
    cube = Cube(name="cube", queries=[Query(name="cpu")])
    with pytest.raises(StorageError, match="failed to CREATE or UPDATE cube view"):
        Storage(conn).create_view(cube, [make_table()])