import json
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlsplit

import pytest
import requests
import responses

from platon.clickhouse import ClickHouse, ClickHouseError, connect

URL = "http://localhost:8123"


@pytest.fixture
def mocked():
    with responses.RequestsMock() as rsps:
        yield rsps


def query_params(request):
    return parse_qs(urlsplit(request.url).query)


def test_connect_pings(mocked):
    mocked.add(responses.GET, URL + "/ping", body="Ok.\n")
    client = connect(URL, "default")
    assert client.database == "default"
    assert len(mocked.calls) == 1
    assert mocked.calls[0].request.headers["User-Agent"] == "platon/Mk3"


def test_connect_failure_carries_code(mocked):
    mocked.add(
        responses.GET,
        URL + "/ping",
        status=500,
        body="Code: 516. DB::Exception: Authentication failed",
    )
    with pytest.raises(ClickHouseError) as info:
        connect(URL, "default")
    assert info.value.code == 516


def test_ping_unexpected_body(mocked):
    mocked.add(responses.GET, URL + "/ping", body="nope")
    with pytest.raises(ClickHouseError, match="unexpected ping response"):
        ClickHouse(URL).ping()


def test_execute_sends_sql(mocked):
    mocked.add(responses.POST, URL + "/", body="")
    ClickHouse(URL, "analytics").execute("DROP TABLE IF EXISTS cube")
    request = mocked.calls[0].request
    assert request.body == b"DROP TABLE IF EXISTS cube"
    assert query_params(request)["database"] == ["analytics"]


def test_execute_error(mocked):
    mocked.add(
        responses.POST,
        URL + "/",
        status=404,
        body="Code: 60. DB::Exception: Table default.x doesn't exist",
    )
    with pytest.raises(ClickHouseError) as info:
        ClickHouse(URL).execute("DESCRIBE TABLE x")
    assert info.value.code == 60
    assert "doesn't exist" in str(info.value)


def test_query_parses_rows(mocked):
    payload = {"meta": [{"name": "result", "type": "UInt8"}], "data": [[1]], "rows": 1}
    mocked.add(responses.POST, URL + "/", body=json.dumps(payload))
    rows = ClickHouse(URL).query("EXISTS TABLE cube")
    assert rows == [(1,)]
    assert query_params(mocked.calls[0].request)["default_format"] == ["JSONCompact"]


def test_query_empty_body(mocked):
    mocked.add(responses.POST, URL + "/", body="")
    assert ClickHouse(URL).query("SELECT 1 WHERE 0") == []


def test_insert_encodes_rows(mocked):
    mocked.add(responses.POST, URL + "/", body="")
    when = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    ClickHouse(URL).insert(
        "cube", ['"Time"', '"pod"', '"cpu"'], [[when, "a", 1.5], [when, "b", None]]
    )
    request = mocked.calls[0].request
    lines = [json.loads(line) for line in request.body.decode("utf-8").splitlines()]
    assert lines == [["2024-01-02 03:04:05", "a", 1.5], ["2024-01-02 03:04:05", "b", None]]
    statement = query_params(request)["query"][0]
    assert statement.startswith("INSERT INTO cube (")
    assert '"Time", "pod", "cpu"' in statement


def test_insert_without_rows_sends_nothing(mocked):
    payload = {"meta": [{"name": "result", "type": "UInt8"}], "data": [[7]], "rows": 1}
    mocked.add(responses.POST, URL + "/", body=json.dumps(payload))
    client = ClickHouse(URL)
    client.insert("cube", ['"Time"'], [])
    rows = client.query("SELECT 7")
    assert rows == [(7,)]
    assert len(mocked.calls) == 1
    assert mocked.calls[0].request.body == b"SELECT 7"


def test_connection_error(mocked):
    mocked.add(responses.POST, URL + "/", body=requests.ConnectionError("refused"))
    with pytest.raises(ClickHouseError, match="failed to reach ClickHouse"):
        ClickHouse(URL).execute("SELECT 1")


def test_context_manager_returns_client(mocked):
    mocked.add(responses.POST, URL + "/", body="")
    with ClickHouse(URL, "default") as client:
        client.execute("SELECT 1")
    assert mocked.calls[0].request.body == b"SELECT 1"