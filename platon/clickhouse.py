"""A small ClickHouse client over the HTTP interface."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

import requests

DEFAULT_URL = "http://localhost:8123"
DEFAULT_DATABASE = "default"
CLIENT_NAME = "platon/Mk3"

_ERROR_CODE = re.compile(r"Code:\s*(\d+)")


class ClickHouseError(Exception):
    """A request to ClickHouse failed; ``code`` holds the server's error code if any."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return value


class ClickHouse:
    """Connection to one ClickHouse database."""

    def __init__(
        self,
        url: str = DEFAULT_URL,
        database: str = DEFAULT_DATABASE,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ):
        self.url = url.rstrip("/")
        self.database = database
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", CLIENT_NAME)
        self._session.headers["User-Agent"] = CLIENT_NAME

    def __enter__(self) -> ClickHouse:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _request(self, method: str, path: str = "/", *, params=None, data=None) -> str:
        try:
            response = self._session.request(
                method, self.url + path, params=params, data=data, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise ClickHouseError(f"failed to reach ClickHouse at {self.url}: {exc}") from exc
        if response.status_code != 200:
            text = response.text.strip()
            match = _ERROR_CODE.search(text)
            raise ClickHouseError(
                text or f"HTTP {response.status_code}",
                code=int(match.group(1)) if match else None,
            )
        return response.text

    def ping(self) -> None:
        text = self._request("GET", "/ping")
        if text.strip() != "Ok.":
            raise ClickHouseError(f"unexpected ping response: {text!r}")

    def execute(self, sql: str) -> None:
        """Run a statement that returns no rows."""
        self._request("POST", params={"database": self.database}, data=sql.encode("utf-8"))

    def query(self, sql: str) -> list[tuple]:
        """Run a query and return its rows as tuples."""
        text = self._request(
            "POST",
            params={"database": self.database, "default_format": "JSONCompact"},
            data=sql.encode("utf-8"),
        )
        if not text.strip():
            return []
        payload = json.loads(text)
        return [tuple(row) for row in payload.get("data", [])]

    def insert(self, table: str, columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> None:
        """Insert rows, each holding values in the order of ``columns``."""
        lines = [json.dumps([_encode(v) for v in row]) for row in rows]
        if not lines:
            return
        statement = f"INSERT INTO {table} ({', '.join(columns)}) FORMAT JSONCompactEachRow"
        self._request(
            "POST",
            params={"database": self.database, "query": statement},
            data="\n".join(lines).encode("utf-8"),
        )

    def close(self) -> None:
        self._session.close()


def connect(url: str = DEFAULT_URL, database: str = DEFAULT_DATABASE) -> ClickHouse:
    """Open a connection and check that the server answers."""
    client = ClickHouse(url, database)
    try:
        client.ping()
    except ClickHouseError:
        client.close()
        raise
    return client