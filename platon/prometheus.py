"""Client for the Prometheus HTTP query API."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import requests

from .table import NAME_LABEL, SampleStream

DEFAULT_URL = "http://localhost:9090"
DEFAULT_RANGE = timedelta(hours=1)
STEP = timedelta(minutes=1)
QUERY_TIMEOUT = "5s"


class PrometheusError(Exception):
    """A request to Prometheus failed or returned something unusable."""


@dataclass
class Metric:
    """A metric name and the labels seen on its series."""

    name: str
    dimensions: list[str] = field(default_factory=list)


def _timestamp(value: datetime | float) -> float:
    if isinstance(value, datetime):
        return value.timestamp()
    return float(value)


class PrometheusClient:
    """Queries one Prometheus instance; TLS certificates are not verified."""

    def __init__(
        self,
        url: str = DEFAULT_URL,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ):
        self.url = url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.verify = False

    def _get(self, path: str, params: dict[str, Any]) -> Any:
        try:
            response = self._session.get(self.url + path, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise PrometheusError(f"failed to reach Prometheus at {self.url}: {exc}") from exc
        try:
            payload = response.json()
        except ValueError as exc:
            text = response.text.strip()
            raise PrometheusError(f"HTTP {response.status_code}: {text}") from exc
        if not isinstance(payload, dict):
            raise PrometheusError(f"HTTP {response.status_code}: unexpected response body")
        warnings = payload.get("warnings") or []
        if warnings:
            print(f"Warnings: {warnings}")
        if payload.get("status") != "success":
            kind = payload.get("errorType") or "error"
            message = payload.get("error") or f"HTTP {response.status_code}"
            raise PrometheusError(f"{kind}: {message}")
        return payload.get("data")

    def query_range(
        self, query: str, start: datetime | float, end: datetime | float
    ) -> list[SampleStream]:
        """Run a range query with a one-minute step and return its series."""
        params = {
            "query": query,
            "start": _timestamp(start),
            "end": _timestamp(end),
            "step": int(STEP.total_seconds()),
            "timeout": QUERY_TIMEOUT,
        }
        try:
            data = self._get("/api/v1/query_range", params)
            if not isinstance(data, dict) or data.get("resultType") != "matrix":
                kind = data.get("resultType") if isinstance(data, dict) else None
                raise PrometheusError(f"expected a matrix result, got {kind!r}")
            return [
                SampleStream(
                    metric={str(k): str(v) for k, v in (series.get("metric") or {}).items()},
                    values=[(float(ts), float(val)) for ts, val in series.get("values") or []],
                )
                for series in data.get("result") or []
            ]
        except PrometheusError as exc:
            raise PrometheusError(f"error querying Prometheus: {exc}") from exc

    def label_values(
        self,
        label: str,
        start: datetime | float | None = None,
        end: datetime | float | None = None,
    ) -> list[str]:
        """All values of a label, optionally restricted to a time window."""
        params: dict[str, Any] = {}
        if start is not None:
            params["start"] = _timestamp(start)
        if end is not None:
            params["end"] = _timestamp(end)
        data = self._get(f"/api/v1/label/{label}/values", params)
        if not isinstance(data, list):
            raise PrometheusError("expected a list of label values")
        return [str(value) for value in data]

    def _recent(self, query: str) -> list[SampleStream]:
        now = datetime.now(timezone.utc)
        return self.query_range(query, now - DEFAULT_RANGE, now)

    def get_metrics(self, *args: str) -> list[Metric]:
        """Metrics and their dimensions; the arguments, if any, restrict the metric names."""
        metrics = []
        for name in self.label_values(NAME_LABEL):
            if args and name not in args:
                continue
            try:
                streams = self._recent(name)
            except PrometheusError as exc:
                raise PrometheusError(f"failed to query metric {name}: {exc}") from exc
            metric = Metric(name=name)
            for stream in streams:
                for label in stream.metric:
                    if label != NAME_LABEL and label not in metric.dimensions:
                        metric.dimensions.append(label)
            metrics.append(metric)
        return metrics

    def query_values(self, metric: str, dimension: str) -> list[str]:
        """Distinct values of one label of a metric over the default range."""
        try:
            streams = self._recent(metric)
        except PrometheusError as exc:
            raise PrometheusError(
                f"failed to query prometheus for metric {metric}: {exc}"
            ) from exc
        values: list[str] = []
        for stream in streams:
            value = stream.metric.get(dimension)
            if value is not None and value not in values:
                values.append(value)
        return values