"""Cube definitions and the YAML file that lists them."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterator

import yaml

DEFAULT_AGGREGATION = "SUM"

_NS_PER_SECOND = 1_000_000_000
_UNIT_NS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": _NS_PER_SECOND,
    "m": 60 * _NS_PER_SECOND,
    "h": 3600 * _NS_PER_SECOND,
}
_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|\u00b5s|\u03bcs|ms|s|m|h)")


class CubeFileError(ValueError):
    """Raised when a cubes file cannot be read or parsed."""


def parse_duration(text: str) -> float:
    """Parse a duration such as ``1h30m`` or ``500ms`` into seconds."""
    if not isinstance(text, str):
        raise TypeError(f"duration must be a string, not {type(text).__name__}")
    body = text
    sign = 1
    if body[:1] in ("+", "-"):
        sign = -1 if body[0] == "-" else 1
        body = body[1:]
    if body == "0":
        return 0.0
    if not body:
        raise ValueError(f"invalid duration {text!r}")
    total = Decimal(0)
    pos = 0
    while pos < len(body):
        match = _COMPONENT.match(body, pos)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        total += Decimal(match.group(1)) * _UNIT_NS[match.group(2)]
        pos = match.end()
    return sign * int(total) / _NS_PER_SECOND


def _fraction(value: int, scale: int) -> str:
    if scale == 1:
        return ""
    digits = str(value).zfill(len(str(scale)) - 1).rstrip("0")
    return f".{digits}" if digits else ""


def format_duration(seconds: float | timedelta) -> str:
    """Format seconds the way durations are written in cube files, e.g. ``1h0m0s``."""
    if isinstance(seconds, timedelta):
        seconds = seconds.total_seconds()
    total = int((Decimal(str(seconds)) * _NS_PER_SECOND).to_integral_value())
    sign = "-" if total < 0 else ""
    nanos = abs(total)
    if nanos < _NS_PER_SECOND:
        if nanos == 0:
            return "0s"
        if nanos < 1_000:
            scale, unit = 1, "ns"
        elif nanos < 1_000_000:
            scale, unit = 1_000, "\u00b5s"
        else:
            scale, unit = 1_000_000, "ms"
        whole, frac = divmod(nanos, scale)
        return f"{sign}{whole}{_fraction(frac, scale)}{unit}"
    whole, frac = divmod(nanos, _NS_PER_SECOND)
    minutes, secs = divmod(whole, 60)
    hours, minutes = divmod(minutes, 60)
    text = f"{secs}{_fraction(frac, _NS_PER_SECOND)}s"
    if minutes or hours:
        text = f"{minutes}m{text}"
    if hours:
        text = f"{hours}h{text}"
    return sign + text


def _mapping(data: Any, what: str) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise CubeFileError(f"{what} must be a mapping")
    return data


def _text(value: Any, key: str) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise CubeFileError(f"field {key!r} must be a scalar")
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _duration(value: Any, key: str) -> float:
    if value is None:
        return 0.0
    if not isinstance(value, str):
        raise CubeFileError(f"field {key!r} must be a duration string such as '1m'")
    try:
        return parse_duration(value)
    except ValueError as exc:
        raise CubeFileError(f"field {key!r}: {exc}") from exc


def _list(value: Any, key: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise CubeFileError(f"field {key!r} must be a list")
    return value


def _timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise CubeFileError(f"invalid timestamp {value!r}") from exc
    raise CubeFileError(f"invalid timestamp {value!r}")


@dataclass
class Query:
    """One PromQL query feeding a cube."""

    name: str = ""
    promql: str = ""
    value: str = ""
    aggregation: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Query:
        entry = _mapping(data, "query")
        return cls(
            name=_text(entry.get("name"), "name"),
            promql=_text(entry.get("promql"), "promql"),
            value=_text(entry.get("value"), "value"),
            aggregation=_text(entry.get("aggregation"), "aggregation"),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "promql": self.promql,
            "value": self.value,
            "aggregation": self.aggregation,
        }


@dataclass
class Cube:
    """A set of queries joined on common labels into one table."""

    name: str = ""
    description: str = ""
    ttl: float = 0.0
    scrape_interval: float = 0.0
    queries: list[Query] = field(default_factory=list)
    joined_labels: list[str] = field(default_factory=list)
    last_update: datetime | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Cube:
        entry = _mapping(data, "cube")
        return cls(
            name=_text(entry.get("name"), "name"),
            description=_text(entry.get("description"), "description"),
            ttl=_duration(entry.get("ttl"), "ttl"),
            scrape_interval=_duration(entry.get("scrape-interval"), "scrape-interval"),
            queries=[Query.from_dict(q) for q in _list(entry.get("queries"), "queries")],
            joined_labels=[
                _text(label, "joined-labels")
                for label in _list(entry.get("joined-labels"), "joined-labels")
            ],
            last_update=_timestamp(entry.get("lastupdate")),
        )

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "description": self.description,
            "ttl": format_duration(self.ttl),
            "scrape-interval": format_duration(self.scrape_interval),
            "queries": [q.to_dict() for q in self.queries],
            "joined-labels": list(self.joined_labels),
        }
        if self.last_update is not None:
            data["lastupdate"] = self.last_update
        return data

    def metric_columns(self) -> list[str]:
        """Names of the metric columns, one per query."""
        return [q.name for q in self.queries]

    def aggregation(self, query: str) -> str:
        """Aggregation of the named query, ``SUM`` when no query has that name."""
        for q in self.queries:
            if q.name == query:
                return q.aggregation
        return DEFAULT_AGGREGATION


@dataclass
class Cubes:
    """The contents of a cubes file."""

    cubes: list[Cube] = field(default_factory=list)

    def __iter__(self) -> Iterator[Cube]:
        return iter(self.cubes)

    def __len__(self) -> int:
        return len(self.cubes)

    @classmethod
    def from_yaml(cls, text: str) -> Cubes:
        try:
            data = yaml.safe_load(text)
            document = _mapping(data, "cubes file")
            entries = _list(document.get("cubes"), "cubes")
            return cls(cubes=[Cube.from_dict(entry) for entry in entries])
        except yaml.YAMLError as exc:
            raise CubeFileError(f"can't parse cube file: {exc}") from exc
        except CubeFileError as exc:
            raise CubeFileError(f"can't parse cube file: {exc}") from exc

    def to_yaml(self) -> str:
        document = {"cubes": [cube.to_dict() for cube in self.cubes]}
        return yaml.safe_dump(document, sort_keys=False, allow_unicode=True)


def load_cubes(path: str | Path) -> Cubes:
    """Read and parse a cubes YAML file."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise CubeFileError(f"can't read cube file: {exc}") from exc
    return Cubes.from_yaml(text)