"""High-level operations: syncing cubes and exploring a Prometheus instance."""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Sequence

from tabulate import tabulate

from .cube import Cube, Cubes, Query
from .join import full_table
from .prometheus import DEFAULT_RANGE, STEP, PrometheusClient, PrometheusError
from .storage import Storage, StorageError
from .table import Table, metrics_to_table

PREVIEW_ROWS = 10
WATCH_INTERVAL = 60.0
DEFAULT_SCRAPE_INTERVAL = timedelta(minutes=1)


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _store(storage: Storage, table: Table) -> None:
    storage.ensure_table(table)
    try:
        storage.insert_data(table)
    except StorageError as exc:
        raise StorageError(f"failed to add data to table {table.name}: {exc}") from exc


def update_cube(storage: Storage, client: PrometheusClient, cube: Cube) -> Table:
    """Query every series of the cube, store the per-query tables and the joined cube table."""
    end = datetime.now(timezone.utc)
    if cube.last_update is None:
        start = end - DEFAULT_RANGE
    else:
        start = _aware(cube.last_update) + STEP

    tables: list[Table] = []
    for query in cube.queries:
        print(f"Querying prometheus: {query.promql}")
        matrix = client.query_range(query.promql, start, end)
        table = metrics_to_table(query, matrix)
        tables.append(table)
        table.pretty_print(PREVIEW_ROWS)
        _store(storage, table)

    joined = full_table(cube, tables)
    _store(storage, joined)
    return joined


def watch_cubes(storage: Storage, client: PrometheusClient, cubes: Cubes) -> None:
    """Update each cube whenever its scrape interval has passed; runs until interrupted."""
    while True:
        for cube in cubes:
            if cube.last_update is not None:
                due = _aware(cube.last_update) + timedelta(seconds=cube.scrape_interval)
                if due > datetime.now(timezone.utc):
                    continue
            print(f"Updating cube {cube.name}.")
            update_cube(storage, client, cube)
            cube.last_update = datetime.now(timezone.utc)
        time.sleep(WATCH_INTERVAL)


def generate_cube(name: str, metric_names: Sequence[str], client: PrometheusClient) -> Cubes:
    """A cube definition with one query per metric, joined on the labels all metrics share."""
    metrics = client.get_metrics(*metric_names)
    cube = Cube(
        name=name,
        description="My Cube",
        ttl=DEFAULT_RANGE.total_seconds(),
        scrape_interval=DEFAULT_SCRAPE_INTERVAL.total_seconds(),
    )
    common: list[str] = []
    for index, metric in enumerate(metrics):
        cube.queries.append(Query(name=metric.name, promql=metric.name, value=metric.name))
        if index == 0:
            common = list(metric.dimensions)
        else:
            common = [label for label in common if label in metric.dimensions]
    cube.joined_labels = common
    return Cubes(cubes=[cube])


def print_dimensions(metrics_filter: Sequence[str], client: PrometheusClient) -> list[str]:
    """Print the sorted distinct dimensions of the selected metrics and return them."""
    metrics = client.get_metrics(*metrics_filter)
    dimensions = sorted({dim for metric in metrics for dim in metric.dimensions})
    print("All Dimensions:")
    for dim in dimensions:
        print(dim)
    print(f"{len(dimensions)} dimensions found in Prometheus instance.")
    return dimensions


def print_metrics(dimension_filter: Sequence[str], client: PrometheusClient) -> list[str]:
    """Print the metrics having all given dimensions and return their names."""
    metrics = client.get_metrics()
    selected = [m for m in metrics if all(f in m.dimensions for f in dimension_filter)]
    rows = [(m.name, ", ".join(m.dimensions)) for m in selected]
    print("All Metrics:")
    print(tabulate(rows, headers=["Metric", "Dimensions"], tablefmt="grid"))
    print(
        f"listing {len(selected)} metrics out of {len(metrics)} found in Prometheus instance."
    )
    return [m.name for m in selected]


def value_help(metric: str, dimension: str, client: PrometheusClient) -> list[str]:
    """Print the values a dimension of a metric took in the past hour and return them."""
    try:
        values = client.query_values(metric, dimension)
    except PrometheusError as exc:
        raise PrometheusError(f"failed to query metric {metric}: {exc}") from exc
    print(
        f"{len(values)} values found for dimension {dimension} "
        f"in metric {metric} in the past hour:"
    )
    for value in values:
        print(value)
    return values