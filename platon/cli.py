"""Command line interface: sync cubes and explore a Prometheus instance."""

from __future__ import annotations

import argparse
import sys
from typing import Callable, Sequence

from .clickhouse import ClickHouseError, connect
from .cube import CubeFileError, load_cubes
from .prometheus import DEFAULT_URL, PrometheusClient, PrometheusError
from .service import (
    generate_cube,
    print_dimensions,
    print_metrics,
    value_help,
    watch_cubes,
)
from .storage import Storage, StorageError
from .table import MatchError

PROG = "platon-mk3"

RUN_DESCRIPTION = """Run platon.

Specify a cubes yaml file for cubes to sync, e.g.

---
cubes:
- ttl: 1h
  scrape-interval: 1m
  queries:
  - name: metric1
    promql: metric1
    value: metric1
  name: apiserver-resource-usage
  description: API Server resource usage Analysis
"""

_FAILURES = (CubeFileError, ClickHouseError, PrometheusError, StorageError, MatchError)

Handler = Callable[[argparse.Namespace], int]


def _announce(message: str) -> Handler:
    def handler(args: argparse.Namespace) -> int:
        print(message)
        return 0

    return handler


def _cubes_missing() -> int:
    print("Please specify cubes YAML file using --cubes.")
    return 0


def _run(args: argparse.Namespace) -> int:
    if not args.cubes:
        return _cubes_missing()
    cubes = load_cubes(args.cubes)
    with connect() as database:
        watch_cubes(Storage(database), PrometheusClient(args.prometheus), cubes)
    return 0


def _delete_cube(args: argparse.Namespace) -> int:
    if not args.cubes:
        return _cubes_missing()
    cubes = load_cubes(args.cubes)
    with connect() as database:
        Storage(database).delete_cubes(cubes)
    return 0


def _generate_cube(args: argparse.Namespace) -> int:
    cubes = generate_cube(args.name, args.metrics, PrometheusClient(args.prometheus))
    print(cubes.to_yaml())
    return 0


def _list_dimensions(args: argparse.Namespace) -> int:
    print_dimensions(args.metricfilter, PrometheusClient(args.prometheus))
    return 0


def _list_metrics(args: argparse.Namespace) -> int:
    print_metrics(args.dimensionfilter, PrometheusClient(args.prometheus))
    return 0


def _valuehelp(args: argparse.Namespace) -> int:
    if not args.metric:
        print("Please specify metric with --metric.")
        return 0
    if not args.dimension:
        print("Please specify dimension with --dimension.")
        return 0
    value_help(args.metric, args.dimension, PrometheusClient(args.prometheus))
    return 0


def _cubes_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c", "--cubes", default="", help="File specifying cubes to build and sync"
    )


def build_parser() -> argparse.ArgumentParser:
    """The argument parser with all commands."""
    prometheus = argparse.ArgumentParser(add_help=False)
    prometheus.add_argument(
        "-p",
        "--prometheus",
        default=argparse.SUPPRESS,
        help="URL to prometheus API",
    )

    parser = argparse.ArgumentParser(prog=PROG, description="Build analysis cubes from Prometheus metrics.")
    parser.add_argument("-p", "--prometheus", default=DEFAULT_URL, help="URL to prometheus API")

    def show_help(args: argparse.Namespace) -> int:
        parser.print_help()
        return 0

    parser.set_defaults(handler=show_help)
    commands = parser.add_subparsers(title="commands", metavar="COMMAND")

    run = commands.add_parser(
        "run",
        parents=[prometheus],
        help="Sync cubes into the database",
        description=RUN_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _cubes_option(run)
    run.set_defaults(handler=_run)

    delete = commands.add_parser("delete", parents=[prometheus], help="Delete objects")
    delete.set_defaults(handler=_announce("delete called"))
    delete_commands = delete.add_subparsers(title="objects", metavar="OBJECT")
    delete_cube = delete_commands.add_parser(
        "cube", parents=[prometheus], help="Drop the tables of the given cubes"
    )
    _cubes_option(delete_cube)
    delete_cube.set_defaults(handler=_delete_cube)

    generate = commands.add_parser("generate", parents=[prometheus], help="Generate definitions")
    generate.set_defaults(handler=_announce("generate called"))
    generate_commands = generate.add_subparsers(title="objects", metavar="OBJECT")
    generate_cube_cmd = generate_commands.add_parser(
        "cube", parents=[prometheus], help="Generate a cube definition from metrics"
    )
    generate_cube_cmd.add_argument("-n", "--name", default="MyCube", help="Cube name")
    generate_cube_cmd.add_argument(
        "-m",
        "--dimensionfilter",
        dest="metrics",
        action="append",
        default=[],
        help="Metrics to include in cube",
    )
    generate_cube_cmd.set_defaults(handler=_generate_cube)

    listing = commands.add_parser("list", parents=[prometheus], help="List metrics or dimensions")
    listing.set_defaults(handler=_announce("list called"))
    list_commands = listing.add_subparsers(title="objects", metavar="OBJECT")
    dimensions = list_commands.add_parser(
        "dimensions", parents=[prometheus], help="List all dimensions of the metrics"
    )
    dimensions.add_argument(
        "-m", "--metricfilter", action="append", default=[], help="metrics to query"
    )
    dimensions.set_defaults(handler=_list_dimensions)
    metrics = list_commands.add_parser(
        "metrics",
        parents=[prometheus],
        help="List all metrics available in Prometheus instance",
    )
    metrics.add_argument(
        "-d",
        "--dimensionfilter",
        action="append",
        default=[],
        help="List only metrics with these dimensions",
    )
    metrics.set_defaults(handler=_list_metrics)

    valuehelp = commands.add_parser(
        "valuehelp", parents=[prometheus], help="List the values of a dimension of a metric"
    )
    valuehelp.add_argument("-d", "--dimension", default="", help="dimension to query")
    valuehelp.add_argument("-m", "--metric", default="", help="metric to query")
    valuehelp.set_defaults(handler=_valuehelp)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line; returns the exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.handler(args)
    except _FAILURES as exc:
        print(f"{PROG}: error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())