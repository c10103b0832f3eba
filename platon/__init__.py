"""Build analytical cubes from Prometheus metrics and store them in ClickHouse."""

__version__ = "0.3.0"