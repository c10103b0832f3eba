# platon

`platon` reads time series from a Prometheus server and turns them into
flat tables ("cubes") in ClickHouse that are ready for analysis. Each query of
a cube is stored in its own table. The query tables are also joined on a set
of shared labels into one wide table named after the cube.

## Installation

```
pip install .
```

This installs the `platon` command. Its help output names the program
`platon-mk3`.

## Describing cubes

Cubes are described in a YAML file:

```yaml
cubes:
- name: apiserver_resource_usage
  description: API server resource usage analysis
  ttl: 1h
  scrape-interval: 1m
  joined-labels:
  - pod
  - namespace
  queries:
  - name: cpu
    promql: rate(container_cpu_usage_seconds_total[5m])
    value: cpu
    aggregation: SUM
  - name: memory
    promql: container_memory_working_set_bytes
    value: memory
```

Durations use forms such as `1h`, `1m30s` or `500ms`.

For each query, the result of a range query with a one-minute step is stored
in a table named after the query. That table has these columns:

- a `Time` column of type `DateTime`;
- one `String` column for each label (except `__name__`);
- one `Float64` column, named after the query's `value`.

In the cube table, the labels listed in `joined-labels` are shared by all
queries. The other labels of the second and later queries are prefixed with
the query name, as in `memory_container`. If a row cannot be matched to
exactly one row, extra rows are added, and `*` stands for the values that are
not known.

## Usage

Every command takes `--prometheus` / `-p` for the address of the Prometheus
API. The default is `http://localhost:9090`. TLS certificates are not
verified.

To explore what a Prometheus instance offers:

```
platon list metrics
platon list metrics --dimensionfilter pod --dimensionfilter namespace
platon list dimensions --metricfilter up
platon valuehelp --metric up --dimension job
```

To generate a starting cube file from a set of metrics, with one query per
metric and the labels common to all of them as the joined labels:

```
platon generate cube --name MyCube --dimensionfilter up --dimensionfilter process_cpu_seconds_total > cubes.yaml
```

To keep the cubes in ClickHouse up to date:

```
platon run --cubes cubes.yaml
```

This checks the cubes once a minute and refreshes each cube whose scrape
interval has passed. The first refresh reads the past hour. Later refreshes
read from one minute after the previous refresh. Missing tables are created,
and missing columns are added to tables that already exist. It runs until it
is interrupted.

To drop the tables of the cubes again:

```
platon delete cube --cubes cubes.yaml
```

If the commands that need a cubes file are called without `--cubes`, they
print a hint and do nothing. Errors from reading the file, from Prometheus or
from ClickHouse are printed to standard error, and the exit status is then 1.

## Using it as a library

- `platon.cube`: `Cube`, `Query`, `Cubes.from_yaml`, `Cubes.to_yaml`,
  `load_cubes`, `parse_duration`, `format_duration`
- `platon.prometheus`: `PrometheusClient` (`query_range`, `label_values`,
  `get_metrics`, `query_values`)
- `platon.table`: `Table`, `Row`, `SampleStream`, `metrics_to_table`
- `platon.join`: `left_join`, `full_table`
- `platon.clickhouse`: `ClickHouse`, `connect`, a client for the HTTP interface
- `platon.storage`: `Storage`, `view_sql`
- `platon.service`: `update_cube`, `watch_cubes`, `generate_cube`,
  `print_dimensions`, `print_metrics`, `value_help`

## Limitations

- The commands always connect to ClickHouse over HTTP at
  `http://localhost:8123`, database `default`. Use `platon.clickhouse.ClickHouse`
  directly for another address.
- Rows are inserted in full batches of 100. A final batch with fewer than 100
  rows is not stored.
- The `ttl` of a cube is read and written back, but it is not applied to the
  stored data.
- `aggregation` is used only by `Storage.create_view` / `view_sql`. No command
  creates views.