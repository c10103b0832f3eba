import pytest

from platon.cube import (
    Cube,
    CubeFileError,
    Cubes,
    Query,
    format_duration,
    load_cubes,
    parse_duration,
)

EXAMPLE = """\
---
cubes:
- ttl: 1h
  scrape-interval: 1m
  name: apiserver-resource-usage
  description: API Server resource usage Analysis
  joined-labels:
  - pod
  queries:
  - name: cpu
    promql: rate(cpu[5m])
    value: cpu
    aggregation: AVG
  - name: mem
    promql: mem
    value: mem
"""


def test_parse_hour():
    assert parse_duration("1h") == 3600


def test_parse_compound_is_sum_of_parts():
    assert parse_duration("1h30m") == parse_duration("1h") + parse_duration("30m")


def test_parse_negative_and_zero():
    assert parse_duration("-1h") == -parse_duration("1h")
    assert parse_duration("0") == 0


def test_parse_milliseconds_equal_fraction():
    assert parse_duration("500ms") == parse_duration("0.5s")


@pytest.mark.parametrize("text", ["", "1", "1x", "h", "1h ", "-"])
def test_parse_invalid(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_parse_rejects_non_string():
    with pytest.raises(TypeError):
        parse_duration(60)


def test_format_hour_and_zero():
    assert format_duration(3600) == "1h0m0s"
    assert format_duration(0) == "0s"


@pytest.mark.parametrize(
    "seconds", [0.5, 1.5, 59, 60, 90, 3600, 5400, 86400, 0.000001, 0.000000001, -90]
)
def test_format_round_trip(seconds):
    assert parse_duration(format_duration(seconds)) == pytest.approx(seconds)


def test_from_yaml_example():
    cubes = Cubes.from_yaml(EXAMPLE)
    assert len(cubes) == 1
    cube = cubes.cubes[0]
    assert cube.name == "apiserver-resource-usage"
    assert cube.description == "API Server resource usage Analysis"
    assert cube.ttl == parse_duration("1h")
    assert cube.scrape_interval == parse_duration("1m")
    assert cube.joined_labels == ["pod"]
    assert cube.queries[0] == Query(name="cpu", promql="rate(cpu[5m])", value="cpu", aggregation="AVG")


def test_metric_columns_and_aggregation():
    cube = Cubes.from_yaml(EXAMPLE).cubes[0]
    assert cube.metric_columns() == ["cpu", "mem"]
    assert cube.aggregation("cpu") == "AVG"
    assert cube.aggregation("mem") == ""
    assert cube.aggregation("missing") == "SUM"


def test_yaml_round_trip():
    cubes = Cubes.from_yaml(EXAMPLE)
    assert Cubes.from_yaml(cubes.to_yaml()) == cubes


def test_dict_round_trip():
    cube = Cube(name="c", ttl=120, scrape_interval=30, queries=[Query(name="q", promql="up")])
    assert Cube.from_dict(cube.to_dict()) == cube


def test_empty_document_has_no_cubes():
    assert Cubes.from_yaml("").cubes == []


def test_unknown_keys_are_ignored():
    cubes = Cubes.from_yaml("cubes:\n- name: a\n  promql: [x]\n")
    assert cubes.cubes[0].name == "a"


@pytest.mark.parametrize(
    "text",
    ["cubes: [\n", "- a\n- b\n", "cubes:\n- ttl: 5\n", "cubes:\n- ttl: soon\n", "cubes: 3\n"],
)
def test_invalid_documents(text):
    with pytest.raises(CubeFileError, match="can't parse cube file"):
        Cubes.from_yaml(text)


def test_load_cubes(tmp_path):
    path = tmp_path / "cubes.yaml"
    path.write_text(EXAMPLE, encoding="utf-8")
    assert load_cubes(path) == Cubes.from_yaml(EXAMPLE)


def test_load_missing_file(tmp_path):
    with pytest.raises(CubeFileError, match="can't read cube file"):
        load_cubes(tmp_path / "absent.yaml")