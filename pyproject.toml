[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "platon"
version = "0.3.0"
description = "Build analytical cubes from Prometheus metrics and store them in ClickHouse"
requires-python = ">=3.10"
keywords = ["prometheus", "clickhouse", "olap", "cube", "metrics", "analytics"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Topic :: Database",
]
dependencies = [
    "pyyaml>=6.0",
    "requests>=2.28",
    "tabulate>=0.9",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "responses>=0.23",
]

[project.scripts]
platon = "platon.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["platon"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
