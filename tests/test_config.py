"""Tests for query configuration loading."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from tests.conftest import get_test_logger

from insights.config import ConfigurationError, build_query_config, load_config_data, load_query_config

logger = get_test_logger(__name__)
logger.info("Starting tests for config module")


def test_load_yaml_with_env_expansion(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INSIGHTS_TEST_METRIC", "requests/duration")
    path = tmp_path / "insights.yaml"
    path.write_text(
        "query:\n"
        "  metric: ${INSIGHTS_TEST_METRIC}\n"
        "  aggregation: avg\n"
        "  dimensions: [request/name, cloud/roleName]\n"
        "timezone: Europe/Bucharest\n",
        encoding="utf-8",
    )
    config = load_query_config(path)
    assert config.metric == "requests/duration"
    assert config.aggregation == "avg"
    assert config.dimensions == ["request/name", "cloud/roleName"]
    assert config.timezone == "Europe/Bucharest"


def test_json_config_and_comma_separated_dimensions(tmp_path: Path) -> None:
    path = tmp_path / "insights.json"
    path.write_text(json.dumps({"metric": "requests/count", "aggregation": "sum", "dimensions": "a, b"}), encoding="utf-8")
    config = load_query_config(path)
    assert config.dimensions == ["a", "b"]
    assert config.timezone == "UTC"


def test_priority_arguments_then_environment_then_file(monkeypatch: pytest.MonkeyPatch) -> None:
    data = {"metric": "file/metric", "aggregation": "sum", "dimensions": ["file"]}
    monkeypatch.setenv("INSIGHTS_METRIC", "env/metric")
    monkeypatch.setenv("INSIGHTS_DIMENSIONS", "env1,env2")

    config = build_query_config(data)
    assert config.metric == "env/metric"
    assert config.dimensions == ["env1", "env2"]

    config = build_query_config(data, metric="arg/metric", dimensions=["arg"])
    assert config.metric == "arg/metric"
    assert config.dimensions == ["arg"]


def test_unknown_timezone_falls_back_to_utc() -> None:
    config = build_query_config({"metric": "m", "aggregation": "a"}, timezone="Mars/Olympus")
    assert config.timezone == "UTC"


def test_missing_metric_is_an_error() -> None:
    with pytest.raises(ConfigurationError, match="No metric configured"):
        build_query_config({"aggregation": "sum"})
    with pytest.raises(ConfigurationError, match="No aggregation configured"):
        build_query_config({"metric": "requests/count"})


def test_invalid_files(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="does not exist"):
        load_config_data(tmp_path / "missing.yaml")

    unsupported = tmp_path / "insights.toml"
    unsupported.write_text("metric = 1", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="Unsupported configuration format"):
        load_config_data(unsupported)

    not_mapping = tmp_path / "list.yaml"
    not_mapping.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="must contain a mapping"):
        load_config_data(not_mapping)


def test_unset_env_reference_is_reported(tmp_path: Path) -> None:
    path = tmp_path / "insights.yaml"
    path.write_text("metric: ${INSIGHTS_DEFINITELY_UNSET}\naggregation: sum\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="INSIGHTS_DEFINITELY_UNSET"):
        load_config_data(path)


def test_bad_dimensions_type() -> None:
    with pytest.raises(ConfigurationError, match="dimensions"):
        build_query_config({"metric": "m", "aggregation": "a", "dimensions": [1, 2]})


def test_dotenv_beside_config_is_loaded(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("INSIGHTS_TEST_ENV_METRIC", "INSIGHTS_TEST_ENV_AGG"):
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)
    (tmp_path / ".env").write_text(
        "# query defaults\n"
        "export INSIGHTS_TEST_ENV_METRIC=\"requests/failed\"\n"
        "INSIGHTS_TEST_ENV_AGG='count'\n"
        "not a pair\n",
        encoding="utf-8",
    )
    path = tmp_path / "insights.yaml"
    path.write_text(
        "metric: ${INSIGHTS_TEST_ENV_METRIC}\naggregation: ${INSIGHTS_TEST_ENV_AGG}\n",
        encoding="utf-8",
    )
    config = load_query_config(path)
    assert config.metric == "requests/failed"
    assert config.aggregation == "count"


def test_empty_dimension_override_clears_file_dimensions() -> None:
    data = {"metric": "m", "aggregation": "a", "dimensions": ["request/name"]}
    assert build_query_config(data).dimensions == ["request/name"]
    assert build_query_config(data, dimensions=[]).dimensions == []
