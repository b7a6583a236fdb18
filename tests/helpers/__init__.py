"""Shared helper utilities for the insights test-suite."""

from .data import (
    AGGREGATION,
    METRIC,
    bucket,
    build_one_dimension_payload,
    build_result_payload,
    build_two_dimension_payload,
    build_zero_dimension_payload,
    leaf,
    node,
)
from .fs import ensure_directory, write_json
from .mocks import RecordingTableBuilder

__all__ = [
    "AGGREGATION",
    "METRIC",
    "bucket",
    "build_one_dimension_payload",
    "build_result_payload",
    "build_two_dimension_payload",
    "build_zero_dimension_payload",
    "leaf",
    "node",
    "ensure_directory",
    "write_json",
    "RecordingTableBuilder",
]
