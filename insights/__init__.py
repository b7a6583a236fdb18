"""Decoding and flattening of segmented time-series metrics responses."""
from __future__ import annotations

from typing import Any

from .core import DecodeError, InsightsError, MetricsResponse, MetricsResult, Segment, TransformError
from .decode import decode_response, decode_result, decode_segment, encode_result, encode_segment
from .flatten import convert, flatten, flatten_response
from .table import MetricsTable, MetricsTableBuilder, TableBuilder, ValueColumn

__all__ = [
    "DecodeError",
    "InsightsError",
    "MetricsResponse",
    "MetricsResult",
    "Segment",
    "TransformError",
    "decode_response",
    "decode_result",
    "decode_segment",
    "encode_result",
    "encode_segment",
    "convert",
    "flatten",
    "flatten_response",
    "MetricsTable",
    "MetricsTableBuilder",
    "TableBuilder",
    "ValueColumn",
    "QueryConfig",
    "load_query_config",
]


def __getattr__(name: str) -> Any:
    if name in {"QueryConfig", "load_query_config"}:
        from .config import QueryConfig, load_query_config

        return {"QueryConfig": QueryConfig, "load_query_config": load_query_config}[name]
    raise AttributeError(f"module 'insights' has no attribute '{name}'")
