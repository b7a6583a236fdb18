"""Flatten decoded segment trees into time-aligned tables."""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set, Tuple, Union

from .core import MetricsResponse, MetricsResult, Segment, TransformError
from .decode import RawPayload, decode_payload
from .labels import LabelSignature, label_signature
from .table import TIME_COLUMN, MetricsTable, MetricsTableBuilder, TableBuilder

logger = logging.getLogger(__name__)

Node = Union[Segment, MetricsResult]
Labels = Dict[str, str]


def metric_value(node: Node, metric_name: str, aggregation_name: str) -> Optional[float]:
    """Return ``properties[metric][aggregation]`` as a float.

    Missing keys are errors; a present but non-numeric value (null, string,
    bool, NaN) is returned as ``None``.
    """
    if metric_name not in node.properties:
        raise TransformError(f"metric '{metric_name}' not found in segment")
    metric = node.properties[metric_name]
    if not isinstance(metric, dict):
        raise TransformError(f"metric '{metric_name}' is not an object")
    if aggregation_name not in metric:
        raise TransformError(f"aggregation '{aggregation_name}' not found for metric '{metric_name}'")
    value = metric[aggregation_name]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    if math.isnan(number):
        return None
    return number


def dimension_label(node: Segment, dimension: str) -> str:
    value = node.properties.get(dimension)
    if not isinstance(value, str):
        raise TransformError(f"dimension '{dimension}' is missing or not a string")
    return value


def iter_data_nodes(
    segment: Segment,
    dimension_names: Sequence[str],
    labels: Optional[Labels] = None,
) -> Iterator[Tuple[Labels, Segment]]:
    """Yield ``(labels, data node)`` pairs below ``segment``.

    Level ``i`` under ``segment`` is split by ``dimension_names[i]``; every
    child at that level must carry the dimension as a string label. The nodes
    reached after the last dimension are data nodes.
    """
    labels = labels or {}
    if not dimension_names:
        yield labels, segment
        return
    dimension = dimension_names[0]
    if segment.children is None:
        logger.warning("Segment without children while handling dimension %s", dimension)
        raise TransformError(f"unexpected insights response while handling dimension {dimension}")
    for child in segment.children:
        child_labels = {**labels, dimension: dimension_label(child, dimension)}
        yield from iter_data_nodes(child, dimension_names[1:], child_labels)


class SegmentFlattener:
    """Single-use flattener for one metric/aggregation pair."""

    def __init__(
        self,
        metric_name: str,
        aggregation_name: str,
        dimension_names: Sequence[str] = (),
        builder: Optional[TableBuilder] = None,
    ) -> None:
        self.metric_name = metric_name
        self.aggregation_name = aggregation_name
        self.dimension_names = list(dimension_names)
        self.builder = builder if builder is not None else MetricsTableBuilder(
            {
                "metric": metric_name,
                "aggregation": aggregation_name,
                "dimensions": list(dimension_names),
            }
        )
        self._columns: Dict[LabelSignature, int] = {}
        self._rows = 0

    def column_for(self, labels: Labels) -> int:
        signature = label_signature(labels)
        index = self._columns.get(signature)
        if index is None:
            index = self.builder.add_column(self.metric_name, labels)
            self._columns[signature] = index
        return index

    def _start_row(self, time: Any) -> int:
        row = self._rows
        self.builder.extend(1)
        self._rows += 1
        self.builder.set(TIME_COLUMN, row, time)
        return row

    def _write_data_node(self, row: int, node: Node, labels: Labels) -> None:
        value = metric_value(node, self.metric_name, self.aggregation_name)
        self.builder.set(self.column_for(labels), row, value)

    def _write_bucket(self, segment: Segment) -> None:
        row = self._start_row(segment.start)
        for labels, data_node in iter_data_nodes(segment, self.dimension_names):
            self._write_data_node(row, data_node, labels)

    def run(self, result: MetricsResult) -> Any:
        if not self.dimension_names:
            self.column_for({})

        if result.segments is None:
            if self.dimension_names:
                raise TransformError(
                    f"unexpected insights response while handling dimension {self.dimension_names[0]}"
                )
            if result.start is None:
                raise TransformError("unsegmented result has no start time")
            self._write_data_node(self._start_row(result.start), result, {})
        else:
            for position, segment in enumerate(result.segments):
                if segment.start is None:
                    raise TransformError(f"segment {position} has no start time")
                self._write_bucket(segment)

        logger.debug(
            "Flattened %s/%s into %d rows and %d columns",
            self.metric_name,
            self.aggregation_name,
            self._rows,
            len(self._columns),
        )
        return self.builder.build()


def flatten(
    result: MetricsResult,
    metric_name: str,
    aggregation_name: str,
    dimension_names: Sequence[str] = (),
    builder: Optional[TableBuilder] = None,
) -> MetricsTable:
    """Flatten ``result`` into one row per top-level segment.

    ``dimension_names`` lists the requested dimensions from the outermost to
    the innermost nesting level.
    """
    flattener = SegmentFlattener(metric_name, aggregation_name, dimension_names, builder)
    table = flattener.run(result)
    if isinstance(table, MetricsTable) and result.interval is not None:
        table.metadata.setdefault("interval", result.interval)
    return table


def flatten_response(
    response: MetricsResponse,
    metric_name: str,
    aggregation_name: str,
    dimension_names: Sequence[str] = (),
    builder: Optional[TableBuilder] = None,
) -> MetricsTable:
    if response.value is None:
        raise TransformError("metrics response has no value")
    return flatten(response.value, metric_name, aggregation_name, dimension_names, builder)


def convert(
    raw: RawPayload,
    metric_name: str,
    aggregation_name: str,
    dimension_names: Sequence[str] = (),
) -> MetricsTable:
    """Decode ``raw`` (envelope or bare result) and flatten it in one call."""
    return flatten(decode_payload(raw), metric_name, aggregation_name, dimension_names)


def describe_tree(result: MetricsResult) -> Dict[str, Any]:
    """Summarise the shape of a decoded result: depth, node count and property keys per level."""
    keys_by_depth: List[Set[str]] = []
    nodes = 0
    depth = 0

    def _visit(segment: Segment, level: int) -> None:
        nonlocal nodes, depth
        nodes += 1
        depth = max(depth, level + 1)
        while len(keys_by_depth) <= level:
            keys_by_depth.append(set())
        keys_by_depth[level].update(segment.properties)
        for child in segment.children or []:
            _visit(child, level + 1)

    for segment in result.segments or []:
        _visit(segment, 0)

    return {
        "interval": result.interval,
        "top_level_segments": len(result.segments or []),
        "segments": nodes,
        "depth": depth,
        "properties": [sorted(keys) for keys in keys_by_depth],
    }
