"""Core types for decoded segmented metrics responses."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import pandas as pd

JSONValue = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]


class InsightsError(ValueError):
    """Base class for errors raised while converting metrics responses."""


class DecodeError(InsightsError):
    """Raised when a payload is not shaped like a segmented metrics object."""


class TransformError(InsightsError):
    """Raised when a decoded tree cannot be flattened into a table."""


@dataclass(frozen=True)
class Segment:
    """One node of the segment tree.

    Routing nodes carry ``children`` and a dimension label in ``properties``;
    data nodes carry the ``{metric: {aggregation: value}}`` object instead.
    """

    start: Optional[pd.Timestamp] = None
    end: Optional[pd.Timestamp] = None
    children: Optional[List["Segment"]] = None
    properties: Dict[str, JSONValue] = field(default_factory=dict)

    def has_children(self) -> bool:
        return bool(self.children)


@dataclass(frozen=True)
class MetricsResult:
    """Top level body of a metrics query; ``segments`` holds the time buckets."""

    start: Optional[pd.Timestamp] = None
    end: Optional[pd.Timestamp] = None
    interval: Optional[str] = None
    segments: Optional[List[Segment]] = None
    properties: Dict[str, JSONValue] = field(default_factory=dict)


@dataclass(frozen=True)
class MetricsResponse:
    """The ``{"value": {...}}`` envelope returned by the metrics endpoint."""

    value: Optional[MetricsResult] = None
    properties: Dict[str, JSONValue] = field(default_factory=dict)
