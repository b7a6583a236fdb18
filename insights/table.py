"""Append-only table construction for flattened metrics."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import numpy as np
import pandas as pd
from zoneinfo import ZoneInfo

from .labels import LabelSignature, column_key, display_name, label_signature

TIME_COLUMN = 0

logger = logging.getLogger(__name__)


class TableBuilder(ABC):
    """Construction capability the flattener writes through.

    Column ``0`` is always the time column; value columns are numbered from
    ``1`` in creation order.
    """

    @abstractmethod
    def add_column(self, name: str, labels: Mapping[str, str]) -> int:
        """Create a labeled value column, back-filled with unset cells."""

    @abstractmethod
    def extend(self, rows: int = 1) -> None:
        """Append ``rows`` unset rows to every column."""

    @abstractmethod
    def set(self, column: int, row: int, value: Any) -> None:
        """Set the cell at (``column``, ``row``)."""

    @abstractmethod
    def build(self) -> Any:
        """Return the finished table."""


@dataclass
class ValueColumn:
    name: str
    labels: Dict[str, str] = field(default_factory=dict)
    values: List[Optional[float]] = field(default_factory=list)

    @property
    def key(self) -> str:
        return column_key(self.labels)

    @property
    def signature(self) -> LabelSignature:
        return label_signature(self.labels)

    @property
    def display_name(self) -> str:
        return display_name(self.name, self.labels)


@dataclass
class MetricsTable:
    """Time column plus one value column per observed label set."""

    time: List[Optional[pd.Timestamp]] = field(default_factory=list)
    columns: List[ValueColumn] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def row_count(self) -> int:
        return len(self.time)

    def __len__(self) -> int:
        return self.row_count

    def column(self, labels: Mapping[str, str]) -> Optional[ValueColumn]:
        signature = label_signature(labels)
        for column in self.columns:
            if column.signature == signature:
                return column
        return None

    def to_frame(self, tz: Optional[str] = None) -> pd.DataFrame:
        """Return a DataFrame indexed by time with one float column per value column.

        Unset cells become ``NaN``; the label set of each column is kept in
        ``frame.attrs["labels"]``.
        """
        if self.time:
            index = pd.DatetimeIndex(pd.to_datetime(self.time, utc=True), name="time")
        else:
            index = pd.DatetimeIndex([], tz="UTC", name="time")
        data = {
            column.display_name: np.array(
                [np.nan if value is None else value for value in column.values],
                dtype=float,
            )
            for column in self.columns
        }
        frame = pd.DataFrame(data, index=index, columns=[c.display_name for c in self.columns])
        if tz:
            frame.index = frame.index.tz_convert(ZoneInfo(tz))
        frame.attrs["labels"] = {column.display_name: dict(column.labels) for column in self.columns}
        frame.attrs.update(self.metadata)
        return frame


class MetricsTableBuilder(TableBuilder):
    """Default builder producing a :class:`MetricsTable`."""

    def __init__(self, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self._table = MetricsTable(metadata=dict(metadata or {}))

    def add_column(self, name: str, labels: Mapping[str, str]) -> int:
        column = ValueColumn(name, dict(labels), [None] * self._table.row_count)
        self._table.columns.append(column)
        return len(self._table.columns)

    def extend(self, rows: int = 1) -> None:
        if rows < 0:
            raise ValueError("rows must be non-negative")
        self._table.time.extend([None] * rows)
        for column in self._table.columns:
            column.values.extend([None] * rows)

    def set(self, column: int, row: int, value: Any) -> None:
        if not 0 <= row < self._table.row_count:
            raise IndexError(f"row {row} out of range")
        if column == TIME_COLUMN:
            self._table.time[row] = value
            return
        if not 1 <= column <= len(self._table.columns):
            raise IndexError(f"column {column} out of range")
        self._table.columns[column - 1].values[row] = value

    def build(self) -> MetricsTable:
        return self._table


def write_frame(frame: pd.DataFrame, out_path: Path) -> Path:
    """Write ``frame`` as parquet, csv or pickle depending on the suffix."""
    out_path.parent.mkdir(parents=True, exist_ok=True)
    suffix = out_path.suffix.lower()
    if suffix == ".parquet":
        try:
            frame.to_parquet(out_path)
        except ImportError:  # pragma: no cover - handled at runtime if pyarrow missing
            out_path = out_path.with_suffix(".csv")
            logger.warning("Parquet engine unavailable, writing %s instead", out_path)
            frame.to_csv(out_path)
    elif suffix in (".csv", ".txt"):
        frame.to_csv(out_path)
    else:
        frame.to_pickle(out_path)
    return out_path
