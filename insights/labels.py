"""Label-set helpers shared by the flattener and the table types."""
from __future__ import annotations

import re
from typing import Mapping, Tuple

LabelSignature = Tuple[Tuple[str, str], ...]

_SPECIAL = re.compile(r"([\\,=])")


def label_signature(labels: Mapping[str, str]) -> LabelSignature:
    """Return the identity of a label set: its pairs sorted by dimension name."""
    return tuple(sorted(labels.items()))


def _escape(text: str) -> str:
    return _SPECIAL.sub(r"\\\1", text)


def column_key(labels: Mapping[str, str]) -> str:
    """Return the canonical string form of a label set.

    Pairs are sorted by dimension name and rendered ``name=value``. Backslash,
    comma and ``=`` inside names and values are escaped with a backslash, so
    distinct label sets never share a key.
    """
    return ", ".join(f"{_escape(name)}={_escape(value)}" for name, value in label_signature(labels))


def format_labels(labels: Mapping[str, str]) -> str:
    if not labels:
        return ""
    return "{" + column_key(labels) + "}"


def display_name(name: str, labels: Mapping[str, str]) -> str:
    return f"{name}{format_labels(labels)}"
