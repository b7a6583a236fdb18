"""Decoding of segmented metrics payloads with open property maps."""
from __future__ import annotations

import copy
import json
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import pandas as pd

from .core import DecodeError, JSONValue, MetricsResponse, MetricsResult, Segment

RawPayload = Union[bytes, bytearray, str]
FieldParser = Callable[[str, Any], Any]

MALFORMED_OBJECT = "malformed object"


def _type_mismatch(name: str) -> DecodeError:
    return DecodeError(f"field {name}: type mismatch")


def parse_timestamp(value: Any, name: str = "timestamp") -> pd.Timestamp:
    """Parse an ISO-8601 string into a UTC ``pandas.Timestamp``."""
    if not isinstance(value, str):
        raise _type_mismatch(name)
    try:
        ts = pd.to_datetime(value, utc=True, format="ISO8601")
    except (ValueError, TypeError, OverflowError) as exc:
        raise _type_mismatch(name) from exc
    if pd.isna(ts):
        raise _type_mismatch(name)
    return ts


def format_timestamp(ts: pd.Timestamp) -> str:
    ts = pd.Timestamp(ts)
    if ts.tz is None:
        ts = ts.tz_localize("UTC")
    return ts.tz_convert("UTC").isoformat().replace("+00:00", "Z")


def _load_object(raw: RawPayload) -> Dict[str, Any]:
    if not isinstance(raw, (bytes, bytearray, str)):
        raise DecodeError(MALFORMED_OBJECT)
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise DecodeError(MALFORMED_OBJECT) from exc
    if not isinstance(payload, dict):
        raise DecodeError(MALFORMED_OBJECT)
    return payload


def _timestamp_field(name: str, value: Any) -> pd.Timestamp:
    return parse_timestamp(value, name)


def _string_field(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise _type_mismatch(name)
    return value


def _segments_field(name: str, value: Any) -> List[Segment]:
    if not isinstance(value, list):
        raise _type_mismatch(name)
    return [segment_from_dict(item) for item in value]


def _result_field(name: str, value: Any) -> MetricsResult:
    if not isinstance(value, dict):
        raise _type_mismatch(name)
    return result_from_dict(value)


# JSON key -> (attribute name, parser). Keys outside these tables land in ``properties``.
_SEGMENT_FIELDS: Dict[str, Tuple[str, FieldParser]] = {
    "start": ("start", _timestamp_field),
    "end": ("end", _timestamp_field),
    "segments": ("children", _segments_field),
}
_RESULT_FIELDS: Dict[str, Tuple[str, FieldParser]] = {
    "start": ("start", _timestamp_field),
    "end": ("end", _timestamp_field),
    "interval": ("interval", _string_field),
    "segments": ("segments", _segments_field),
}
_RESPONSE_FIELDS: Dict[str, Tuple[str, FieldParser]] = {
    "value": ("value", _result_field),
}


def _dispatch(
    payload: Mapping[str, Any],
    known: Mapping[str, Tuple[str, FieldParser]],
) -> Tuple[Dict[str, Any], Dict[str, JSONValue]]:
    fields: Dict[str, Any] = {}
    properties: Dict[str, JSONValue] = {}
    for key, value in payload.items():
        handler = known.get(key)
        if handler is None:
            properties[key] = copy.deepcopy(value)
            continue
        if value is None:
            continue
        attribute, parser = handler
        fields[attribute] = parser(key, value)
    return fields, properties


def segment_from_dict(payload: Any) -> Segment:
    """Build a :class:`Segment` from an already parsed JSON object."""
    if not isinstance(payload, Mapping):
        raise DecodeError(MALFORMED_OBJECT)
    fields, properties = _dispatch(payload, _SEGMENT_FIELDS)
    return Segment(properties=properties, **fields)


def result_from_dict(payload: Any) -> MetricsResult:
    if not isinstance(payload, Mapping):
        raise DecodeError(MALFORMED_OBJECT)
    fields, properties = _dispatch(payload, _RESULT_FIELDS)
    return MetricsResult(properties=properties, **fields)


def response_from_dict(payload: Any) -> MetricsResponse:
    if not isinstance(payload, Mapping):
        raise DecodeError(MALFORMED_OBJECT)
    fields, properties = _dispatch(payload, _RESPONSE_FIELDS)
    return MetricsResponse(properties=properties, **fields)


def decode_segment(raw: RawPayload) -> Segment:
    return segment_from_dict(_load_object(raw))


def decode_result(raw: RawPayload) -> MetricsResult:
    """Decode the body of a metrics query (``start``/``end``/``interval``/``segments``)."""
    return result_from_dict(_load_object(raw))


def decode_response(raw: RawPayload) -> MetricsResponse:
    """Decode the full ``{"value": ...}`` envelope."""
    return response_from_dict(_load_object(raw))


def _encode_common(
    properties: Mapping[str, JSONValue],
    start: Optional[pd.Timestamp],
    end: Optional[pd.Timestamp],
) -> Dict[str, Any]:
    payload: Dict[str, Any] = copy.deepcopy(dict(properties))
    if start is not None:
        payload["start"] = format_timestamp(start)
    if end is not None:
        payload["end"] = format_timestamp(end)
    return payload


def encode_segment(segment: Segment) -> Dict[str, Any]:
    payload = _encode_common(segment.properties, segment.start, segment.end)
    if segment.children is not None:
        payload["segments"] = [encode_segment(child) for child in segment.children]
    return payload


def encode_result(result: MetricsResult) -> Dict[str, Any]:
    payload = _encode_common(result.properties, result.start, result.end)
    if result.interval is not None:
        payload["interval"] = result.interval
    if result.segments is not None:
        payload["segments"] = [encode_segment(segment) for segment in result.segments]
    return payload


def encode_response(response: MetricsResponse) -> Dict[str, Any]:
    payload: Dict[str, Any] = copy.deepcopy(dict(response.properties))
    if response.value is not None:
        payload["value"] = encode_result(response.value)
    return payload


def decode_payload(raw: RawPayload) -> MetricsResult:
    """Decode either the ``{"value": ...}`` envelope or a bare result body."""
    payload = _load_object(raw)
    if "value" in payload and isinstance(payload["value"], dict):
        return result_from_dict(payload["value"])
    return result_from_dict(payload)
