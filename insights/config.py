"""Query configuration loaded from YAML/JSON files and the environment."""
from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

logger = logging.getLogger(__name__)

_INITIAL_ENV_KEYS = set(os.environ.keys())
_ENV_FILES_LOADED: set[Path] = set()
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z0-9_]+)\}")
DEFAULT_CONFIG_CANDIDATES = (
    Path("config") / "insights.yaml",
    Path("config") / "insights.yml",
)


class ConfigurationError(RuntimeError):
    """Raised when the query configuration is missing or invalid."""


@dataclass(slots=True)
class QueryConfig:
    metric: str
    aggregation: str
    dimensions: List[str] = field(default_factory=list)
    timezone: str = "UTC"


def _load_env_file(path: Path) -> None:
    resolved = path.resolve()
    if resolved in _ENV_FILES_LOADED or not resolved.exists():
        return
    with resolved.open("r", encoding="utf-8") as handle:
        for raw_line in handle:
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith("export "):
                line = line[7:].lstrip()
            key, sep, value = line.partition("=")
            if not sep:
                continue
            key = key.strip()
            if not key or key in _INITIAL_ENV_KEYS:
                continue
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
                value = value[1:-1]
            os.environ[key] = value
    _ENV_FILES_LOADED.add(resolved)


def _expand_env_values(value: object, *, source: Optional[Path] = None) -> object:
    if isinstance(value, dict):
        return {key: _expand_env_values(val, source=source) for key, val in value.items()}
    if isinstance(value, list):
        return [_expand_env_values(item, source=source) for item in value]
    if isinstance(value, str):
        def replacer(match: re.Match[str]) -> str:
            var_name = match.group(1)
            if var_name not in os.environ:
                location = f" in config '{source}'" if source else ""
                raise ConfigurationError(f"Environment variable '{var_name}' referenced{location} is not set")
            return os.environ[var_name]

        return _ENV_VAR_PATTERN.sub(replacer, value)
    return value


def _read_file(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or {}
        elif suffix == ".json":
            data = json.loads(text)
        else:
            raise ConfigurationError("Unsupported configuration format; use YAML or JSON")
    except ConfigurationError:
        raise
    except (yaml.YAMLError, ValueError) as exc:
        raise ConfigurationError(f"Invalid configuration format in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")
    return data


def load_config_data(path: Optional[Path | str] = None) -> Dict[str, Any]:
    """Return the raw configuration mapping with ``${VAR}`` references expanded."""
    config_path = Path(path) if path else None
    env_candidates: List[Path] = [Path(".env")]
    if config_path is not None:
        env_candidates.append(config_path.resolve().parent / ".env")
    for candidate in dict.fromkeys(env_candidates):
        _load_env_file(candidate)

    if config_path is not None and not config_path.exists():
        raise ConfigurationError(f"Configuration file {config_path} does not exist")

    candidates: List[Path] = [config_path] if config_path is not None else list(DEFAULT_CONFIG_CANDIDATES)
    for candidate in candidates:
        if candidate.exists():
            data = _read_file(candidate)
            return _expand_env_values(data, source=candidate)  # type: ignore[return-value]
    return {}


def resolve_timezone(candidate: Optional[str]) -> str:
    if not candidate:
        return "UTC"
    try:
        ZoneInfo(candidate)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone '%s', falling back to UTC", candidate)
        return "UTC"
    return candidate


def _coerce_dimensions(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return list(value)
    raise ConfigurationError("'dimensions' must be a list of strings or a comma-separated string")


def _first(*values: Any) -> Any:
    for value in values:
        if value not in (None, "", ()):
            return value
    return None


def build_query_config(
    data: Dict[str, Any],
    *,
    metric: Optional[str] = None,
    aggregation: Optional[str] = None,
    dimensions: Optional[Iterable[str]] = None,
    timezone: Optional[str] = None,
) -> QueryConfig:
    """Merge explicit arguments, environment variables and file data, in that order."""
    query = data.get("query", data)
    if not isinstance(query, dict):
        raise ConfigurationError("'query' section must be a mapping")

    resolved_metric = _first(metric, os.getenv("INSIGHTS_METRIC"), query.get("metric"))
    resolved_aggregation = _first(aggregation, os.getenv("INSIGHTS_AGGREGATION"), query.get("aggregation"))
    if not resolved_metric:
        raise ConfigurationError("No metric configured")
    if not resolved_aggregation:
        raise ConfigurationError("No aggregation configured")

    explicit_dimensions = list(dimensions) if dimensions is not None else None
    resolved_dimensions = _coerce_dimensions(
        _first(explicit_dimensions, os.getenv("INSIGHTS_DIMENSIONS"), query.get("dimensions"))
    )
    tz = resolve_timezone(
        _first(timezone, os.getenv("INSIGHTS_TZ"), query.get("timezone"), data.get("timezone"))
    )
    return QueryConfig(
        metric=str(resolved_metric),
        aggregation=str(resolved_aggregation),
        dimensions=resolved_dimensions,
        timezone=tz,
    )


def load_query_config(path: Optional[Path | str] = None, **overrides: Any) -> QueryConfig:
    return build_query_config(load_config_data(path), **overrides)
