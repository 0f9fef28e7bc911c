"""Configuration loading for bind-log-metrics.

Values are layered: defaults, then an optional YAML file, then environment
variables (upper-cased option names such as ``INFLUX_HOST``), then explicit
overrides from the command line.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

import yaml

from bindmetrics.logging_setup import parse_level

REQUIRED_KEYS = ("influx_host", "influx_user", "influx_pass", "influx_db_name")

DEFAULTS: Dict[str, Any] = {
    "log_level": "info",
    "log_file": None,
    "flush_interval_seconds": 10.0,
    "chunk_size": 1000,
    "max_point_age_seconds": 600.0,
    "timeout_seconds": 2.0,
    "error_buffer_size": 10,
}


@dataclass
class AppConfig:
    """Runtime configuration for the log-to-metrics pipeline."""

    influx_host: str
    influx_user: str
    influx_pass: str
    influx_db_name: str
    log_level: str = "info"
    log_file: Optional[Path] = None
    flush_interval_seconds: float = 10.0
    chunk_size: int = 1000
    max_point_age_seconds: float = 600.0
    timeout_seconds: float = 2.0
    error_buffer_size: int = 10


def load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config must be a mapping: {path}")
    return {str(k).replace("-", "_"): v for k, v in data.items()}


def env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    keys = set(REQUIRED_KEYS) | set(DEFAULTS)
    return {key: env[key.upper()] for key in keys if env.get(key.upper())}


def validate_required(data: Mapping[str, Any], required: Iterable[str]) -> None:
    missing = [key for key in required if data.get(key) in (None, "")]
    if missing:
        raise ValueError(f"Missing required config fields: {', '.join(missing)}")


def _positive(data: Mapping[str, Any], key: str, cast) -> Any:
    raw = data[key]
    if isinstance(raw, bool):
        raise ValueError(f"{key} must be a number, got {raw!r}")
    if cast is int and isinstance(raw, float) and not raw.is_integer():
        raise ValueError(f"{key} must be a whole number, got {raw!r}")
    try:
        value = cast(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    return value


def load_app_config(
    path: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> AppConfig:
    """Merge all configuration sources and validate the result."""

    merged: Dict[str, Any] = dict(DEFAULTS)
    if path is not None:
        merged.update(load_yaml(path))
    merged.update(env_overrides(os.environ if env is None else env))
    merged.update({k: v for k, v in (overrides or {}).items() if v is not None})

    validate_required(merged, REQUIRED_KEYS)
    parse_level(merged["log_level"])

    log_file = merged.get("log_file")
    return AppConfig(
        influx_host=str(merged["influx_host"]),
        influx_user=str(merged["influx_user"]),
        influx_pass=str(merged["influx_pass"]),
        influx_db_name=str(merged["influx_db_name"]),
        log_level=str(merged["log_level"]).lower(),
        log_file=Path(log_file) if log_file else None,
        flush_interval_seconds=_positive(merged, "flush_interval_seconds", float),
        chunk_size=_positive(merged, "chunk_size", int),
        max_point_age_seconds=_positive(merged, "max_point_age_seconds", float),
        timeout_seconds=_positive(merged, "timeout_seconds", float),
        error_buffer_size=_positive(merged, "error_buffer_size", int),
    )
