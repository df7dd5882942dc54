"""
Settings loader (``leasing_config.loader``).

Reads an optional YAML file, then applies ``LEASING_*`` environment
overrides, then validates by building the ``schema`` dataclasses.

Failure modes
-------------
* Missing YAML file -> ``FileNotFoundError`` propagates.
* Malformed YAML -> ``yaml.YAMLError`` propagates.
* Unknown section or key, wrong type, invalid value -> ``ConfigurationError``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from leasing_config.schema import (
    DatabaseSettings,
    LeasingSettings,
    LogSettings,
    ReservationSettings,
    SweepSettings,
)
from leasing_kernel.exceptions import ConfigurationError
from leasing_kernel.logging_config import get_logger

logger = get_logger("config.loader")

_SECTIONS = {
    "database": DatabaseSettings,
    "sweep": SweepSettings,
    "reservations": ReservationSettings,
    "logging": LogSettings,
}


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(raw)


# env var -> (section, key, parser)
_ENV_OVERRIDES = {
    "LEASING_DATABASE_URL": ("database", "url", str),
    "LEASING_LOG_LEVEL": ("logging", "level", str),
    "LEASING_SWEEP_CRON": ("sweep", "cron_expression", str),
    "LEASING_SWEEP_MAX_WORKERS": ("sweep", "max_workers", int),
    "LEASING_SWEEP_ITEM_TIMEOUT_MS": ("sweep", "item_timeout_ms", int),
    "LEASING_SWEEP_RUN_ON_START": ("sweep", "run_on_start", _parse_bool),
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def _apply_env(raw: dict[str, dict[str, Any]], environ: Mapping[str, str]) -> None:
    for var, (section, key, parse) in _ENV_OVERRIDES.items():
        value = environ.get(var)
        if value is None or value == "":
            continue
        try:
            raw.setdefault(section, {})[key] = parse(value)
        except ValueError as exc:
            raise ConfigurationError(var, f"cannot parse {value!r}") from exc


def _build_section(name: str, values: Any):
    cls = _SECTIONS[name]
    if not isinstance(values, dict):
        raise ConfigurationError(name, "section must be a mapping")
    try:
        return cls(**values)
    except TypeError as exc:
        raise ConfigurationError(name, str(exc)) from exc


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> LeasingSettings:
    """
    Build ``LeasingSettings`` from ``path`` (optional) and the environment.

    ``environ`` defaults to ``os.environ``; tests pass a dict.
    """
    env = os.environ if environ is None else environ
    raw: dict[str, dict[str, Any]] = {}

    if path is not None:
        data = load_yaml_file(Path(path))
        unknown = sorted(set(data) - set(_SECTIONS))
        if unknown:
            raise ConfigurationError(", ".join(unknown), "unknown settings section")
        for section, values in data.items():
            if values is not None and not isinstance(values, dict):
                raise ConfigurationError(section, "section must be a mapping")
            raw[section] = dict(values or {})

    _apply_env(raw, env)

    settings = LeasingSettings(
        **{name: _build_section(name, raw.get(name, {})) for name in _SECTIONS}
    )
    logger.info(
        "settings_loaded",
        extra={
            "source": str(path) if path is not None else None,
            "database_dialect": settings.database.url.split(":", 1)[0],
            "sweep_cron": settings.sweep.cron_expression,
            "sweep_max_workers": settings.sweep.max_workers,
        },
    )
    return settings
