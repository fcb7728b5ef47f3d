"""
Configuration loader (``penny_config.loader``).

Responsibility
--------------
Reads the packaged ``defaults.yaml``, deep-merges an optional override
file on top, applies environment overrides and parses the result into a
frozen ``PennyConfig``.  Runtime callers use
``penny_config.get_active_config()``, not this module.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, wrong type, out-of-range value  -> ``ConfigError``
  naming the offending dotted key.
"""

from __future__ import annotations

import copy
import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping

import yaml

from penny_config.schema import (
    BudgetSettings,
    DatabaseSettings,
    PennyConfig,
    RetrySettings,
    SchedulerSettings,
    ThrottleSettings,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    """Invalid configuration value."""

    code: str = "CONFIG_ERROR"

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(f"{key}: {message}")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(str(path), "top level must be a mapping")
    return data


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``base`` with ``override`` merged in; nested mappings merge."""
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def apply_env_overrides(data: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    """``PENNY_DATABASE_URL`` wins over ``DATABASE_URL``; ``PENNY_LOG_LEVEL``."""
    data = copy.deepcopy(data)
    url = env.get("PENNY_DATABASE_URL") or env.get("DATABASE_URL")
    if url:
        data.setdefault("database", {})["url"] = url
    level = env.get("PENNY_LOG_LEVEL")
    if level:
        data.setdefault("logging", {})["level"] = level
    return data


def compute_checksum(data: Mapping[str, Any]) -> str:
    """SHA-256 of the canonical JSON form; identical data, identical sum."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _coerce(key: str, value: Any, target: Any) -> Any:
    """Coerce a YAML scalar to the type of the dataclass default."""
    if isinstance(target, bool):
        if not isinstance(value, bool):
            raise ConfigError(key, f"expected true/false, got {value!r}")
        return value
    if isinstance(target, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(key, f"expected an integer, got {value!r}")
        return value
    if isinstance(target, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(key, f"expected a number, got {value!r}")
        return float(value)
    if isinstance(target, Decimal):
        if isinstance(value, (bool, float)):
            raise ConfigError(key, f"expected a quoted decimal, got {value!r}")
        try:
            return Decimal(str(value))
        except InvalidOperation:
            raise ConfigError(key, f"not a decimal: {value!r}") from None
    if not isinstance(value, str):
        raise ConfigError(key, f"expected a string, got {value!r}")
    return value


def _parse_section(name: str, cls: type, data: Any, required: tuple[str, ...] = ()):
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(name, "section must be a mapping")

    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ConfigError(f"{name}.{unknown[0]}", "unknown key")
    for key in required:
        if data.get(key) in (None, ""):
            raise ConfigError(f"{name}.{key}", "is required")

    defaults = cls(**{k: data[k] for k in required}) if required else cls()
    values = {
        key: _coerce(f"{name}.{key}", value, getattr(defaults, key))
        for key, value in data.items()
    }
    return cls(**values)


def _positive(key: str, value: float, allow_zero: bool = False) -> None:
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(key, f"must be {'>= 0' if allow_zero else '> 0'}, got {value}")


def _validate(config: PennyConfig) -> None:
    s = config.scheduler
    _positive("scheduler.tick_interval_seconds", s.tick_interval_seconds)
    _positive("scheduler.max_workers", s.max_workers)
    _positive("scheduler.job_timeout_seconds", s.job_timeout_seconds)
    _positive("scheduler.max_occurrences", s.max_occurrences)
    _positive("scheduler.preview_dates", s.preview_dates, allow_zero=True)

    r = config.retry
    _positive("retry.max_attempts", r.max_attempts)
    _positive("retry.base_delay_seconds", r.base_delay_seconds, allow_zero=True)
    _positive("retry.max_delay_seconds", r.max_delay_seconds, allow_zero=True)
    if r.multiplier < 1:
        raise ConfigError("retry.multiplier", f"must be >= 1, got {r.multiplier}")

    t = config.throttle
    _positive("throttle.limit", t.limit)
    _positive("throttle.period_seconds", t.period_seconds)
    _positive("throttle.max_concurrent", t.max_concurrent)

    threshold = config.budget.alert_threshold_percent
    if not Decimal("0") < threshold <= Decimal("100"):
        raise ConfigError(
            "budget.alert_threshold_percent", f"must be in (0, 100], got {threshold}"
        )

    if config.log_level not in LOG_LEVELS:
        raise ConfigError("logging.level", f"must be one of {LOG_LEVELS}")


_SECTIONS = {
    "database": DatabaseSettings,
    "scheduler": SchedulerSettings,
    "retry": RetrySettings,
    "throttle": ThrottleSettings,
    "budget": BudgetSettings,
    "logging": None,
}


def parse_config(data: Mapping[str, Any]) -> PennyConfig:
    """Build and validate a PennyConfig from merged raw data.

    Cron expressions are validated by the scheduler, which owns the
    cron dialect.

    Raises:
        ConfigError: on the first invalid key.
    """
    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ConfigError(unknown[0], "unknown section")

    logging_data = data.get("logging") or {}
    if not isinstance(logging_data, dict) or set(logging_data) - {"level"}:
        raise ConfigError("logging", "only 'level' is supported")
    level = str(logging_data.get("level", "INFO")).upper()

    config = PennyConfig(
        database=_parse_section("database", DatabaseSettings, data.get("database"), ("url",)),
        scheduler=_parse_section("scheduler", SchedulerSettings, data.get("scheduler")),
        retry=_parse_section("retry", RetrySettings, data.get("retry")),
        throttle=_parse_section("throttle", ThrottleSettings, data.get("throttle")),
        budget=_parse_section("budget", BudgetSettings, data.get("budget")),
        log_level=level,
        checksum=compute_checksum(data),
    )
    _validate(config)
    return config


def load_config(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
    defaults_path: Path = DEFAULTS_PATH,
) -> PennyConfig:
    """Defaults, then ``path`` (if any), then environment overrides."""
    data = load_yaml_file(defaults_path)
    if path is not None:
        data = deep_merge(data, load_yaml_file(Path(path)))
    data = apply_env_overrides(data, env or {})
    return parse_config(data)
