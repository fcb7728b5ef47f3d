"""
penny_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way services, the scheduler and the
    CLI obtain configuration.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration layer.  Imports neither ``penny_kernel`` nor
    ``penny_batch``; the batch orchestrator translates the returned
    settings into kernel and scheduler objects.

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``ConfigError`` -- unknown key, wrong type or out-of-range value.

Every successful call emits a ``config_loaded`` log entry carrying the
checksum of the effective configuration, so a run can be tied back to
the exact settings it used.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from penny_config.loader import ConfigError, compute_checksum, load_config
from penny_config.schema import (
    BudgetSettings,
    DatabaseSettings,
    PennyConfig,
    RetrySettings,
    SchedulerSettings,
    ThrottleSettings,
)

_logger = logging.getLogger("penny.config")

__all__ = [
    "BudgetSettings",
    "ConfigError",
    "DatabaseSettings",
    "PennyConfig",
    "RetrySettings",
    "SchedulerSettings",
    "ThrottleSettings",
    "compute_checksum",
    "get_active_config",
]


def get_active_config(
    path: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> PennyConfig:
    """Return the effective configuration.

    Args:
        path: Optional YAML file deep-merged over the packaged defaults.
        env: Environment mapping; defaults to ``os.environ``.

    Raises:
        FileNotFoundError: ``path`` does not exist.
        ConfigError: a value is invalid.
    """
    config = load_config(
        Path(path) if path is not None else None,
        os.environ if env is None else env,
    )
    _logger.info(
        "config_loaded",
        extra={
            "checksum": config.checksum,
            "override_path": str(path) if path is not None else None,
            "log_level": config.log_level,
            "max_workers": config.scheduler.max_workers,
        },
    )
    return config
