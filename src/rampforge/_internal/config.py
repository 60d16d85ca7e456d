"""Configuration loading for RampForge."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass

from rampforge._internal.errors import ConfigError

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"", "0", "false", "no", "off"})


@dataclass(frozen=True)
class RampForgeConfig:
    """Global RampForge configuration.

    Attributes:
        request_timeout: Total timeout for a single HTTP request in seconds.
        connection_pool_size: Maximum open connections per virtual user.
        tick_interval: Seconds between concurrency adjustments and metric
            snapshots.
        threshold_interval: Seconds between periodic threshold evaluations
            while the test is running.
        json_logs: Emit structured JSON logs instead of human-readable ones.
    """

    request_timeout: float = 30.0
    connection_pool_size: int = 100
    tick_interval: float = 0.5
    threshold_interval: float = 2.0
    json_logs: bool = False


def load_config() -> RampForgeConfig:
    """Load configuration from environment variables with defaults.

    Environment variables:
        RAMPFORGE_TIMEOUT: Request timeout in seconds (default: 30.0).
        RAMPFORGE_POOL_SIZE: Connection pool size (default: 100).
        RAMPFORGE_TICK_INTERVAL: Scheduler tick in seconds (default: 0.5).
        RAMPFORGE_THRESHOLD_INTERVAL: Threshold check period (default: 2.0).
        RAMPFORGE_LOG_JSON: ``1``/``true`` for JSON logs (default: off).

    Returns:
        Populated RampForgeConfig instance.

    Raises:
        ConfigError: If an environment variable has an invalid value.
    """
    pool_size_str = os.environ.get("RAMPFORGE_POOL_SIZE", "100")
    try:
        pool_size = int(pool_size_str)
    except ValueError:
        msg = f"RAMPFORGE_POOL_SIZE must be an integer, got: {pool_size_str!r}"
        raise ConfigError(msg) from None

    if pool_size < 1:
        msg = f"RAMPFORGE_POOL_SIZE must be >= 1, got: {pool_size}"
        raise ConfigError(msg)

    json_str = os.environ.get("RAMPFORGE_LOG_JSON", "").strip().lower()
    if json_str not in _TRUE_VALUES | _FALSE_VALUES:
        msg = f"RAMPFORGE_LOG_JSON must be a boolean, got: {json_str!r}"
        raise ConfigError(msg)

    return RampForgeConfig(
        request_timeout=_positive_float("RAMPFORGE_TIMEOUT", "30.0"),
        connection_pool_size=pool_size,
        tick_interval=_positive_float("RAMPFORGE_TICK_INTERVAL", "0.5"),
        threshold_interval=_positive_float("RAMPFORGE_THRESHOLD_INTERVAL", "2.0"),
        json_logs=json_str in _TRUE_VALUES,
    )


def _positive_float(var: str, default: str) -> float:
    raw = os.environ.get(var, default)
    try:
        value = float(raw)
    except ValueError:
        msg = f"{var} must be a number, got: {raw!r}"
        raise ConfigError(msg) from None

    if not math.isfinite(value) or value <= 0:
        msg = f"{var} must be a positive number, got: {value}"
        raise ConfigError(msg)
    return value
