"""Structured logging setup for RampForge."""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

# Record attributes copied into JSON output when a log call supplies them
# via ``extra=`` or through a :class:`VirtualUserLogger`.
_CONTEXT_FIELDS = ("scenario", "vu_id")


class _JsonFormatter(logging.Formatter):
    """One-line JSON formatter.

    Keys: timestamp, level, logger, message, plus ``scenario`` and
    ``vu_id`` when present on the record.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


class VirtualUserLogger(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Logger adapter tagging records with the scenario and virtual user id.

    Human-readable output gets a ``[scenario#vu]`` prefix; JSON output
    gets separate ``scenario`` and ``vu_id`` keys.
    """

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        extra = dict(self.extra or {})
        kwargs["extra"] = {**extra, **kwargs.get("extra", {})}
        return f"[{extra.get('scenario')}#{extra.get('vu_id')}] {msg}", kwargs


def setup_logging(
    level: int = logging.INFO,
    *,
    json_format: bool = False,
) -> logging.Logger:
    """Configure and return the root RampForge logger.

    Installs a single stderr handler on the ``rampforge`` logger namespace.
    Calling again only updates the level; handlers are never duplicated.

    Args:
        level: Logging level (e.g., ``logging.DEBUG``). Defaults to INFO.
        json_format: If True, emit structured JSON logs. If False, emit
            human-readable logs.

    Returns:
        The configured ``rampforge`` root logger.
    """
    logger = logging.getLogger("rampforge")
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if json_format:
        formatter: logging.Formatter = _JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the ``rampforge`` namespace.

    Args:
        name: Logger name, appended to ``rampforge.`` prefix.
            Example: ``get_logger("engine.pool")`` returns
            ``logging.getLogger("rampforge.engine.pool")``.

    Returns:
        A child logger.
    """
    return logging.getLogger(f"rampforge.{name}")


def get_vu_logger(name: str, scenario: str, vu_id: int) -> VirtualUserLogger:
    """Return a logger that tags every record with a virtual user's identity.

    Args:
        name: Logger name under the ``rampforge`` namespace.
        scenario: Scenario the virtual user belongs to.
        vu_id: Virtual user id, unique within the run.

    Returns:
        A :class:`VirtualUserLogger` wrapping ``get_logger(name)``.
    """
    return VirtualUserLogger(get_logger(name), {"scenario": scenario, "vu_id": vu_id})
