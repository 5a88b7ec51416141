"""Structured JSON logging for clustermon processes."""

import json
import logging
from datetime import datetime, timezone

from clustermon.shared.errors import ConfigError

ROOT_LOGGER = "clustermon"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

_default_level = logging.INFO


class JsonFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record):
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "component": record.name.replace(f"{ROOT_LOGGER}.", ""),
            "level": record.levelname,
            "message": record.getMessage(),
        }
        if hasattr(record, "log_data"):
            entry["data"] = record.log_data
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def parse_level(name: str) -> int:
    """Map a configured level name such as ``"debug"`` to a logging level."""
    try:
        return _LEVELS[name.strip().lower()]
    except (KeyError, AttributeError):
        raise ConfigError(f"Unknown log level: {name!r}") from None


def get_logger(
    component: str,
    log_file: str | None = None,
    level: int | None = None,
) -> logging.Logger:
    """Return a named logger that emits structured JSON.

    Args:
        component: Short name for the component (e.g. "reconciler").
        log_file: Optional path; writes JSON lines to this file instead of stderr.
        level: Logging level, defaults to the level set by
            ``configure_logging`` (INFO until configured).

    Returns:
        A ``logging.Logger`` instance named ``clustermon.<component>``.
    """
    logger = logging.getLogger(f"{ROOT_LOGGER}.{component}")
    logger.setLevel(_default_level if level is None else level)

    if not logger.handlers:
        if log_file:
            handler = logging.FileHandler(log_file)
        else:
            handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)

    return logger


def configure_logging(level: str) -> int:
    """Apply a configured level to every clustermon logger created so far."""
    global _default_level
    resolved = parse_level(level)
    _default_level = resolved
    logging.getLogger(ROOT_LOGGER).setLevel(resolved)
    for name, logger in list(logging.Logger.manager.loggerDict.items()):
        if name.startswith(f"{ROOT_LOGGER}.") and isinstance(logger, logging.Logger):
            logger.setLevel(resolved)
    return resolved
