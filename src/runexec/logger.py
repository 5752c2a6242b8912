"""Structured logging singleton.

Reads os.environ directly rather than Settings: the logger has to exist
before configuration is validated so that config errors can be logged.
``RUNEXEC_LOG_LEVEL`` wins over ``LOG_LEVEL``; both accept the sidecar's
level names (``warn``, ``fatal``) as well as the stdlib ones.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

# Sidecar level names that the stdlib spells differently
_LEVEL_ALIASES = {"WARN": logging.WARNING, "FATAL": logging.CRITICAL}


def level_for(name: str | None) -> int:
    """Map a level name to a stdlib level, defaulting to INFO."""
    if not name:
        return logging.INFO
    name = name.strip().upper()
    if name in _LEVEL_ALIASES:
        return _LEVEL_ALIASES[name]
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level_name: str | None = None) -> None:
    """(Re)configure stdlib and structlog output at ``level_name``.

    Safe to call again, e.g. to apply the log level of a run configuration.
    """
    level = level_for(level_name)
    logging.basicConfig(format="%(message)s", stream=sys.stderr)
    # filter_by_level consults the stdlib logger on every call
    logging.getLogger().setLevel(level)

    if structlog.is_configured():
        return
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging(os.environ.get("RUNEXEC_LOG_LEVEL") or os.environ.get("LOG_LEVEL"))
logger: structlog.stdlib.BoundLogger = structlog.get_logger("runexec")


def get_process_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Logger for lines emitted by a supervised process.

    Named ``proc.<name>`` and bound with ``process=name`` so child output can
    be filtered either way.
    """
    return structlog.get_logger(f"proc.{name}").bind(process=name)
