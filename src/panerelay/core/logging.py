"""
Structured logging configuration for panerelay.

Every log entry is a named structlog event with key-value context. Session
code binds ``session_id`` (the multiplexer session name) once, so capture,
send and liveness entries for one pane can be grepped together.

Setup:
    The CLI calls ``configure_logging()`` from its root group; ``attach``
    re-applies the ``[logging]`` config section through
    ``configure_logging_from()`` unless ``--log-level`` was given. Modules
    then use::

        import structlog
        logger = structlog.get_logger()

        log = logger.bind(session_id="panerelay-web")
        log.info("capture_emitted", chars=412, context_percent=37)
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from panerelay.core.config import LoggingConfig

# Chatty at DEBUG (slow-callback warnings, subprocess transport noise)
_QUIET_LOGGERS = ("asyncio",)


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(json_output: bool) -> structlog.types.Processor:
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def _is_structlog_handler(handler: logging.Handler) -> bool:
    return isinstance(handler, logging.StreamHandler) and isinstance(
        getattr(handler, "formatter", None), structlog.stdlib.ProcessorFormatter
    )


def configure_logging(
    *,
    level: str = "INFO",
    json_output: bool = False,
) -> None:
    """
    Configure structlog + stdlib logging for the process.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR). Unknown names
               fall back to INFO.
        json_output: Emit JSON lines instead of console output (coloured
                     only when stderr is a TTY).

    Safe to call repeatedly: the stderr handler is installed once and later
    calls only swap its renderer and the root level.
    """
    shared = _shared_processors()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(json_output),
        ],
        foreign_pre_chain=shared,
    )

    root = logging.getLogger()
    installed = [h for h in root.handlers if _is_structlog_handler(h)]
    for handler in installed:
        handler.setFormatter(formatter)
    if not installed:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_logging_from(config: LoggingConfig) -> None:
    """Apply a validated ``[logging]`` config section."""
    configure_logging(level=config.level, json_output=config.format == "json")
