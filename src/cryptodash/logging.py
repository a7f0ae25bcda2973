"""Structured logging for cryptodash: structlog over stdlib logging.

Every module logs through ``get_logger(__name__)`` with snake_case event
names. API handlers call ``bind_request_context`` so client, analysis and
throttle enqueue events emitted on the request task carry its symbol and
source. Events from the throttle worker task do not see that context.
"""

import logging
from typing import Any

import structlog

# Chatty third-party loggers and the level they are capped at
_QUIET_LOGGERS: dict[str, int] = {
    "httpx": logging.WARNING,  # one INFO line per request; throttle_request covers it
    "httpcore": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


def setup_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """Configure structlog and route stdlib logging through its renderer.

    Args:
        log_level: Root level name, e.g. "DEBUG" to see throttle queue and
            cache events.
        log_format: "json" for machine-readable lines, anything else for the
            human-readable console renderer.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format.lower() == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # uvicorn and httpx log through stdlib; give them the same rendering
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def bind_request_context(**values: Any) -> None:
    """Replace the current task's log context with ``values``.

    None values are dropped so optional query parameters do not clutter
    every event.
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        **{key: value for key, value in values.items() if value is not None}
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)
