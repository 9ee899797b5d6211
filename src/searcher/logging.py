"""Structured logging configuration using structlog."""

import logging
import sys

import structlog

# Client libraries whose own request logging would drown out sync events.
_NOISY_LOGGERS: tuple[str, ...] = ("elastic_transport", "elasticsearch", "httpx")


def configure_logging(debug: bool = False, json_output: bool = True) -> None:
    """Configure structlog and route stdlib logging through it.

    Retry attempts and per-document sync events are logged at debug
    level, so ``debug=True`` is the equivalent of a trace log.

    Args:
        debug: Enable debug-level logging when True.
        json_output: Render JSON lines; otherwise use the console renderer.
    """
    level = logging.DEBUG if debug else logging.INFO
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=level,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
