"""structlog setup for runs inside a GitHub Actions job."""

import logging
import os
import sys

import structlog


def is_runner_debug() -> bool:
    """True when the workflow was re-run with debug logging enabled."""
    return os.environ.get("RUNNER_DEBUG") == "1"


def configure_logging(debug: bool | None = None) -> None:
    """
    Configure structlog to write human-readable lines to stderr.

    Args:
        debug: Force debug output. Defaults to the runner's debug flag.
    """
    if debug is None:
        debug = is_runner_debug()
    level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
