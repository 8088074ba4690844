"""structlog configuration.

Call configure_logging() once at process start. Modules get their logger
with ``structlog.get_logger(__name__)`` and log snake_case event names with
key/value context::

    logger.info("stock_cas_conflict", book_id=7, attempt=2)
"""

import logging

import structlog


def configure_logging(json: bool = True, level: str = "INFO") -> None:
    """Configure structlog for JSON (production) or console (dev) output."""
    renderer = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
