"""Structured logging setup shared by the server and the scripts."""
import logging

import structlog

from lumi import config


def configure_logging(level: str = None, fmt: str = None) -> None:
    """Configure structlog on top of stdlib logging.

    Args:
        level: Log level name (default from config)
        fmt: "json" for machine-readable lines, "console" for humans (default from config)
    """
    level = (level or config.LOG_LEVEL).upper()
    fmt = fmt or config.LOG_FORMAT

    logging.basicConfig(level=level, format="%(message)s")

    renderer = (
        structlog.dev.ConsoleRenderer()
        if fmt == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
