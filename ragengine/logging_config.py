"""structlog configuration for entry points."""
import logging

import structlog

from ragengine import config


def configure_logging(level: str = None, json_output: bool = True) -> None:
    """Configure structlog processors and the stdlib root level.

    Args:
        level: Log level name (default from config)
        json_output: Render JSON lines; otherwise a human-readable console format
    """
    level = (level or config.LOG_LEVEL).upper()
    logging.basicConfig(format="%(message)s", level=getattr(logging, level, logging.INFO))

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
