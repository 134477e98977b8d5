"""structlog setup.

Library modules only call ``structlog.get_logger()``; applications (and
the CLI) call ``configure_logging`` once at startup to pick the renderer
and the minimum level.
"""

from __future__ import annotations

import logging
from typing import Optional

import structlog

from breakwater.core.config import LoggingConfig


def configure_logging(config: Optional[LoggingConfig] = None) -> None:
    """Configure structlog from a LoggingConfig.

    Args:
        config: Logging settings. Defaults to INFO level JSON output.
    """
    config = config or LoggingConfig()

    if config.format == "console":
        renderer: structlog.typing.Processor = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
