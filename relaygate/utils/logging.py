"""
Structured logging setup for relaygate
"""

import logging
import os

import structlog

_configured = False


def setup_logging():
    """Configure structlog once and return a bound logger"""
    global _configured

    if not _configured:
        logging.basicConfig(
            format="%(message)s",
            level=os.getenv("LOG_LEVEL", "info").upper()
        )

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.processors.JSONRenderer()
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )
        _configured = True

    return structlog.get_logger("relaygate")
