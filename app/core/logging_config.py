# app/core/logging_config.py
"""
Logging setup for the payments service.

Marketplace loggers (app.*) follow LOG_LEVEL. Stripe logs every API request
at INFO, so the SDK and the libraries beneath it are held at WARNING unless
LOG_LEVEL=DEBUG.
"""

import logging
import os
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

QUIET_LOGGERS = (
    "stripe",
    "urllib3",
    "httpx",
    "httpcore",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "asyncpg",
    "apscheduler",
    "apscheduler.executors.default",
)


def configure_logging(level: Optional[str] = None) -> int:
    """
    Configure the root handler and per-library levels.

    Returns the numeric level applied to the app loggers.
    """
    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    app_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(level=app_level, format=LOG_FORMAT, handlers=[logging.StreamHandler()])

    library_level = logging.DEBUG if app_level == logging.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    for name in ("app", "__main__"):
        logging.getLogger(name).setLevel(app_level)

    logging.getLogger(__name__).info(f"Logging configured at level: {level_name}")
    return app_level


# Auto-configure when module is imported
configure_logging()
