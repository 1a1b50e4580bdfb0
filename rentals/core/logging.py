import logging
import os
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger

from rentals.core.config import settings

PACKAGE_LOGGER = "rentals"

CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _formatter() -> logging.Formatter:
    if settings.log_format.lower() == "json":
        return jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            json_ensure_ascii=False,
        )
    return logging.Formatter(CONSOLE_FORMAT)


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Attach a stdout handler to the ``rentals`` logger.

    The level comes from ``level`` or LOG_LEVEL (default INFO); the format
    from ``settings.log_format``. The host application's root handlers are
    left alone, and calling this again replaces the handler it installed.
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(getattr(logging, level_name, logging.INFO))
    package_logger.handlers = [
        h for h in package_logger.handlers if not getattr(h, "rentals_handler", False)
    ]

    handler = logging.StreamHandler(sys.stdout)
    handler.rentals_handler = True
    handler.setFormatter(_formatter())
    package_logger.addHandler(handler)

    # SQL echo and HTTP connection chatter
    for name in ("sqlalchemy.engine", "aiosqlite", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)

    return package_logger
