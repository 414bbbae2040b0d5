"""
Logging configuration for Company Harvest.

All harvest modules log through children of the ``company_harvest`` logger,
so a single console + rotating file handler pair covers scheduled, manual and
recovery runs alike.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler

from config.settings import settings

ROOT_LOGGER_NAME = "company_harvest"

# Create logs directory if it doesn't exist
LOG_DIR = settings.project_root / "logs"
LOG_DIR.mkdir(exist_ok=True)


def setup_logging(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Set up logging configuration.

    Args:
        name: Logger name, also used for the log file name

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

    # Weekly full runs produce a lot of per-company lines
    file_handler = RotatingFileHandler(
        LOG_DIR / f"{name}.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_handler.setFormatter(formatter)
    file_handler.setFormatter(formatter)

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    return logger


def get_logger(component: str) -> logging.Logger:
    """Return a child of the harvest logger for one component."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")


# Default logger
logger = setup_logging()
