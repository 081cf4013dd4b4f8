"""
Tract Affordability Atlas - Logging Configuration
Structured JSON logging in production, readable lines everywhere else
"""

import logging
import os
import sys
from datetime import datetime

from pythonjsonlogger import jsonlogger

from config.settings import get_settings

settings = get_settings()

JSON_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _build_formatter() -> logging.Formatter:
    if settings.ENVIRONMENT == "production":
        return jsonlogger.JsonFormatter(fmt=JSON_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def _log_level() -> int:
    level = logging.getLevelName((settings.LOG_LEVEL or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(name: str = "affordability_atlas") -> logging.Logger:
    """
    Configure the named logger and the root logger.

    Module loggers from get_logger() carry no handlers of their own; they
    propagate to the root, which receives the same handlers as ``name``.
    A daily file under LOG_DIR is added when LOG_DIR is set.

    Args:
        name: Logger name, also the log file prefix

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(_log_level())
    logger.handlers = []
    logger.propagate = False

    formatter = _build_formatter()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if settings.LOG_DIR:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        log_file = os.path.join(settings.LOG_DIR, f"{name}_{datetime.now().strftime('%Y%m%d')}.log")
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(logger.level)
    root_logger.handlers = list(logger.handlers)

    return logger


def get_logger(module_name: str) -> logging.Logger:
    """Module logger (pass __name__); handlers come from setup_logging()."""
    return logging.getLogger(module_name)
