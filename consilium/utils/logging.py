"""
Logging configuration for the consultation engine.

Every module logs through ``logging.getLogger(__name__)``, so all engine
output hangs off the ``consilium`` logger configured here. The API calls
``setup_logging`` once at startup.
"""

import logging
import os
import sys
from pathlib import Path


ROOT_LOGGER = "consilium"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"

# HTTP client chatter from every specialist call drowns out the engine's own logs
NOISY_LOGGERS = ("httpx", "httpcore", "openai")


def setup_logging(
    level: str = None,
    log_file: str = None,
) -> logging.Logger:
    """
    Configure the ``consilium`` logger.

    Args:
        level: Log level name. Defaults to LOG_LEVEL, then INFO.
        log_file: Optional file to write to as well as stdout.

    Returns:
        The configured ``consilium`` logger
    """
    level_num = getattr(logging, (level or os.getenv("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level_num)
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    for handler in handlers:
        handler.setLevel(level_num)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    third_party_level = logging.DEBUG if level_num <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    return logger
