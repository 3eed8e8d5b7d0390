"""
Logging setup for the sync run.

One ``geoip_sync`` logger hierarchy with a console handler, plus
``sync.log`` and ``errors.log`` when a log directory is configured.

Example:
    from geoip_sync.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Processing GeoIP2-City...")
"""

from __future__ import annotations

import logging
from pathlib import Path

from geoip_sync.constants import LOG_DATE_FORMAT, LOG_FORMAT, LOGGER_ROOT, QUIET_LOGGERS


def _level(value: str | int) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level: str | int = "INFO", log_dir: str | Path | None = None) -> logging.Logger:
    """
    Configure the ``geoip_sync`` logger.

    Safe to call more than once; existing handlers are replaced.

    Args:
        level: Level name or number for the console and activity log
        log_dir: Optional directory for ``sync.log`` and ``errors.log``

    Returns:
        The configured root logger of the package
    """
    numeric_level = _level(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    logger = logging.getLogger(LOGGER_ROOT)
    logger.setLevel(numeric_level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_dir / "sync.log")
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        error_handler = logging.FileHandler(log_dir / "errors.log")
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        logger.addHandler(error_handler)

    # Client libraries log request details at DEBUG, including query strings.
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    if name == LOGGER_ROOT or name.startswith(f"{LOGGER_ROOT}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_ROOT}.{name}")


__all__ = ["configure_logging", "get_logger"]
