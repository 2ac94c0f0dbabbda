"""Logging setup for the pairing service.

Records from ``pairlink.*`` modules and aiohttp's access log share one set
of handlers: stderr always, plus a file when ``log_file`` is configured.
"""

import logging
from pathlib import Path

from pairlink.config import Config

LOGGER_NAME = "pairlink"
ACCESS_LOGGER_NAME = "aiohttp.access"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_logger: logging.Logger | None = None


def _build_handlers(config: Config) -> list[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if config.log_file:
        log_path = Path(config.log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(config: Config) -> logging.Logger:
    """Configure the ``pairlink`` logger tree and the HTTP access log.

    Calling again returns the already configured logger; use
    :func:`reset_logging` first to apply a different configuration.

    Args:
        config: Configuration with ``log_level`` and ``log_file``.

    Returns:
        The ``pairlink`` root logger.
    """
    global _logger

    if _logger is not None:
        return _logger

    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handlers = _build_handlers(config)
    for name in (LOGGER_NAME, ACCESS_LOGGER_NAME):
        target = logging.getLogger(name)
        target.handlers.clear()
        target.setLevel(level)
        for handler in handlers:
            target.addHandler(handler)
        target.propagate = False

    _logger = logging.getLogger(LOGGER_NAME)
    return _logger


def reset_logging() -> None:
    """Drop configured handlers. Used by tests."""
    global _logger
    if _logger is None:
        return

    for name in (LOGGER_NAME, ACCESS_LOGGER_NAME):
        target = logging.getLogger(name)
        for handler in list(target.handlers):
            target.removeHandler(handler)
            handler.close()
        target.propagate = True
    _logger = None
