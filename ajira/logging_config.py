"""Logging setup for the Ajira backend."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
ROOT_LOGGER_NAME = "ajira"

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the ``ajira`` logger.

    Safe to call more than once; later calls only adjust the level.
    """
    global _configured
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level.upper())
    if _configured:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger namespaced under ``ajira``."""
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
