"""Logging setup for Connecto service components."""

import logging

logger = logging.getLogger("connecto")


def get_logger(name: str) -> logging.Logger:
    """Return a child of the package logger, e.g. connecto.deals."""
    return logger.getChild(name)


def configure_logging(level: int = logging.INFO) -> None:
    """Attach a stream handler to the package logger (once)."""
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        logger.addHandler(handler)
