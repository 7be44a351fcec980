"""
Shared helpers.
"""
import logging

from crm.core import config


logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


def get_logger(name: str) -> logging.Logger:
    """Return a module logger; root handlers are configured once on import."""
    return logging.getLogger(name)
