"""
Logging configuration for the visit pipeline.

Provides structured logging for production monitoring and debugging.
"""

import logging
import sys
from typing import Optional

from ..config import settings


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger instance.

    Handlers are installed once on the root "visitguard" logger so that
    child loggers (visitguard.cache, visitguard.pipeline, ...) share them.

    Args:
        name: Logger name (defaults to 'visitguard')

    Returns:
        Configured logger instance
    """
    root = logging.getLogger("visitguard")

    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)
        root.setLevel(settings.app_log_level)

    if not name or name == "visitguard":
        return root
    if not name.startswith("visitguard."):
        name = f"visitguard.{name}"
    return logging.getLogger(name)


# Default logger instance
logger = get_logger()
