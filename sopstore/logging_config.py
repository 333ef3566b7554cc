"""
Logging setup for the proxy service entry point.
"""

import logging
import sys

from .config.settings import LogLevel

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: LogLevel = LogLevel.INFO) -> None:
    """Configure root logging to stdout."""
    logging.basicConfig(
        level=level.value,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
