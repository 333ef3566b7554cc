"""
Entry point for the SOP proxy service.

    python -m sopstore
"""

import logging
import sys

from .config.environment import EnvironmentLoader
from .config.validation import ConfigValidator
from .logging_config import configure_logging
from .proxy_service import ProxyServer

logger = logging.getLogger(__name__)


def main() -> int:
    config = EnvironmentLoader.load_proxy_service_config()
    configure_logging(config.log_level)

    errors = ConfigValidator.validate_proxy_service_config(config)
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        return 1

    ProxyServer(config).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
