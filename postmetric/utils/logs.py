# ==============================================================================
# Logging Setup
# ==============================================================================
"""
Root logging configuration shared by the server and the CLI.
"""

import logging

from postmetric.utils.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("urllib3", "uvicorn.access")


def configure_logging(level: str | None = None) -> None:
    """
    Configure root logging. Does nothing to handlers that already exist.

    Args:
        level: Log level name. If None, uses LOG_LEVEL from settings.
    """
    level = (level or get_settings().log_level).upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
