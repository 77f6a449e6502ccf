"""
Logger configuration.

Console logging for applications and scripts that embed the record layer.
Library modules never configure logging themselves; they only call
`logging.getLogger(__name__)`, so records log under `cti_record.*`.

Dependencies: logging (stdlib), cti_record.configs
System role: Centralized logging configuration
"""

import logging
import sys
from typing import TextIO

from cti_record.configs import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str | None = None, stream: TextIO | None = None) -> None:
    """
    Install one console handler on the root logger.

    Calling it again replaces the handler instead of adding a second one.

    Args:
        level: Root log level name; defaults to the `log_level` setting
        stream: Output stream; defaults to stdout
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(handler)
    root_logger.setLevel((level or get_settings().log_level).upper())

    # Statement logging is switched on per engine through `echo_sql`
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger by name.

    Args:
        name: Logger name (usually __name__)
    """
    return logging.getLogger(name)
