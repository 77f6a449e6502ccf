"""
Observability module.

Provides logging configuration for the record layer.
"""

from cti_record.observability.logger import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
