"""
Unified application settings.

Aggregates all configuration modules into a single Settings class.

Dependencies: All config modules
System role: Central configuration aggregator for the library
"""

from functools import lru_cache

from pydantic import Field

from cti_record.configs.base import BaseSettings
from cti_record.configs.database import DatabaseSettings
from cti_record.configs.records import RecordSettings


class Settings(BaseSettings):
    """Unified settings aggregating all config modules."""

    # Aggregated settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    records: RecordSettings = Field(default_factory=RecordSettings)


@lru_cache
def get_settings() -> Settings:
    """
    Get settings singleton.

    Environment variables are loaded once; call `get_settings.cache_clear()`
    to pick up changes.

    Returns:
        Settings: Settings instance

    Usage:
        from cti_record.configs import get_settings
        settings = get_settings()
    """
    return Settings()
