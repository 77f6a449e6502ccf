"""
Record layer settings.

Defaults shared by every record class unless a class overrides them.

Dependencies: pydantic, pydantic_settings
System role: Tunables for active-record and class-table-inheritance behavior
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from cti_record.configs.base import BaseSettings


class RecordSettings(BaseSettings):
    """Active-record behavior configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CTI_RECORD_",
        case_sensitive=False,
        extra="ignore",
    )

    parent_key: str = Field(
        default="id",
        description="Parent table column referenced by a child's foreign key",
    )
    relation_separator: str = Field(
        default="__",
        description="Separator between relation name and column in joined result labels",
    )
