"""
Database boundary layer: table metadata, engine and transaction handling.

Exports:
  - metadata and column helpers for declaring record tables
  - get_engine(), Database, get_database(), set_database()
  - create_all_tables(), drop_all_tables()

Dependencies: sqlalchemy, cti_record.configs
System role: Database adapter underneath the active-record layer
"""

from cti_record.boundary.db.base import (
    foreign_key_column,
    id_column,
    metadata,
    timestamp_columns,
    uuid_column,
    version_column,
)
from cti_record.boundary.db.connection import (
    Database,
    get_database,
    get_engine,
    set_database,
)
from cti_record.boundary.db.create_tables import create_all_tables, drop_all_tables

__all__ = [
    # Metadata and columns
    "metadata",
    "id_column",
    "uuid_column",
    "foreign_key_column",
    "timestamp_columns",
    "version_column",
    # Connection
    "Database",
    "get_engine",
    "get_database",
    "set_database",
    # Schema
    "create_all_tables",
    "drop_all_tables",
]
