"""
Database table creation script.

Creates all tables registered on the shared metadata.

Dependencies: sqlalchemy, cti_record.boundary.db
System role: Database schema initialization

Usage:
    python -m cti_record.boundary.db.create_tables
"""

import logging

from sqlalchemy.engine import Engine

from cti_record.boundary.db.base import metadata
from cti_record.boundary.db.connection import get_database

logger = logging.getLogger(__name__)


def create_all_tables(engine: Engine | None = None) -> None:
    """
    Create all tables registered on `metadata`.

    Idempotent: existing tables are left unchanged. Table definitions must be
    imported before calling so they are registered.

    Args:
        engine: Target engine; defaults to the shared Database's engine

    Raises:
        SQLAlchemyError: If the connection or table creation fails
    """
    engine = engine or get_database().engine
    metadata.create_all(bind=engine)
    logger.info("Created tables: %s", ", ".join(metadata.tables))


def drop_all_tables(engine: Engine | None = None) -> None:
    """
    Drop all tables registered on `metadata` and their data.

    WARNING: Irreversible data loss. Only use in development environments.

    Args:
        engine: Target engine; defaults to the shared Database's engine
    """
    engine = engine or get_database().engine
    metadata.drop_all(bind=engine)
    logger.info("Dropped all tables")


if __name__ == "__main__":
    from cti_record.observability import configure_logging

    configure_logging()
    create_all_tables()
