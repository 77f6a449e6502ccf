"""
Shared table metadata and column helpers.

Every record table is a SQLAlchemy Core `Table` registered on `metadata`.
The helpers return fresh `Column` objects so they can be reused across tables,
playing the role of the usual id/timestamp model mixins.

Dependencies: sqlalchemy
System role: Foundation for all record tables
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, MetaData, Uuid

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def id_column(name: str = "id") -> Column:
    """Auto-incrementing integer primary key."""
    return Column(name, Integer, primary_key=True, autoincrement=True)


def uuid_column(name: str = "id") -> Column:
    """
    UUID v4 primary key generated client-side on insert.

    The generated value is reported back through the statement's
    inserted primary key, so records learn their id after insert.
    """
    return Column(name, Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)


def foreign_key_column(
    name: str,
    target: str,
    type_=Integer,
    nullable: bool = False,
    ondelete: str | None = "CASCADE",
) -> Column:
    """
    Foreign key column pointing at `target` ("table.column").

    Args:
        name: Column name on the referencing table
        target: Referenced column as "table.column"
        type_: Column type, must match the referenced key
        nullable: Whether the reference is optional
        ondelete: ON DELETE action for the constraint
    """
    return Column(
        name,
        type_,
        ForeignKey(target, ondelete=ondelete),
        nullable=nullable,
        index=True,
    )


def timestamp_columns() -> tuple[Column, Column]:
    """
    created_at / updated_at pair.

    created_at is set once on insert; updated_at is refreshed by every
    UPDATE statement issued through the table. Both are UTC.
    """
    return (
        Column("created_at", DateTime(timezone=True), default=_utcnow, nullable=False),
        Column(
            "updated_at",
            DateTime(timezone=True),
            default=_utcnow,
            onupdate=_utcnow,
            nullable=False,
        ),
    )


def version_column(name: str = "version") -> Column:
    """Integer column for optimistic locking."""
    return Column(name, Integer, nullable=False, default=0)
