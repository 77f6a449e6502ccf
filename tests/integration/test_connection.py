"""
Integration tests for the database boundary.

Uses the in-memory SQLite engine from conftest.
"""

import uuid

import pytest
from sqlalchemy import Column, MetaData, String, Table, inspect, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from cti_record.boundary.db import (
    Database,
    create_all_tables,
    drop_all_tables,
    get_database,
    get_engine,
    set_database,
    uuid_column,
)
from tests.domain import articles, authors, contents


class TestGetEngine:
    """Tests for engine creation."""

    def test_memory_sqlite_uses_static_pool(self, engine) -> None:
        assert isinstance(engine.pool, StaticPool)

    def test_sqlite_enforces_foreign_keys(self, db: Database) -> None:
        with pytest.raises(IntegrityError):
            db.insert(articles, {"content_id": 999, "body": "Orphan"})


class TestDatabase:
    """Tests for statement execution and transactions."""

    def test_insert_returns_key_and_defaults(self, db: Database) -> None:
        # Act
        inserted = db.insert(contents, {"title": "Hello"})

        # Assert
        assert inserted["id"] == 1
        assert inserted["status"] == "draft"
        assert inserted["created_at"] is not None

    def test_insert_returns_client_generated_uuid(self, engine) -> None:
        tags = Table("tags", MetaData(), uuid_column(), Column("name", String(50)))
        tags.create(engine)

        inserted = Database(engine).insert(tags, {"name": "python"})

        assert isinstance(inserted["id"], uuid.UUID)

    def test_update_and_delete_return_row_counts(self, db: Database) -> None:
        db.insert(authors, {"name": "Ada"})
        db.insert(authors, {"name": "Grace"})

        assert db.update(authors, {"name": "Ada L."}, authors.c.name == "Ada") == 1
        assert db.delete(authors) == 2

    def test_fetch_helpers(self, db: Database) -> None:
        db.insert(authors, {"name": "Ada"})

        assert dict(db.fetch_one(select(authors.c.name))) == {"name": "Ada"}
        assert [dict(row) for row in db.fetch_all(select(authors.c.id))] == [{"id": 1}]
        assert db.scalar(select(authors.c.name)) == "Ada"

    def test_nested_transactions_share_connection(self, db: Database) -> None:
        with db.transaction() as outer:
            with db.transaction() as inner:
                assert inner is outer
            assert db.connection is outer
        assert db.connection is None

    def test_error_rolls_back_whole_transaction(self, db: Database) -> None:
        """Writes made by nested calls are undone with the outer block."""
        with pytest.raises(RuntimeError):
            with db.transaction():
                db.insert(authors, {"name": "Ada"})
                with db.transaction():
                    db.insert(authors, {"name": "Grace"})
                raise RuntimeError("boom")

        assert db.scalar(select(authors.c.id)) is None

    def test_commit_on_success(self, db: Database) -> None:
        with db.transaction():
            db.insert(authors, {"name": "Ada"})

        assert db.scalar(select(authors.c.name)) == "Ada"


class TestSharedDatabase:
    """Tests for the process-wide Database handle."""

    def test_set_and_get(self, engine) -> None:
        database = Database(engine)

        set_database(database)
        try:
            assert get_database() is database
        finally:
            set_database(None)

    def test_built_from_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CTI_DB_URL", "sqlite://")
        set_database(None)
        try:
            database = get_database()

            assert database.engine.url.drivername.startswith("sqlite")
            assert get_database() is database
        finally:
            database.engine.dispose()
            set_database(None)


class TestCreateTables:
    """Tests for schema creation helpers."""

    def test_create_and_drop(self) -> None:
        engine = get_engine("sqlite://")
        try:
            create_all_tables(engine)
            assert {"authors", "contents", "articles"} <= set(inspect(engine).get_table_names())

            drop_all_tables(engine)
            assert inspect(engine).get_table_names() == []
        finally:
            engine.dispose()
