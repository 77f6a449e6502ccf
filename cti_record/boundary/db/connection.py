"""
Database connection management.

Provides the SQLAlchemy engine factory and `Database`, the handle records use
to execute statements. `Database.transaction()` keeps the active connection in
a context variable so nested writes (a child record saving its parent first)
join one transaction.

Dependencies: sqlalchemy, cti_record.configs
System role: Database connection lifecycle management
"""

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from sqlalchemy import Table, create_engine, delete, event, insert, update
from sqlalchemy.engine import Connection, Engine, RowMapping
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import ClauseElement, Executable

from cti_record.configs import get_settings

logger = logging.getLogger(__name__)

_database: "Database | None" = None


def get_engine(url: str | None = None) -> Engine:
    """
    Create SQLAlchemy engine from settings or an explicit URL.

    PostgreSQL (and other server databases) get a QueuePool sized from
    settings with pool_pre_ping. SQLite gets `PRAGMA foreign_keys=ON` on every
    connection, and in-memory SQLite shares one connection via StaticPool.

    Args:
        url: SQLAlchemy URL; defaults to `settings.database.database_url`

    Returns:
        Engine: Configured SQLAlchemy engine

    Raises:
        ArgumentError: If the database URL is invalid
    """
    db_config = get_settings().database
    url = url or db_config.database_url

    if url.startswith("sqlite"):
        options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"):
            options["poolclass"] = StaticPool
        engine = create_engine(url, echo=db_config.echo_sql, **options)

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute("PRAGMA foreign_keys=ON")
            finally:
                cursor.close()

    else:
        engine = create_engine(
            url,
            echo=db_config.echo_sql,
            pool_size=db_config.pool_size,
            max_overflow=db_config.max_overflow,
            pool_timeout=db_config.pool_timeout,
            pool_pre_ping=True,
        )

    logger.info("Created engine for %s", engine.url.render_as_string(hide_password=True))
    return engine


class Database:
    """
    Statement executor bound to one engine.

    Outside `transaction()` every call runs in its own short transaction.
    Inside it, calls reuse the transaction's connection.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._connection: ContextVar[Connection | None] = ContextVar(
            f"cti_record_connection_{id(self)}", default=None
        )

    @property
    def connection(self) -> Connection | None:
        """Connection of the active transaction, if any."""
        return self._connection.get()

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """
        Run the block inside a transaction.

        Nested calls join the outer transaction. The outermost call commits on
        success and rolls back when the block raises.

        Yields:
            Connection: Connection bound to the transaction
        """
        current = self._connection.get()
        if current is not None:
            yield current
            return

        with self.engine.connect() as conn:
            trans = conn.begin()
            token = self._connection.set(conn)
            try:
                yield conn
            except BaseException:
                trans.rollback()
                logger.debug("Transaction rolled back")
                raise
            else:
                trans.commit()
            finally:
                self._connection.reset(token)

    def fetch_all(self, statement: Executable) -> list[RowMapping]:
        """Execute a SELECT and return every row as a mapping."""
        with self.transaction() as conn:
            return list(conn.execute(statement).mappings())

    def fetch_one(self, statement: Executable) -> RowMapping | None:
        """Execute a SELECT and return its first row, or None."""
        with self.transaction() as conn:
            return conn.execute(statement).mappings().first()

    def scalar(self, statement: Executable) -> Any:
        """Execute a SELECT and return the first column of the first row."""
        with self.transaction() as conn:
            return conn.execute(statement).scalar()

    def insert(self, table: Table, values: Mapping[str, Any]) -> dict[str, Any]:
        """
        Insert one row.

        Args:
            table: Target table
            values: Column values; omitted columns take their defaults

        Returns:
            dict: Values actually inserted, including client-side defaults and
            the generated primary key
        """
        with self.transaction() as conn:
            result = conn.execute(insert(table).values(dict(values)))
            inserted = dict(result.last_inserted_params())
            primary_key = result.inserted_primary_key or ()
            for column, value in zip(table.primary_key.columns, primary_key):
                if value is not None:
                    inserted[column.key] = value
        logger.debug("Inserted into %s: %s", table.name, sorted(inserted))
        return {key: value for key, value in inserted.items() if key in table.c}

    def update(
        self,
        table: Table,
        values: Mapping[str, Any],
        condition: ClauseElement | None = None,
    ) -> int:
        """Update matching rows and return the affected row count."""
        statement = update(table).values(dict(values))
        if condition is not None:
            statement = statement.where(condition)
        with self.transaction() as conn:
            rows = conn.execute(statement).rowcount
        logger.debug("Updated %d row(s) in %s", rows, table.name)
        return rows

    def delete(self, table: Table, condition: ClauseElement | None = None) -> int:
        """Delete matching rows and return the affected row count."""
        statement = delete(table)
        if condition is not None:
            statement = statement.where(condition)
        with self.transaction() as conn:
            rows = conn.execute(statement).rowcount
        logger.debug("Deleted %d row(s) from %s", rows, table.name)
        return rows


def get_database() -> Database:
    """
    Get the process-wide Database, creating it from settings on first use.

    Returns:
        Database: Shared database handle
    """
    global _database

    if _database is None:
        _database = Database(get_engine())
    return _database


def set_database(database: Database | None) -> None:
    """
    Replace the process-wide Database.

    Passing None drops the current handle; the next `get_database()` call
    builds a new one from settings.
    """
    global _database
    _database = database
