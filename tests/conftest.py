"""
Shared test fixtures and configuration for entire test suite.

Provides: In-memory SQLite engine, Database bound as the shared handle,
seeded authors, settings cache reset
Dependencies: pytest, sqlalchemy
System role: Test infrastructure and fixture management
"""

import pytest

from cti_record.boundary.db import Database, get_engine, metadata, set_database
from cti_record.configs import get_settings
from cti_record.records import Model
from tests import domain


@pytest.fixture(autouse=True)
def reset_shared_state():
    """Drop cached settings and per-class model instances between tests."""
    get_settings.cache_clear()
    Model._instances.clear()
    yield
    get_settings.cache_clear()
    Model._instances.clear()


@pytest.fixture
def engine():
    """
    Create in-memory SQLite engine with all tables.

    Yields:
        Engine: Engine sharing one connection across the test
    """
    engine = get_engine("sqlite://")
    metadata.create_all(engine)
    yield engine
    metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine) -> Database:
    """Database installed as the shared handle records use."""
    database = Database(engine)
    set_database(database)
    yield database
    set_database(None)


@pytest.fixture
def author(db) -> domain.Author:
    """Persisted author."""
    record = domain.Author(name="Ada")
    assert record.save()
    return record
