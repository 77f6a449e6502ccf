"""
Active record: one object per table row.

A record class points at a SQLAlchemy Core table and exposes its columns as
attributes. Records are loaded through `find()` queries, validated through the
`Model` rules and written back with `save()`/`delete()`, with lifecycle hooks
around every step.

    class Post(ActiveRecord):
        __table__ = posts_table

        def rules(self):
            return [("title", "required")]

        @relation
        def author(self):
            return self.has_one(User, {"id": "author_id"})

    post = Post(title="Hello", author_id=1)
    post.save()
    post.author.name

Dependencies: sqlalchemy, cti_record.records, cti_record.boundary.db
System role: Row lifecycle (load, validate, insert, update, delete) and relations
"""

import functools
import inspect
import logging
from collections.abc import Callable, Mapping
from typing import Any, ClassVar

from sqlalchemy import ColumnElement, Table, and_
from sqlalchemy.sql import ClauseElement

from cti_record.boundary.db import Database, get_database
from cti_record.records.active_query import ActiveQuery
from cti_record.records.exceptions import (
    InvalidArgumentError,
    InvalidCallError,
    InvalidConfigError,
    StaleObjectError,
)
from cti_record.records.model import Model

logger = logging.getLogger(__name__)


class _SaveCancelled(Exception):
    """Raised inside a write transaction when a hook cancels the operation."""


class relation:
    """
    Declare a relation on a record class.

    The decorated method returns a relation query built with `has_one()` or
    `has_many()`. Reading the attribute loads the related record(s) once and
    caches them on the instance.
    """

    def __init__(self, method: Callable[[Any], ActiveQuery]) -> None:
        self.method = method
        self.name = method.__name__
        functools.update_wrapper(self, method)

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return instance._get_related(self.name)

    def __set__(self, instance: Any, value: Any) -> None:
        raise InvalidCallError(f"Setting read-only property: {type(instance).__name__}.{self.name}")


class ActiveRecord(Model):
    """
    Base class for table-backed records.

    Subclasses set `__table__`. Column values live in `_attributes`; the values
    last loaded or saved live in `_old_attributes`, which is None while the
    record has not been inserted.
    """

    __table__: ClassVar[Table]

    _attribute_names: ClassVar[dict[type, frozenset[str]]] = {}

    def __init__(self, **config: Any) -> None:
        self._attributes: dict[str, Any] = {}
        self._old_attributes: dict[str, Any] | None = None
        self._related: dict[str, Any] = {}
        super().__init__(**config)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.get_primary_key()!r}>"

    # Schema

    @classmethod
    def table(cls) -> Table:
        table = getattr(cls, "__table__", None)
        if table is None:
            raise InvalidConfigError(f"{cls.__name__} must define __table__.")
        return table

    @classmethod
    def table_name(cls) -> str:
        return cls.table().name

    @classmethod
    def primary_key(cls) -> list[str]:
        keys = [column.key for column in cls.table().primary_key.columns]
        if not keys:
            raise InvalidConfigError(f'The table "{cls.table_name()}" for {cls.__name__} has no primary key.')
        return keys

    @classmethod
    def column(cls, name: str) -> ColumnElement:
        table = cls.table()
        if name not in table.c:
            raise InvalidArgumentError(f'{cls.__name__} has no column named "{name}".')
        return table.c[name]

    @classmethod
    def get_db(cls) -> Database:
        return get_database()

    def attributes(self) -> list[str]:
        """Column names of the record's table."""
        return [column.key for column in self.table().columns]

    def has_attribute(self, name: str) -> bool:
        cls = type(self)
        names = ActiveRecord._attribute_names.get(cls)
        if names is None:
            names = ActiveRecord._attribute_names[cls] = frozenset(self.attributes())
        return name in names

    # Property interception

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")
        attributes = self.__dict__.get("_attributes")
        if attributes is not None:
            if name in attributes:
                return attributes[name]
            if self.has_attribute(name):
                return None
            if name in self._related:
                return self._related[name]
            if self.get_relation(name, throw_exception=False) is not None:
                return self._get_related(name)
        return super().__getattr__(name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
        elif self.has_attribute(name):
            self._attributes[name] = value
        else:
            super().__setattr__(name, value)

    def can_get_property(self, name: str, check_vars: bool = True) -> bool:
        if super().can_get_property(name, check_vars) or self.has_attribute(name):
            return True
        return isinstance(inspect.getattr_static(type(self), name, None), relation)

    def can_set_property(self, name: str, check_vars: bool = True) -> bool:
        return super().can_set_property(name, check_vars) or self.has_attribute(name)

    # Attribute values

    def get_attribute(self, name: str) -> Any:
        return self._attributes.get(name)

    def set_attribute(self, name: str, value: Any) -> None:
        if not self.has_attribute(name):
            raise InvalidArgumentError(f'{type(self).__name__} has no attribute named "{name}".')
        self._attributes[name] = value

    def get_old_attributes(self) -> dict[str, Any]:
        return dict(self._old_attributes or {})

    def set_old_attributes(self, values: Mapping[str, Any] | None) -> None:
        self._old_attributes = None if values is None else dict(values)

    def get_old_attribute(self, name: str) -> Any:
        return (self._old_attributes or {}).get(name)

    def set_old_attribute(self, name: str, value: Any) -> None:
        if not self.has_attribute(name) and not (self._old_attributes and name in self._old_attributes):
            raise InvalidArgumentError(f'{type(self).__name__} has no attribute named "{name}".')
        if self._old_attributes is None:
            self._old_attributes = {}
        self._old_attributes[name] = value

    def get_dirty_attributes(self, names: Any = None) -> dict[str, Any]:
        """
        Attribute values changed since the record was loaded or saved.

        For a new record every attribute that has been set counts as dirty.
        """
        allowed = None if names is None else set(names)
        old = self._old_attributes
        return {
            name: value
            for name, value in self._attributes.items()
            if (allowed is None or name in allowed)
            and (old is None or name not in old or old[name] != value)
        }

    def is_attribute_changed(self, name: str) -> bool:
        old = self._old_attributes or {}
        if name in self._attributes and name in old:
            return self._attributes[name] != old[name]
        return name in self._attributes or name in old

    def mark_attribute_dirty(self, name: str) -> None:
        if self._old_attributes is not None:
            self._old_attributes.pop(name, None)

    @property
    def is_new_record(self) -> bool:
        return self._old_attributes is None

    @is_new_record.setter
    def is_new_record(self, value: bool) -> None:
        self._old_attributes = None if value else dict(self._attributes)

    def get_primary_key(self, as_dict: bool = False) -> Any:
        return self._key_values(self._attributes, as_dict)

    def get_old_primary_key(self, as_dict: bool = False) -> Any:
        return self._key_values(self._old_attributes or {}, as_dict)

    def _key_values(self, values: Mapping[str, Any], as_dict: bool) -> Any:
        keys = self.primary_key()
        if len(keys) == 1 and not as_dict:
            return values.get(keys[0])
        return {key: values.get(key) for key in keys}

    def load_default_values(self, skip_if_set: bool = True) -> "ActiveRecord":
        """Fill attributes from the scalar column defaults of the table."""
        for column in self.table().columns:
            default = column.default
            if default is None or not getattr(default, "is_scalar", False):
                continue
            if not skip_if_set or self._attributes.get(column.key) is None:
                self._attributes[column.key] = default.arg
        return self

    def equals(self, record: Any) -> bool:
        if self.is_new_record or not isinstance(record, ActiveRecord) or record.is_new_record:
            return False
        return self.table_name() == record.table_name() and self.get_primary_key() == record.get_primary_key()

    def optimistic_lock(self) -> str | None:
        """Name of the version column used for optimistic locking, if any."""
        return None

    # Finders

    @classmethod
    def find(cls) -> ActiveQuery:
        return ActiveQuery(cls)

    @classmethod
    def find_one(cls, condition: Any) -> "ActiveRecord | None":
        """
        Find one record by primary key value or condition.

        Args:
            condition: A primary key value, a dict of column values or a
                SQLAlchemy clause
        """
        return cls._find_by_condition(condition).one()

    @classmethod
    def find_all(cls, condition: Any) -> list["ActiveRecord"]:
        return cls._find_by_condition(condition).all()

    @classmethod
    def _find_by_condition(cls, condition: Any) -> ActiveQuery:
        query = cls.find()
        if not isinstance(condition, (Mapping, ClauseElement)):
            key = cls.primary_key()[0]
            condition = {cls.table().c[key]: condition}
        return query.and_where(condition)

    @classmethod
    def _table_condition(cls, condition: Any) -> ColumnElement | None:
        if condition is None:
            return None
        return ActiveQuery(cls).resolve_condition(condition, [cls.table()])

    @classmethod
    def update_all(cls, values: Mapping[str, Any], condition: Any = None) -> int:
        """Update rows matching `condition` without loading them."""
        return cls.get_db().update(cls.table(), values, cls._table_condition(condition))

    @classmethod
    def delete_all(cls, condition: Any = None) -> int:
        """Delete rows matching `condition` without loading them."""
        return cls.get_db().delete(cls.table(), cls._table_condition(condition))

    @classmethod
    def instantiate(cls, row: Mapping[str, Any]) -> "ActiveRecord":
        """Create an empty record for a row; `populate_record` fills it."""
        return cls()

    @classmethod
    def populate_record(cls, record: "ActiveRecord", row: Mapping[str, Any]) -> None:
        """Load a database row into a record and mark it as persisted."""
        for name, value in row.items():
            if record.has_attribute(name):
                record._attributes[name] = value
            elif record.can_set_property(name):
                setattr(record, name, value)
        record._old_attributes = dict(record._attributes)
        record._related = {}

    # Relations

    def has_one(self, class_: type["ActiveRecord"], link: Mapping[str, str]) -> ActiveQuery:
        """
        Relation yielding one record.

        Args:
            class_: Related record class
            link: Related column names mapped to attribute names of this record
        """
        return self._create_relation_query(class_, link, multiple=False)

    def has_many(self, class_: type["ActiveRecord"], link: Mapping[str, str]) -> ActiveQuery:
        return self._create_relation_query(class_, link, multiple=True)

    def _create_relation_query(self, class_: type["ActiveRecord"], link: Mapping[str, str], multiple: bool) -> ActiveQuery:
        query = class_.find()
        query.primary_model = self
        query.link = dict(link)
        query.multiple = multiple
        return query

    def get_relation(self, name: str, throw_exception: bool = True) -> ActiveQuery | None:
        """
        Relation query declared under `name`.

        Raises:
            InvalidArgumentError: If no such relation exists and
                `throw_exception` is set
        """
        declared = inspect.getattr_static(type(self), name, None)
        if isinstance(declared, relation):
            query = declared.method(self)
            if isinstance(query, ActiveQuery):
                return query
        if throw_exception:
            raise InvalidArgumentError(f'{type(self).__name__} has no relation named "{name}".')
        return None

    def _get_related(self, name: str) -> Any:
        if name not in self._related:
            query = self.get_relation(name)
            self._related[name] = query.find_for(name, self)
        return self._related[name]

    def populate_relation(self, name: str, records: Any) -> None:
        self._related[name] = records

    def is_relation_populated(self, name: str) -> bool:
        return name in self._related

    @property
    def related_records(self) -> dict[str, Any]:
        return dict(self._related)

    # Lifecycle

    def save(self, run_validation: bool = True, attribute_names: Any = None) -> bool:
        """
        Insert or update the record.

        Args:
            run_validation: Validate before writing
            attribute_names: Restrict validation and the write to these attributes

        Returns:
            bool: False when validation failed or a hook cancelled the write
        """
        if self.is_new_record:
            return self.insert(run_validation, attribute_names)
        return self.update(run_validation, attribute_names) is not False

    def insert(self, run_validation: bool = True, attribute_names: Any = None) -> bool:
        if run_validation and not self.validate(attribute_names):
            logger.info("Model not inserted due to validation error.")
            return False
        try:
            with self.get_db().transaction():
                if not self._insert_internal(attribute_names):
                    raise _SaveCancelled
        except _SaveCancelled:
            logger.debug("Insert of %s cancelled", type(self).__name__)
            return False
        return True

    def update(self, run_validation: bool = True, attribute_names: Any = None) -> int | bool:
        """
        Write dirty attributes of a persisted record.

        Returns:
            int | bool: Number of updated rows, or False when validation failed
            or a hook cancelled the write

        Raises:
            StaleObjectError: If optimistic locking detects a concurrent change
        """
        if run_validation and not self.validate(attribute_names):
            logger.info("Model not updated due to validation error.")
            return False
        try:
            with self.get_db().transaction():
                rows = self._update_internal(attribute_names)
                if rows is False:
                    raise _SaveCancelled
        except _SaveCancelled:
            logger.debug("Update of %s cancelled", type(self).__name__)
            return False
        return rows

    def delete(self) -> int | bool:
        """
        Delete the record's row.

        Returns:
            int | bool: Number of deleted rows, or False when `before_delete`
            cancelled the deletion

        Raises:
            StaleObjectError: If optimistic locking detects a concurrent change
        """
        try:
            with self.get_db().transaction():
                rows = self._delete_internal()
                if rows is False:
                    raise _SaveCancelled
        except _SaveCancelled:
            logger.debug("Delete of %s cancelled", type(self).__name__)
            return False
        return rows

    def _values_to_write(self, attribute_names: Any = None) -> dict[str, Any]:
        """Column values an INSERT or UPDATE statement should carry."""
        return self.get_dirty_attributes(attribute_names)

    def _key_condition(self, values: Mapping[str, Any]) -> ColumnElement:
        table = self.table()
        return and_(
            *[table.c[name].is_(None) if value is None else table.c[name] == value for name, value in values.items()]
        )

    def _insert_internal(self, attribute_names: Any = None) -> bool:
        if not self.before_save(True):
            return False
        values = self._values_to_write(attribute_names)
        inserted = self.get_db().insert(self.table(), values)
        for name, value in inserted.items():
            if self.has_attribute(name):
                self._attributes[name] = value

        changed = dict.fromkeys(values)
        self._old_attributes = dict(self._attributes)
        logger.debug("Inserted %s %r", type(self).__name__, self.get_primary_key())
        self.after_save(True, changed)
        return True

    def _update_internal(self, attribute_names: Any = None) -> int | bool:
        if not self.before_save(False):
            return False
        values = self._values_to_write(attribute_names)
        if not values:
            self.after_save(False, {})
            return 0

        condition = self.get_old_primary_key(as_dict=True)
        lock = self.optimistic_lock()
        if lock is not None:
            current = self._attributes.get(lock)
            values[lock] = (current or 0) + 1
            condition[lock] = current

        rows = self.get_db().update(self.table(), values, self._key_condition(condition))
        if lock is not None and not rows:
            raise StaleObjectError("The object being updated is outdated.")
        if lock is not None:
            self._attributes[lock] = values[lock]

        old = self._old_attributes if self._old_attributes is not None else {}
        changed = {name: old.get(name) for name in values}
        old.update(values)
        self._old_attributes = old
        logger.debug("Updated %s %r: %s", type(self).__name__, self.get_primary_key(), sorted(values))
        self.after_save(False, changed)
        return rows

    def _delete_internal(self) -> int | bool:
        if not self.before_delete():
            return False
        condition = self.get_old_primary_key(as_dict=True)
        lock = self.optimistic_lock()
        if lock is not None:
            condition[lock] = self._attributes.get(lock)

        rows = self.get_db().delete(self.table(), self._key_condition(condition))
        if lock is not None and not rows:
            raise StaleObjectError("The object being deleted is outdated.")
        self._old_attributes = None
        logger.debug("Deleted %s %r", type(self).__name__, self.get_primary_key())
        self.after_delete()
        return rows

    def refresh(self) -> bool:
        """
        Reload attribute values from the database.

        Returns:
            bool: False when the row no longer exists
        """
        table = self.table()
        condition = and_(*[table.c[name] == value for name, value in self.get_primary_key(as_dict=True).items()])
        record = type(self).find().where(condition).one()
        return self._refresh_internal(record)

    def _refresh_internal(self, record: "ActiveRecord | None") -> bool:
        if record is None:
            return False
        for name in self.attributes():
            self._attributes[name] = record._attributes.get(name)
        self._old_attributes = record._old_attributes
        self._related = {}
        self.after_refresh()
        return True

    # Hooks

    def before_save(self, insert: bool) -> bool:
        """Called before insert/update; returning False cancels the write."""
        return True

    def after_save(self, insert: bool, changed_attributes: dict[str, Any]) -> None:
        """
        Called after insert/update.

        Args:
            insert: Whether the record was inserted
            changed_attributes: Old values of the written attributes (None for
                every attribute on insert)
        """

    def before_delete(self) -> bool:
        return True

    def after_delete(self) -> None:
        pass

    def after_find(self) -> None:
        """Called when a record has been populated from a query result."""

    def after_refresh(self) -> None:
        pass
