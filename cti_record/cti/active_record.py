"""
Class-table inheritance for active records.

A `CtiActiveRecord` is a child record layered on top of a parent record: the
child table holds a foreign key to the parent table, and the child behaves as
if the parent's columns, member variables, methods, relations, labels and
validation rules were its own.

    class Article(CtiActiveRecord):
        __table__ = articles_table
        parent_class = Content
        foreign_key_field = "content_id"

        def parent_attributes_inherited(self):
            return ["title", "slug", "author_id"]

    article = Article(title="Hello", body="...")
    article.save()      # inserts the contents row, then the articles row
    article.publish()   # method of Content, runs on the parent record
    article.delete()    # deletes both rows

Dependencies: cti_record.records, cti_record.configs
System role: Parent/child stitching across the record lifecycle
"""

import inspect
import logging
from collections.abc import Mapping
from typing import Any, ClassVar

from cti_record.configs import get_settings
from cti_record.cti.active_query import CtiActiveQuery
from cti_record.records.active_record import ActiveRecord, relation
from cti_record.records.exceptions import (
    InvalidArgumentError,
    InvalidConfigError,
    UnknownPropertyError,
)
from cti_record.records.helpers import camel_to_snake, member_variables, merge_rules
from cti_record.records.validators import InlineValidator, UniqueValidator, Validator

logger = logging.getLogger(__name__)


class CtiActiveRecord(ActiveRecord):
    """
    Child record whose row extends a row of `parent_class`.

    Attributes:
        parent_class: Record class of the parent table
        foreign_key_field: Child column referencing the parent key
        own_attributes: Child column names; defaults to the child table columns
        parent_key: Parent column the foreign key references; defaults to the
            `records.parent_key` setting
    """

    parent_class: ClassVar[type[ActiveRecord] | None] = None
    foreign_key_field: ClassVar[str | None] = None
    own_attributes: ClassVar[list[str] | None] = None
    parent_key: ClassVar[str | None] = None

    def __init__(self, **config: Any) -> None:
        self._parent_model: ActiveRecord | None = None
        self._state_before_save: list | None = None
        super().__init__(**config)

    def init(self) -> None:
        cls = type(self)
        if cls.parent_class is None:
            raise InvalidConfigError(
                f"Classes extending CtiActiveRecord must declare `parent_class`, the record class "
                f"{cls.__name__} is considered a child of."
            )
        if cls.foreign_key_field is None:
            raise InvalidConfigError(
                f"Classes extending CtiActiveRecord must declare `foreign_key_field`, the column of "
                f"{cls.__name__} referencing its parent."
            )
        if self.parent_attributes_inherited() is None:
            raise InvalidConfigError(
                f"{cls.__name__}.parent_attributes_inherited() must return the parent attributes "
                f"inherited by {cls.__name__}."
            )

        # Assigned one by one: mass assignment would build validators before init finished
        for name, value in self.parent_attribute_defaults().items():
            if getattr(self, name, None) is None:
                setattr(self, name, value)
        super().init()

    # Configuration hooks

    def parent_attributes_inherited(self) -> list[str]:
        """Parent attributes copied onto the child when loaded and back when saved."""
        return []

    def parent_attributes_ignored(self) -> list[str]:
        """Parent attributes never copied from the child onto the parent."""
        return []

    def parent_attribute_defaults(self) -> dict[str, Any]:
        """Default values for the parent of a new child."""
        return {}

    @classmethod
    def get_parent_key(cls) -> str:
        return cls.parent_key or get_settings().records.parent_key

    def get_own_attributes(self) -> list[str]:
        """Columns of the child table (never the parent's)."""
        if self.own_attributes:
            return list(self.own_attributes)
        return [column.key for column in self.table().columns]

    def attributes(self) -> list[str]:
        """Own columns followed by the inherited parent columns."""
        own = self.get_own_attributes()
        parent_columns = self.parent_class.table().c
        inherited = [
            name for name in self.parent_attributes_inherited() if name in parent_columns and name not in own
        ]
        return own + inherited

    # Parent

    @relation
    def parent_relation(self):
        return self.has_one(self.parent_class, {self.get_parent_key(): self.foreign_key_field})

    def get_parent_model(self) -> ActiveRecord | None:
        """
        The parent record.

        A new child gets a new parent built from `parent_attribute_defaults()`
        and kept until the child is saved. A persisted child uses the
        `parent_relation` record, which is None when the parent row is gone.
        """
        if self._parent_model is None:
            if not self.is_new_record:
                return self.parent_relation
            self._parent_model = self.parent_class(**self.parent_attribute_defaults())
        return self._parent_model

    def _parent_prototype(self) -> ActiveRecord:
        return self.parent_class.instance()

    # Property interception

    def __getattr__(self, name: str) -> Any:
        try:
            return super().__getattr__(name)
        except UnknownPropertyError as error:
            try:
                return getattr(self.get_parent_model(), name)
            except AttributeError:
                raise error from None

    def __setattr__(self, name: str, value: Any) -> None:
        try:
            super().__setattr__(name, value)
        except UnknownPropertyError as error:
            try:
                setattr(self.get_parent_model(), name, value)
            except AttributeError:
                raise error from None

    def can_get_property(self, name: str, check_vars: bool = True) -> bool:
        if super().can_get_property(name, check_vars):
            return True
        return self._parent_prototype().can_get_property(name, check_vars)

    def can_set_property(self, name: str, check_vars: bool = True) -> bool:
        if super().can_set_property(name, check_vars):
            return True
        return self._parent_prototype().can_set_property(name, check_vars)

    def has_method(self, name: str) -> bool:
        return super().has_method(name) or self._parent_prototype().has_method(name)

    def get_validator_method(self, name: str) -> Any:
        """
        Method named by an inline rule, bound to this record.

        A method found on an ancestor class runs with the child as `self`, so
        it reads the child's values and its errors land on the child.
        """
        if super().has_method(name):
            return super().get_validator_method(name)
        record_class: Any = self.parent_class
        method = inspect.getattr_static(record_class, name, None)
        while method is None and issubclass(record_class, CtiActiveRecord):
            record_class = record_class.parent_class
            method = inspect.getattr_static(record_class, name, None)
        if method is None:
            return super().get_validator_method(name)
        return method.__get__(self, type(self))

    # Querying

    @classmethod
    def find(cls) -> CtiActiveQuery:
        return CtiActiveQuery(cls)

    @classmethod
    def populate_record(cls, record: ActiveRecord, row: Mapping[str, Any]) -> None:
        super().populate_record(record, row)
        record._parent_model = None

    def after_find(self) -> None:
        super().after_find()
        parent = self.parent_relation
        if parent is None:
            logger.warning(
                "%s %r references missing %s row", type(self).__name__, self.get_primary_key(), self.parent_class.__name__
            )
            return
        inherited = set(self.parent_attributes_inherited())
        own = set(self.get_own_attributes())
        for name, value in parent.get_attributes().items():
            if name in inherited and name not in own:
                self._attributes[name] = value
                if self._old_attributes is not None:
                    self._old_attributes[name] = value

    def _refresh_internal(self, record: ActiveRecord | None) -> bool:
        refreshed = super()._refresh_internal(record)
        if refreshed:
            self._parent_model = None
        return refreshed

    def get_relation(self, name: str, throw_exception: bool = True) -> Any:
        """
        Relation lookup falling back to the parent.

        The parent's class name in snake case ("content" for `Content`) names
        the parent relation. A relation declared on the parent is returned for
        this record, reached through `parent_relation`.
        """
        query = super().get_relation(name, throw_exception=False)
        if query is not None:
            return query

        if name == camel_to_snake(self.parent_class.__name__):
            return super().get_relation("parent_relation")

        parent_query = self._parent_prototype().get_relation(name, throw_exception=False)
        if parent_query is not None:
            parent_query.primary_model = self
            return parent_query.via("parent_relation")

        if throw_exception:
            raise InvalidArgumentError(f'{type(self).__name__} has no relation named "{name}".')
        return None

    # Labels and hints

    def get_attribute_label(self, attribute: str) -> str:
        labels = {**self._parent_prototype().attribute_labels(), **self.attribute_labels()}
        return labels.get(attribute) or self.generate_attribute_label(attribute)

    def get_attribute_hint(self, attribute: str) -> str:
        hints = {**self._parent_prototype().attribute_hints(), **self.attribute_hints()}
        return hints.get(attribute, "")

    # Validation

    def create_validators(self) -> list[Validator]:
        """
        Parent rules merged with this record's rules.

        Inline and unique rules of the parent are left out; they run when the
        parent validates itself on save. Keyed child rules replace (or, mapped
        to None, remove) parent rules with the same key.
        """
        parent = self._parent_prototype()
        parent_rules = parent.rules()
        items = parent_rules.items() if isinstance(parent_rules, Mapping) else enumerate(parent_rules)
        kept = {key: rule for key, rule in items if not _runs_on_parent(parent, rule)}
        return self._build_validators(merge_rules(kept, self.rules()))

    # Writing

    def insert(self, run_validation: bool = True, attribute_names: Any = None) -> bool:
        return self._write_restoring_state(super().insert, run_validation, attribute_names)

    def update(self, run_validation: bool = True, attribute_names: Any = None) -> int | bool:
        return self._write_restoring_state(super().update, run_validation, attribute_names)

    def _write_restoring_state(self, write: Any, run_validation: bool, attribute_names: Any) -> Any:
        """
        Run an insert or update, undoing in-memory changes when its
        transaction rolls back.

        The parent is saved before the child row is written, so a cancelled or
        failed child write leaves the parent (and this record's foreign key)
        describing rows that no longer exist. The state captured by
        `before_save()` is put back so the next `save()` writes both rows
        again. Inside a transaction opened by the caller the rows stay until
        the caller ends it, and the state is left alone.
        """
        owns_transaction = self.get_db().connection is None
        self._state_before_save = None
        try:
            result = write(run_validation, attribute_names)
            if result is False and owns_transaction:
                self._restore_state_before_save()
            return result
        except Exception:
            if owns_transaction:
                self._restore_state_before_save()
            raise
        finally:
            self._state_before_save = None

    def _capture_state(self) -> list[tuple[ActiveRecord, dict, dict | None, dict]]:
        """Attribute, old attribute and relation values of this record and its parents."""
        records: list[ActiveRecord] = []
        record: Any = self
        while record is not None:
            records.append(record)
            record = record.get_parent_model() if isinstance(record, CtiActiveRecord) else None
        return [
            (
                record,
                dict(record._attributes),
                None if record._old_attributes is None else dict(record._old_attributes),
                dict(record._related),
            )
            for record in records
        ]

    def _restore_state_before_save(self) -> None:
        if self._state_before_save is None:
            return
        for record, attributes, old_attributes, related in self._state_before_save:
            record._attributes = attributes
            record._old_attributes = old_attributes
            record._related = related
        logger.debug("Restored %s state after rolled back save", type(self).__name__)

    def before_save(self, insert: bool) -> bool:
        if not super().before_save(insert):
            return False

        self._state_before_save = self._capture_state()

        parent = self.get_parent_model()
        if parent is None:
            logger.warning("Cannot save %s %r: parent row is missing", type(self).__name__, self.get_primary_key())
            return False

        ignored = set(self.parent_attributes_ignored())
        own = set(self.get_own_attributes())
        inherited = set(self.parent_attributes_inherited())
        names = dict.fromkeys([*parent.attributes(), *member_variables(self.parent_class)])
        for name in names:
            if name in ignored or name in own or name not in inherited:
                continue
            if self.has_attribute(name) and name not in self._attributes:
                continue
            setattr(parent, name, getattr(self, name))

        if not parent.save():
            self.add_errors(parent.get_errors())
            logger.info("%s not saved: parent %s failed to save.", type(self).__name__, type(parent).__name__)
            return False

        setattr(self, self.foreign_key_field, getattr(parent, self.get_parent_key()))
        self.populate_relation("parent_relation", parent)
        return True

    def after_delete(self) -> None:
        super().after_delete()
        parent = self.parent_relation
        if parent is None:
            logger.warning("No %s row to delete for %s", self.parent_class.__name__, type(self).__name__)
            return
        parent.delete()

    def _values_to_write(self, attribute_names: Any = None) -> dict[str, Any]:
        own = set(self.get_own_attributes())
        values = super()._values_to_write(attribute_names)
        return {name: value for name, value in values.items() if name in own}

    def _update_internal(self, attribute_names: Any = None) -> int | bool:
        rows = super()._update_internal(attribute_names)
        if rows is not False and self._old_attributes is not None:
            # Inherited values were written by the parent save
            skipped = {*self.get_own_attributes(), *self.parent_attributes_ignored()}
            for name, value in self._attributes.items():
                if name not in skipped:
                    self._old_attributes[name] = value
        return rows


def _runs_on_parent(parent: ActiveRecord, rule: Any) -> bool:
    if isinstance(rule, Validator):
        return isinstance(rule, (InlineValidator, UniqueValidator))
    if not isinstance(rule, (list, tuple)) or len(rule) < 2:
        return False
    type_ = rule[1]
    if isinstance(type_, str):
        return type_ == "unique" or parent.has_method(type_)
    return isinstance(type_, type) and issubclass(type_, UniqueValidator)
