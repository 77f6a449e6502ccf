"""
Query builder for active records.

An `ActiveQuery` collects conditions, ordering, joins and eager-loading
instructions for one record class, compiles them into a SQLAlchemy Core
`select()` and turns the resulting rows back into records (or plain dicts).

The same class represents relations: a relation query carries the record it
belongs to (`primary_model`), the column mapping between the two tables
(`link`) and whether it yields one or many records (`multiple`).

    Post.find().where({"status": "published"}).order_by("-created_at").limit(10).all()
    Post.find().with_("author").inner_join_with("category").all()

Dependencies: sqlalchemy, cti_record.records, cti_record.configs
System role: SELECT construction and record population
"""

import logging
from collections import defaultdict
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import ColumnElement, Select, Table, and_, false, func, or_, select
from sqlalchemy.sql import ClauseElement

from cti_record.configs import get_settings
from cti_record.records.exceptions import InvalidArgumentError
from cti_record.records.helpers import to_list

logger = logging.getLogger(__name__)


@dataclass
class JoinSpec:
    """A relation joined into a query."""

    name: str
    relation: "ActiveQuery"
    table: Table
    onclause: ColumnElement
    inner: bool
    eager: bool


def _value(model: Any, name: str) -> Any:
    if isinstance(model, Mapping):
        return model.get(name)
    return getattr(model, name)


def _is_populated(model: Any, name: str) -> bool:
    if isinstance(model, Mapping):
        return name in model
    return model.is_relation_populated(name)


def _assign(model: Any, name: str, value: Any) -> None:
    if isinstance(model, Mapping):
        model[name] = value
    else:
        model.populate_relation(name, value)


def _is_empty(value: Any) -> bool:
    if value is None or value == [] or value == ():
        return True
    return isinstance(value, str) and value.strip() == ""


class ActiveQuery:
    """
    SELECT builder bound to a record class.

    Builder methods mutate the query and return it, so calls chain. Conditions
    are kept as given and resolved against the model table and the joined
    relation tables when the statement is built.
    """

    def __init__(self, model_class: type, **config: Any) -> None:
        self.model_class = model_class
        self.primary_model: Any = None
        self.link: dict[str, str] = {}
        self.multiple = False
        self.via_relation: str | None = None

        self._where: list[Any] = []
        self._order_by: list[Any] = []
        self._limit: int | None = None
        self._offset: int | None = None
        self._index_by: str | Callable[[Any], Any] | None = None
        self._as_array = False
        self._with: list[str] = []
        self._joins: list[tuple[str, bool, bool]] = []

        for name, value in config.items():
            setattr(self, name, value)
        self.init()

    def init(self) -> None:
        """Called at the end of construction."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.model_class.__name__}>"

    # Building

    def where(self, condition: Any) -> "ActiveQuery":
        """Replace the query condition. Accepts a dict or a SQLAlchemy clause."""
        self._where = [] if condition is None else [condition]
        return self

    def and_where(self, condition: Any) -> "ActiveQuery":
        if condition is not None:
            self._where.append(condition)
        return self

    def filter_where(self, condition: Mapping[str, Any]) -> "ActiveQuery":
        """Like `where()` with a dict, ignoring empty values (None, "", [])."""
        return self.where(self._drop_empty(condition))

    def and_filter_where(self, condition: Mapping[str, Any]) -> "ActiveQuery":
        return self.and_where(self._drop_empty(condition))

    @staticmethod
    def _drop_empty(condition: Mapping[str, Any]) -> dict[str, Any] | None:
        values = {name: value for name, value in condition.items() if not _is_empty(value)}
        return values or None

    def order_by(self, *columns: Any) -> "ActiveQuery":
        """
        Replace the ordering.

        Accepts column clauses, names ("title", "-title", "title desc") and
        dicts mapping names to "asc"/"desc". `order_by()` with no arguments
        clears the ordering.
        """
        self._order_by = []
        return self.add_order_by(*columns)

    def add_order_by(self, *columns: Any) -> "ActiveQuery":
        for column in columns:
            if isinstance(column, Mapping):
                for name, direction in column.items():
                    self._order_by.append((name, str(direction).lower() == "desc"))
            elif isinstance(column, str):
                for part in column.split(","):
                    self._order_by.append(self._parse_order(part.strip()))
            elif column is not None:
                self._order_by.append(column)
        return self

    @staticmethod
    def _parse_order(text: str) -> tuple[str, bool]:
        parts = text.split()
        name, descending = parts[0], len(parts) > 1 and parts[1].lower() == "desc"
        if name.startswith("-"):
            name, descending = name[1:], True
        return name, descending

    def limit(self, value: int | None) -> "ActiveQuery":
        self._limit = value
        return self

    def offset(self, value: int | None) -> "ActiveQuery":
        self._offset = value
        return self

    def index_by(self, column: str | Callable[[Any], Any] | None) -> "ActiveQuery":
        """Return results as a dict keyed by this column (or callable result)."""
        self._index_by = column
        return self

    def as_array(self, value: bool = True) -> "ActiveQuery":
        """Return plain dicts instead of records."""
        self._as_array = value
        return self

    @property
    def is_as_array(self) -> bool:
        return self._as_array

    def with_(self, *names: str) -> "ActiveQuery":
        """Eager-load the named relations with one extra query each."""
        for name in names:
            for item in to_list(name):
                if item not in self._with:
                    self._with.append(item)
        return self

    def join_with(self, names: Any, eager_loading: bool = True, inner: bool = False) -> "ActiveQuery":
        """
        Join the named relations.

        Single-record relations that are eager-loaded are populated from the
        joined columns, so no extra query runs for them.

        Args:
            names: Relation name or list of names
            eager_loading: Populate the relation from the join
            inner: Use INNER JOIN instead of LEFT OUTER JOIN
        """
        known = {name for name, _, _ in self._joins}
        for name in to_list(names):
            if name not in known:
                self._joins.append((name, inner, eager_loading))
                known.add(name)
        return self

    def inner_join_with(self, names: Any, eager_loading: bool = True) -> "ActiveQuery":
        return self.join_with(names, eager_loading, inner=True)

    def via(self, relation_name: str) -> "ActiveQuery":
        """Reach the related records through another relation of the primary model."""
        self.via_relation = relation_name
        return self

    def get_db(self) -> Any:
        return self.model_class.get_db()

    # Compiling

    def _join_specs(self) -> dict[str, JoinSpec]:
        specs: dict[str, JoinSpec] = {}
        if not self._joins:
            return specs
        model = self.model_class.instance()
        for name, inner, eager in self._joins:
            self._add_join(specs, model, name, inner, eager)
        return specs

    def _add_join(self, specs: dict[str, JoinSpec], model: Any, name: str, inner: bool, eager: bool) -> None:
        if name in specs:
            return
        relation = model.get_relation(name)
        source_tables = [self.model_class.table()]
        if relation.via_relation is not None:
            self._add_join(specs, model, relation.via_relation, inner, False)
            source_tables = [specs[relation.via_relation].table]
        source_tables += [spec.table for spec in specs.values()]

        target = relation.model_class.table()
        onclause = and_(
            *[
                target.c[related] == self._find_column(primary, source_tables)
                for related, primary in relation.link.items()
            ]
        )
        specs[name] = JoinSpec(name, relation, target, onclause, inner, eager)

    def _find_column(self, name: str, tables: list[Table]) -> ColumnElement:
        if "." in name:
            table_name, column_name = name.rsplit(".", 1)
            for table in tables:
                if table.name == table_name and column_name in table.c:
                    return table.c[column_name]
        else:
            for table in tables:
                if name in table.c:
                    return table.c[name]
        raise InvalidArgumentError(f'Unknown column "{name}" in query for {self.model_class.__name__}.')

    def _tables(self, specs: dict[str, JoinSpec]) -> list[Table]:
        return [self.model_class.table()] + [spec.table for spec in specs.values()]

    def resolve_condition(self, condition: Any, tables: list[Table]) -> ColumnElement | None:
        if isinstance(condition, Mapping):
            clauses = []
            for name, value in condition.items():
                column = name if isinstance(name, ColumnElement) else self._find_column(name, tables)
                if value is None:
                    clauses.append(column.is_(None))
                elif isinstance(value, (list, tuple, set, frozenset)):
                    clauses.append(column.in_(list(value)))
                else:
                    clauses.append(column == value)
            return and_(*clauses) if clauses else None
        if isinstance(condition, ClauseElement):
            return condition
        raise InvalidArgumentError(f"Unsupported query condition: {condition!r}")

    def _order_clause(self, item: Any, tables: list[Table]) -> Any:
        if isinstance(item, tuple):
            name, descending = item
            column = self._find_column(name, tables)
            return column.desc() if descending else column.asc()
        return item

    def _link_condition(self, sources: list[Any], tables: list[Table]) -> ColumnElement:
        pairs = list(self.link.items())
        if len(pairs) == 1:
            related, primary = pairs[0]
            values = list(dict.fromkeys(v for v in (_value(s, primary) for s in sources) if v is not None))
            if not values:
                return false()
            column = self._find_column(related, tables)
            return column == values[0] if len(values) == 1 else column.in_(values)

        conditions = []
        for source in sources:
            values = [_value(source, primary) for _, primary in pairs]
            if any(value is None for value in values):
                continue
            conditions.append(
                and_(*[self._find_column(related, tables) == value for (related, _), value in zip(pairs, values)])
            )
        return or_(*conditions) if conditions else false()

    def _primary_sources(self) -> list[Any]:
        if self.via_relation is None:
            return [self.primary_model]
        return [source for source in to_list(getattr(self.primary_model, self.via_relation)) if source is not None]

    def build_select(self) -> Select:
        """Compile the query into a SELECT statement."""
        specs = self._join_specs()
        tables = self._tables(specs)
        table = self.model_class.table()
        separator = get_settings().records.relation_separator

        columns: list[Any] = list(table.columns)
        from_clause: Any = table
        for spec in specs.values():
            from_clause = from_clause.join(spec.table, spec.onclause, isouter=not spec.inner)
            if spec.eager and not spec.relation.multiple:
                columns += [column.label(f"{spec.name}{separator}{column.key}") for column in spec.table.columns]

        statement = select(*columns).select_from(from_clause)
        if any(spec.relation.multiple for spec in specs.values()):
            statement = statement.distinct()

        for condition in self._where:
            clause = self.resolve_condition(condition, tables)
            if clause is not None:
                statement = statement.where(clause)
        if self.primary_model is not None:
            statement = statement.where(self._link_condition(self._primary_sources(), tables))

        if self._order_by:
            statement = statement.order_by(*[self._order_clause(item, tables) for item in self._order_by])
        if self._limit is not None:
            statement = statement.limit(self._limit)
        if self._offset is not None:
            statement = statement.offset(self._offset)
        return statement

    # Executing

    def all(self) -> list[Any] | dict[Any, Any]:
        """Run the query and return every record (or dict)."""
        rows = self.get_db().fetch_all(self.build_select())
        return self.populate(rows)

    def one(self) -> Any:
        """Run the query and return the first record, or None."""
        rows = self.get_db().fetch_all(self.build_select().limit(1))
        models = self.populate(rows)
        if isinstance(models, dict):
            models = list(models.values())
        return models[0] if models else None

    def count(self) -> int:
        """Number of matching rows, ignoring ordering, limit and offset."""
        statement = self.build_select().order_by(None).limit(None).offset(None)
        return int(self.get_db().scalar(select(func.count()).select_from(statement.subquery())) or 0)

    def exists(self) -> bool:
        return bool(self.get_db().scalar(select(self.build_select().limit(1).exists())))

    # Population

    def populate(self, rows: list[Mapping[str, Any]]) -> list[Any] | dict[Any, Any]:
        """
        Turn raw rows into records (or dicts when `as_array` is set).

        Relations joined with eager loading are filled from the joined
        columns, `with_()` relations are loaded with one query each, and
        `after_find()` runs on every record.
        """
        if not rows:
            return {} if self._index_by is not None else []

        specs = self._join_specs()
        models = self._create_models(rows, specs)
        eager_many = [
            spec.name for spec in specs.values() if spec.eager and spec.relation.multiple and spec.name not in self._with
        ]
        if self._with or eager_many:
            self._find_with(models, [*self._with, *eager_many])
        if not self._as_array:
            for model in models:
                model.after_find()
        return self._index(models)

    def _create_models(self, rows: list[Mapping[str, Any]], specs: dict[str, JoinSpec]) -> list[Any]:
        separator = get_settings().records.relation_separator
        own_columns = [column.key for column in self.model_class.table().columns]
        eager_specs = [spec for spec in specs.values() if spec.eager and not spec.relation.multiple]

        models: list[Any] = []
        for row in rows:
            values = {name: row[name] for name in own_columns}
            related_rows = {}
            for spec in eager_specs:
                related = {column.key: row[f"{spec.name}{separator}{column.key}"] for column in spec.table.columns}
                related_rows[spec.name] = None if all(value is None for value in related.values()) else related

            if self._as_array:
                models.append({**values, **related_rows})
                continue

            model = self.model_class.instantiate(values)
            self.model_class.populate_record(model, values)
            for spec in eager_specs:
                related = related_rows[spec.name]
                if related is not None:
                    related_class = spec.relation.model_class
                    record = related_class.instantiate(related)
                    related_class.populate_record(record, related)
                    record.after_find()
                    related = record
                model.populate_relation(spec.name, related)
            models.append(model)
        return models

    def _find_with(self, models: list[Any], names: list[str]) -> None:
        model = self.model_class.instance()
        for name in names:
            relation = model.get_relation(name)
            relation.populate_relation(name, models)

    def _index(self, models: list[Any]) -> list[Any] | dict[Any, Any]:
        if self._index_by is None:
            return models
        if callable(self._index_by):
            return {self._index_by(model): model for model in models}
        return {_value(model, self._index_by): model for model in models}

    # Relations

    def find_for(self, name: str, model: Any) -> Any:
        """Lazy-load relation `name` of `model`: a record, a list or None."""
        logger.debug("Lazy loading %s.%s", type(model).__name__, name)
        return self.all() if self.multiple else self.one()

    def populate_relation(self, name: str, primary_models: list[Any]) -> list[Any]:
        """
        Eager-load relation `name` for many primary models with one query.

        Each primary model (record or dict) gets the relation populated. The
        related records found are returned.
        """
        owner = self.primary_model
        self.primary_model = None

        if self.via_relation is not None:
            if all(_is_populated(model, self.via_relation) for model in primary_models):
                sources = []
                for model in primary_models:
                    sources += [item for item in to_list(_value(model, self.via_relation)) if item is not None]
            else:
                via_query = owner.get_relation(self.via_relation)
                sources = via_query.populate_relation(self.via_relation, primary_models)
        else:
            sources = list(primary_models)

        if primary_models and isinstance(primary_models[0], Mapping):
            self.as_array()

        related: list[Any] = []
        if sources:
            tables = self._tables(self._join_specs())
            self.and_where(self._link_condition(sources, tables))
            found = self.all()
            related = list(found.values()) if isinstance(found, dict) else found

        keys = list(self.link)
        buckets: dict[tuple, list[Any]] = defaultdict(list)
        for record in related:
            buckets[tuple(_value(record, key) for key in keys)].append(record)

        for model in primary_models:
            if self.via_relation is not None:
                intermediates = [item for item in to_list(_value(model, self.via_relation)) if item is not None]
            else:
                intermediates = [model]
            matched = []
            for source in intermediates:
                matched += buckets.get(tuple(_value(source, self.link[key]) for key in keys), [])
            _assign(model, name, matched if self.multiple else (matched[0] if matched else None))

        return related
