"""
Small helpers shared by models, records and validators.

Dependencies: inspect, re (stdlib)
System role: Rule merging, name inflection and class reflection
"""

import functools
import inspect
import re
import typing
from collections.abc import Iterable, Mapping
from typing import Any

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def to_list(value: Any) -> list:
    """Wrap a scalar in a list; lists, tuples and sets become lists."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def camel_to_snake(name: str) -> str:
    """
    Convert a class name to a snake_case identifier.

    >>> camel_to_snake("BlogPost")
    'blog_post'
    """
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def camel_to_words(name: str) -> str:
    """
    Turn an attribute name into human readable words.

    >>> camel_to_words("first_name")
    'First Name'
    >>> camel_to_words("authorId")
    'Author Id'
    """
    words = _CAMEL_BOUNDARY.sub(" ", name).replace("_", " ").replace("-", " ").replace(".", " ")
    return " ".join(word.capitalize() for word in words.split())


def _rule_items(rules: Any) -> Iterable[tuple[Any, Any]]:
    if rules is None:
        return ()
    if isinstance(rules, Mapping):
        return rules.items()
    return enumerate(rules)


def merge_rules(*rule_sets: Any) -> list:
    """
    Merge validation rule sets in order.

    Each set is either a list of rules or a dict keyed by rule name. Rules under
    integer positions are appended. A string-keyed rule replaces the earlier
    rule with the same key in place, and a string key mapped to None removes
    it. This lets a subclass alter or drop a rule its parent declared by key.

    Returns:
        list: Merged rules in declaration order
    """
    merged: dict[Any, Any] = {}
    position = 0
    for rules in rule_sets:
        for key, rule in _rule_items(rules):
            if isinstance(key, str):
                if rule is None:
                    merged.pop(key, None)
                else:
                    merged[key] = rule
            else:
                merged[position] = rule
                position += 1
    return list(merged.values())


def _is_class_var(annotation: Any) -> bool:
    if isinstance(annotation, str):
        return annotation.startswith(("ClassVar", "typing.ClassVar"))
    return annotation is typing.ClassVar or typing.get_origin(annotation) is typing.ClassVar


@functools.cache
def member_variables(cls: type) -> tuple[str, ...]:
    """
    Public instance variables declared on a class hierarchy.

    These are annotated, non-ClassVar, non-underscore class attributes, for
    example `password_repeat: str | None = None` on a record class. Column
    attributes live in the record's attribute store and are not included.
    """
    names: dict[str, None] = {}
    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        for name, annotation in inspect.get_annotations(klass).items():
            if name.startswith("_") or _is_class_var(annotation):
                continue
            names[name] = None
    return tuple(names)
