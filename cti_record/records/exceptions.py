"""
Exception taxonomy of the record layer.

Property and method lookups raise `AttributeError` subclasses so `hasattr()`
and `getattr(obj, name, default)` keep working on records.
"""


class RecordError(Exception):
    """Base class for record layer errors."""


class UnknownPropertyError(RecordError, AttributeError):
    """Reading or writing a property that the object does not define."""


class UnknownMethodError(RecordError, AttributeError):
    """Calling a method that the object does not define."""


class InvalidArgumentError(RecordError, ValueError):
    """An argument (relation name, attribute name, condition) is not valid."""


class InvalidConfigError(RecordError):
    """A class or validation rule is configured incorrectly."""


class InvalidCallError(RecordError):
    """An operation is not allowed in the object's current state."""


class StaleObjectError(RecordError):
    """An optimistic lock check failed: the row changed since it was loaded."""
