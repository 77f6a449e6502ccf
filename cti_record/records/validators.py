"""
Attribute validators.

A validator checks one or more attributes of a model and records errors on it.
Rules declared by `Model.rules()` are turned into validators by
`Validator.create_validator()`:

    ("title", "required")
    (["title", "slug"], "string", {"max": 255})
    ("slug", "validate_slug")                       # inline: model method
    ("title", "unique", {"target_class": Content})

Dependencies: sqlalchemy, cti_record.records
System role: Validation pipeline behind Model.validate()
"""

import logging
import re
from collections.abc import Callable
from typing import Any, ClassVar

from sqlalchemy import and_, not_

from cti_record.records.exceptions import InvalidConfigError, UnknownMethodError
from cti_record.records.helpers import to_list

logger = logging.getLogger(__name__)


class Validator:
    """
    Base validator.

    Subclasses implement `validate_value()` (value-only checks) or override
    `validate_attribute()` when they need the model.

    Attributes:
        attributes: Attribute names to validate; a leading "!" marks the
            attribute as validated but unsafe for mass assignment
        message: Error message template; `{attribute}` is the attribute label
        on: Scenarios the validator applies to (empty means all)
        except_: Scenarios the validator is skipped in
        skip_on_error: Skip attributes that already have errors
        skip_on_empty: Skip attributes whose value is empty
        when: Optional `callable(model, attribute) -> bool` gate
    """

    BUILT_IN_VALIDATORS: ClassVar[dict[str, type["Validator"] | tuple[type["Validator"], dict]]] = {}

    default_message: ClassVar[str] = "{attribute} is invalid."

    def __init__(
        self,
        attributes: Any = (),
        message: str | None = None,
        on: Any = (),
        except_: Any = (),
        skip_on_error: bool = True,
        skip_on_empty: bool = True,
        when: Callable[[Any, str], bool] | None = None,
        is_empty: Callable[[Any], bool] | None = None,
    ) -> None:
        self.attributes = to_list(attributes)
        self.message = message or self.default_message
        self.on = to_list(on)
        self.except_ = to_list(except_)
        self.skip_on_error = skip_on_error
        self.skip_on_empty = skip_on_empty
        self.when = when
        self._is_empty = is_empty

    @classmethod
    def create_validator(
        cls,
        type_: Any,
        model: Any,
        attributes: Any,
        params: dict | None = None,
    ) -> "Validator":
        """
        Build a validator from a rule.

        Args:
            type_: Inline method name on the model, built-in validator name,
                Validator subclass, or plain callable
            model: Model the rule belongs to
            attributes: Attribute name or list of names
            params: Keyword arguments for the validator

        Raises:
            InvalidConfigError: If the validator type cannot be resolved
        """
        params = dict(params or {})
        if isinstance(type_, str) and model.has_method(type_):
            return InlineValidator(attributes, method=type_, params=params.pop("params", None), **params)
        if isinstance(type_, type) and issubclass(type_, Validator):
            return type_(attributes, **params)
        if isinstance(type_, str) and type_ in cls.BUILT_IN_VALIDATORS:
            built_in = cls.BUILT_IN_VALIDATORS[type_]
            if isinstance(built_in, tuple):
                built_in, defaults = built_in
                params = {**defaults, **params}
            return built_in(attributes, **params)
        if callable(type_):
            return InlineValidator(attributes, method=type_, params=params.pop("params", None), **params)
        raise InvalidConfigError(f"Unknown validator type: {type_!r}")

    def get_attribute_names(self) -> list[str]:
        """Attribute names without the unsafe marker."""
        return [name.lstrip("!") for name in self.attributes]

    def is_active(self, scenario: str) -> bool:
        if scenario in self.except_:
            return False
        return not self.on or scenario in self.on

    def is_empty(self, value: Any) -> bool:
        if self._is_empty is not None:
            return self._is_empty(value)
        return value is None or value == "" or value == [] or value == {}

    def validate_attributes(self, model: Any, attributes: Any = None) -> None:
        """
        Validate the given attributes (default: all of this validator's).

        Attributes not handled by this validator are ignored.
        """
        names = self.get_attribute_names()
        if attributes is not None:
            wanted = set(attributes)
            names = [name for name in names if name in wanted]

        for attribute in names:
            if self.skip_on_error and model.has_errors(attribute):
                continue
            if self.skip_on_empty and self.is_empty(getattr(model, attribute)):
                continue
            if self.when is not None and not self.when(model, attribute):
                continue
            self.validate_attribute(model, attribute)

    def validate_attribute(self, model: Any, attribute: str) -> None:
        result = self.validate_value(getattr(model, attribute))
        if result is not None:
            message, params = result
            self.add_error(model, attribute, message, params)

    def validate_value(self, value: Any) -> tuple[str, dict] | None:
        """
        Check a single value.

        Returns:
            None when valid, otherwise (message template, template params)
        """
        raise NotImplementedError(f"{type(self).__name__} does not support value validation")

    def validate(self, value: Any) -> tuple[bool, str | None]:
        """Validate a standalone value; returns (valid, error message)."""
        result = self.validate_value(value)
        if result is None:
            return True, None
        message, params = result
        return False, message.format(attribute="the input value", value=value, **params)

    def add_error(self, model: Any, attribute: str, message: str, params: dict | None = None) -> None:
        params = dict(params or {})
        params.setdefault("attribute", model.get_attribute_label(attribute))
        params.setdefault("value", getattr(model, attribute, None))
        model.add_error(attribute, message.format(**params))


class InlineValidator(Validator):
    """
    Calls a model method (or a callable) as the validator.

    The method receives `(attribute, params, validator)` and reports problems
    with `model.add_error()`. A plain callable also receives the model first.
    """

    def __init__(self, attributes: Any = (), method: Any = None, params: dict | None = None, **kwargs: Any) -> None:
        super().__init__(attributes, **kwargs)
        self.method = method
        self.params = params or {}

    def validate_attribute(self, model: Any, attribute: str) -> None:
        if isinstance(self.method, str):
            if not model.has_method(self.method):
                raise UnknownMethodError(f"Calling unknown method: {type(model).__name__}.{self.method}()")
            model.get_validator_method(self.method)(attribute, self.params, self)
        else:
            self.method(model, attribute, self.params, self)


class RequiredValidator(Validator):
    default_message = "{attribute} cannot be blank."

    def __init__(self, attributes: Any = (), **kwargs: Any) -> None:
        kwargs.setdefault("skip_on_empty", False)
        super().__init__(attributes, **kwargs)

    def validate_value(self, value: Any) -> tuple[str, dict] | None:
        if self.is_empty(value.strip() if isinstance(value, str) else value):
            return self.message, {}
        return None


class StringValidator(Validator):
    default_message = "{attribute} must be a string."

    def __init__(
        self,
        attributes: Any = (),
        min: int | None = None,
        max: int | None = None,
        length: int | None = None,
        too_short: str = "{attribute} should contain at least {min} characters.",
        too_long: str = "{attribute} should contain at most {max} characters.",
        not_equal: str = "{attribute} should contain {length} characters.",
        **kwargs: Any,
    ) -> None:
        super().__init__(attributes, **kwargs)
        self.min = min
        self.max = max
        self.length = length
        self.too_short = too_short
        self.too_long = too_long
        self.not_equal = not_equal

    def validate_value(self, value: Any) -> tuple[str, dict] | None:
        if not isinstance(value, str):
            return self.message, {}
        size = len(value)
        if self.min is not None and size < self.min:
            return self.too_short, {"min": self.min}
        if self.max is not None and size > self.max:
            return self.too_long, {"max": self.max}
        if self.length is not None and size != self.length:
            return self.not_equal, {"length": self.length}
        return None


class NumberValidator(Validator):
    default_message = "{attribute} must be a number."

    _NUMBER = re.compile(r"^\s*[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?\s*$")
    _INTEGER = re.compile(r"^\s*[+-]?\d+\s*$")

    def __init__(
        self,
        attributes: Any = (),
        integer_only: bool = False,
        min: float | None = None,
        max: float | None = None,
        too_small: str = "{attribute} must be no less than {min}.",
        too_big: str = "{attribute} must be no greater than {max}.",
        **kwargs: Any,
    ) -> None:
        if integer_only and "message" not in kwargs:
            kwargs["message"] = "{attribute} must be an integer."
        super().__init__(attributes, **kwargs)
        self.integer_only = integer_only
        self.min = min
        self.max = max
        self.too_small = too_small
        self.too_big = too_big

    def validate_value(self, value: Any) -> tuple[str, dict] | None:
        if isinstance(value, bool):
            return self.message, {}
        if isinstance(value, (int, float)):
            if self.integer_only and isinstance(value, float) and not value.is_integer():
                return self.message, {}
            number = value
        elif isinstance(value, str):
            pattern = self._INTEGER if self.integer_only else self._NUMBER
            if not pattern.match(value):
                return self.message, {}
            number = float(value)
        else:
            return self.message, {}

        if self.min is not None and number < self.min:
            return self.too_small, {"min": self.min}
        if self.max is not None and number > self.max:
            return self.too_big, {"max": self.max}
        return None


class BooleanValidator(Validator):
    default_message = "{attribute} must be either \"{true}\" or \"{false}\"."

    def __init__(self, attributes: Any = (), true_value: Any = True, false_value: Any = False, strict: bool = False, **kwargs: Any) -> None:
        super().__init__(attributes, **kwargs)
        self.true_value = true_value
        self.false_value = false_value
        self.strict = strict

    def validate_value(self, value: Any) -> tuple[str, dict] | None:
        if self.strict:
            valid = any(
                value == accepted and type(value) is type(accepted)
                for accepted in (self.true_value, self.false_value)
            )
        else:
            valid = value in (self.true_value, self.false_value, 1, 0, "1", "0")
        if valid:
            return None
        return self.message, {"true": self.true_value, "false": self.false_value}


class RegularExpressionValidator(Validator):
    default_message = "{attribute} is invalid."

    def __init__(self, attributes: Any = (), pattern: str | re.Pattern | None = None, not_: bool = False, **kwargs: Any) -> None:
        super().__init__(attributes, **kwargs)
        if pattern is None:
            raise InvalidConfigError("The \"pattern\" property must be set.")
        self.pattern = re.compile(pattern) if isinstance(pattern, str) else pattern
        self.not_ = not_

    def validate_value(self, value: Any) -> tuple[str, dict] | None:
        if not isinstance(value, str):
            return self.message, {}
        matched = self.pattern.search(value) is not None
        if matched == self.not_:
            return self.message, {}
        return None


class EmailValidator(RegularExpressionValidator):
    default_message = "{attribute} is not a valid email address."

    PATTERN: ClassVar[str] = r"^[a-zA-Z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[a-zA-Z0-9!#$%&'*+/=?^_`{|}~-]+)*@(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?\.)+[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?$"

    def __init__(self, attributes: Any = (), **kwargs: Any) -> None:
        kwargs.setdefault("pattern", self.PATTERN)
        super().__init__(attributes, **kwargs)


class RangeValidator(Validator):
    default_message = "{attribute} is invalid."

    def __init__(self, attributes: Any = (), range: Any = None, not_: bool = False, strict: bool = False, **kwargs: Any) -> None:
        super().__init__(attributes, **kwargs)
        if range is None:
            raise InvalidConfigError("The \"range\" property must be set.")
        self.range = range
        self.not_ = not_
        self.strict = strict

    def validate_value(self, value: Any) -> tuple[str, dict] | None:
        candidates = self.range() if callable(self.range) else self.range
        if self.strict:
            found = any(value == item and type(value) is type(item) for item in candidates)
        else:
            found = any(value == item or str(value) == str(item) for item in candidates)
        if found != self.not_:
            return None
        return self.message, {}


class CompareValidator(Validator):
    """
    Compares an attribute with another attribute or a fixed value.

    By default `password` is compared with `password_repeat`.
    """

    _OPERATORS: ClassVar[dict[str, tuple[Callable[[Any, Any], bool], str]]] = {
        "==": (lambda a, b: a == b, "{attribute} must be equal to \"{compare_value_or_attribute}\"."),
        "!=": (lambda a, b: a != b, "{attribute} must not be equal to \"{compare_value_or_attribute}\"."),
        ">": (lambda a, b: a > b, "{attribute} must be greater than \"{compare_value_or_attribute}\"."),
        ">=": (lambda a, b: a >= b, "{attribute} must be greater than or equal to \"{compare_value_or_attribute}\"."),
        "<": (lambda a, b: a < b, "{attribute} must be less than \"{compare_value_or_attribute}\"."),
        "<=": (lambda a, b: a <= b, "{attribute} must be less than or equal to \"{compare_value_or_attribute}\"."),
    }

    def __init__(
        self,
        attributes: Any = (),
        compare_attribute: str | None = None,
        compare_value: Any = None,
        operator: str = "==",
        **kwargs: Any,
    ) -> None:
        if operator not in self._OPERATORS:
            raise InvalidConfigError(f"Unknown operator: {operator}")
        kwargs.setdefault("message", self._OPERATORS[operator][1])
        super().__init__(attributes, **kwargs)
        self.compare_attribute = compare_attribute
        self.compare_value = compare_value
        self.operator = operator

    def validate_attribute(self, model: Any, attribute: str) -> None:
        value = getattr(model, attribute)
        if self.compare_value is not None:
            other = self.compare_value
            shown = other
        else:
            compare_attribute = self.compare_attribute or f"{attribute}_repeat"
            other = getattr(model, compare_attribute)
            shown = model.get_attribute_label(compare_attribute)
        check = self._OPERATORS[self.operator][0]
        try:
            valid = check(value, other)
        except TypeError:
            valid = False
        if not valid:
            self.add_error(model, attribute, self.message, {"compare_value_or_attribute": shown})


class DefaultValueValidator(Validator):
    """Sets an attribute to a default when it is empty. Never reports errors."""

    def __init__(self, attributes: Any = (), value: Any = None, **kwargs: Any) -> None:
        kwargs.setdefault("skip_on_empty", False)
        super().__init__(attributes, **kwargs)
        self.value = value

    def validate_attribute(self, model: Any, attribute: str) -> None:
        if self.is_empty(getattr(model, attribute)):
            value = self.value(model, attribute) if callable(self.value) else self.value
            setattr(model, attribute, value)


class FilterValidator(Validator):
    """Replaces an attribute value with `filter(value)`. Never reports errors."""

    def __init__(self, attributes: Any = (), filter: Callable[[Any], Any] | None = None, skip_on_array: bool = False, **kwargs: Any) -> None:
        kwargs.setdefault("skip_on_empty", False)
        super().__init__(attributes, **kwargs)
        if filter is None:
            raise InvalidConfigError("The \"filter\" property must be set.")
        self.filter = filter
        self.skip_on_array = skip_on_array

    def validate_attribute(self, model: Any, attribute: str) -> None:
        value = getattr(model, attribute)
        if self.skip_on_array and isinstance(value, (list, tuple, dict)):
            return
        setattr(model, attribute, self.filter(value))


def _trim(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


class SafeValidator(Validator):
    """Marks attributes safe for mass assignment without checking them."""

    def validate_attributes(self, model: Any, attributes: Any = None) -> None:
        return None


class UniqueValidator(Validator):
    """
    Checks that no other row holds the same value.

    Attributes:
        target_class: Record class to query (defaults to the model's class)
        target_attribute: Column to compare (defaults to the attribute name)
        filter: Extra condition (dict or clause) or `callable(query)`
    """

    default_message = "{attribute} \"{value}\" has already been taken."

    def __init__(
        self,
        attributes: Any = (),
        target_class: type | None = None,
        target_attribute: str | None = None,
        filter: Any = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(attributes, **kwargs)
        self.target_class = target_class
        self.target_attribute = target_attribute
        self.filter = filter

    def validate_attribute(self, model: Any, attribute: str) -> None:
        target_class = self.target_class or type(model)
        target_attribute = self.target_attribute or attribute
        value = getattr(model, attribute)

        query = target_class.find().where({target_attribute: value})
        if callable(self.filter):
            self.filter(query)
        elif self.filter is not None:
            query.and_where(self.filter)

        if isinstance(model, target_class) and not model.is_new_record:
            table = target_class.table()
            own_key = model.get_old_primary_key(as_dict=True)
            query.and_where(not_(and_(*[table.c[name] == key for name, key in own_key.items()])))

        if query.exists():
            logger.debug("Unique check failed for %s.%s", type(model).__name__, attribute)
            self.add_error(model, attribute, self.message)


Validator.BUILT_IN_VALIDATORS.update(
    {
        "boolean": BooleanValidator,
        "compare": CompareValidator,
        "default": DefaultValueValidator,
        "email": EmailValidator,
        "filter": FilterValidator,
        "in": RangeValidator,
        "integer": (NumberValidator, {"integer_only": True}),
        "match": RegularExpressionValidator,
        "number": NumberValidator,
        "required": RequiredValidator,
        "safe": SafeValidator,
        "string": StringValidator,
        "trim": (FilterValidator, {"filter": _trim, "skip_on_array": True}),
        "unique": UniqueValidator,
    }
)
