"""
Base model with attributes, scenarios, validation and error collection.

`Model` is the non-persistent half of the record layer: search models and form
objects extend it directly, `ActiveRecord` extends it with persistence.

Public attributes of a plain model are its annotated member variables:

    class LoginForm(Model):
        email: str | None = None
        password: str | None = None

        def rules(self):
            return [(["email", "password"], "required"), ("email", "email")]

Dependencies: cti_record.records
System role: Attribute, validation and error contract shared by all models
"""

import inspect
import logging
from collections.abc import Mapping
from typing import Any, ClassVar

from cti_record.records.exceptions import (
    InvalidArgumentError,
    InvalidConfigError,
    UnknownPropertyError,
)
from cti_record.records.helpers import camel_to_words, member_variables, merge_rules, to_list
from cti_record.records.validators import RequiredValidator, Validator

logger = logging.getLogger(__name__)


class Model:
    """
    Base class for models.

    Construction assigns keyword arguments through `setattr` and then calls
    `init()`, so subclasses can finish configuration there.
    """

    DEFAULT_SCENARIO: ClassVar[str] = "default"

    _instances: ClassVar[dict[type, "Model"]] = {}

    def __init__(self, **config: Any) -> None:
        self._errors: dict[str, list[str]] = {}
        self._validators: list[Validator] | None = None
        self._scenario = self.DEFAULT_SCENARIO

        cls = type(self)
        for name in member_variables(cls):
            if not hasattr(cls, name):
                object.__setattr__(self, name, None)

        for name, value in config.items():
            setattr(self, name, value)
        self.init()

    def init(self) -> None:
        """Called at the end of construction, after config was applied."""

    @classmethod
    def instance(cls, refresh: bool = False) -> "Model":
        """
        Shared instance of this class for class-level lookups (rules, labels).

        Args:
            refresh: Rebuild the cached instance
        """
        if refresh or cls not in Model._instances:
            Model._instances[cls] = cls()
        return Model._instances[cls]

    # Property interception

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")
        raise UnknownPropertyError(f"Getting unknown property: {type(self).__name__}.{name}")

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_") or self._is_declared(name):
            object.__setattr__(self, name, value)
            return
        raise UnknownPropertyError(f"Setting unknown property: {type(self).__name__}.{name}")

    @classmethod
    def _is_declared(cls, name: str) -> bool:
        return name in member_variables(cls) or hasattr(cls, name)

    def can_get_property(self, name: str, check_vars: bool = True) -> bool:
        if isinstance(inspect.getattr_static(type(self), name, None), property):
            return True
        return check_vars and name in member_variables(type(self))

    def can_set_property(self, name: str, check_vars: bool = True) -> bool:
        attr = inspect.getattr_static(type(self), name, None)
        if isinstance(attr, property):
            return attr.fset is not None
        return check_vars and name in member_variables(type(self))

    def has_method(self, name: str) -> bool:
        attr = inspect.getattr_static(type(self), name, None)
        return inspect.isfunction(attr) or isinstance(attr, (staticmethod, classmethod))

    def get_validator_method(self, name: str) -> Any:
        """Bound method an inline validation rule names."""
        return getattr(self, name)

    # Attributes

    def attributes(self) -> list[str]:
        """Names of the model's attributes."""
        return list(member_variables(type(self)))

    def get_attributes(self, names: Any = None, except_: Any = ()) -> dict[str, Any]:
        names = self.attributes() if names is None else to_list(names)
        excluded = set(to_list(except_))
        return {name: getattr(self, name) for name in names if name not in excluded}

    def set_attributes(self, values: Mapping[str, Any] | None, safe_only: bool = True) -> None:
        """
        Mass-assign attribute values.

        Args:
            values: Attribute values keyed by name
            safe_only: Only assign attributes that are safe in the current scenario
        """
        if not isinstance(values, Mapping):
            return
        allowed = set(self.safe_attributes() if safe_only else self.attributes())
        for name, value in values.items():
            if name in allowed:
                setattr(self, name, value)
            elif safe_only:
                self.on_unsafe_attribute(name, value)

    def on_unsafe_attribute(self, name: str, value: Any) -> None:
        logger.debug("Failed to set unsafe attribute '%s' in '%s'.", name, type(self).__name__)

    def form_name(self) -> str:
        """Key under which `load()` looks for this model's data."""
        return type(self).__name__

    def load(self, data: Mapping[str, Any] | None, form_name: str | None = None) -> bool:
        """
        Populate safe attributes from submitted data.

        Args:
            data: Either the attribute values (when the scope is "") or a mapping
                holding them under the form name
            form_name: Scope to read from; defaults to `form_name()`

        Returns:
            bool: Whether data for this model was found
        """
        if not data:
            return False
        scope = self.form_name() if form_name is None else form_name
        if scope == "":
            self.set_attributes(data)
            return True
        if isinstance(data.get(scope), Mapping):
            self.set_attributes(data[scope])
            return True
        return False

    # Scenarios

    @property
    def scenario(self) -> str:
        return self._scenario

    @scenario.setter
    def scenario(self, value: str) -> None:
        self._scenario = value

    def scenarios(self) -> dict[str, list[str]]:
        """
        Attributes active in each scenario, derived from validator on/except_.

        Names prefixed with "!" are validated but not safe.
        """
        validators = self.get_validators()
        scenarios: dict[str, dict[str, None]] = {self.DEFAULT_SCENARIO: {}}
        for validator in validators:
            for name in validator.on + validator.except_:
                scenarios.setdefault(name, {})

        names = list(scenarios)
        for validator in validators:
            if not validator.on and not validator.except_:
                targets = names
            elif not validator.on:
                targets = [name for name in names if name not in validator.except_]
            else:
                targets = validator.on
            for name in targets:
                for attribute in validator.attributes:
                    scenarios[name][attribute] = None

        return {name: list(attributes) for name, attributes in scenarios.items()}

    def safe_attributes(self) -> list[str]:
        attributes = self.scenarios().get(self.scenario, [])
        return [name for name in attributes if not name.startswith("!")]

    def active_attributes(self) -> list[str]:
        attributes = self.scenarios().get(self.scenario, [])
        return [name.lstrip("!") for name in attributes]

    # Validation

    def rules(self) -> list | dict:
        """
        Validation rules.

        Each rule is a Validator instance or a tuple
        `(attributes, validator_type[, params])`. Returning a dict keyed by
        rule name lets subclasses replace or drop rules by key.
        """
        return []

    def create_validators(self) -> list[Validator]:
        return self._build_validators(merge_rules(self.rules()))

    def _build_validators(self, rules: list) -> list[Validator]:
        validators = []
        for rule in rules:
            if isinstance(rule, Validator):
                validators.append(rule)
            elif isinstance(rule, (list, tuple)) and len(rule) >= 2 and rule[0] is not None and rule[1] is not None:
                params = rule[2] if len(rule) > 2 else {}
                validators.append(Validator.create_validator(rule[1], self, to_list(rule[0]), params))
            else:
                raise InvalidConfigError(
                    "Invalid validation rule: a rule must specify both attribute names and validator type."
                )
        return validators

    def get_validators(self) -> list[Validator]:
        if self._validators is None:
            self._validators = self.create_validators()
        return self._validators

    def get_active_validators(self, attribute: str | None = None) -> list[Validator]:
        return [
            validator
            for validator in self.get_validators()
            if validator.is_active(self.scenario)
            and (attribute is None or attribute in validator.get_attribute_names())
        ]

    def is_attribute_required(self, attribute: str) -> bool:
        return any(
            isinstance(validator, RequiredValidator) and validator.when is None
            for validator in self.get_active_validators(attribute)
        )

    def before_validate(self) -> bool:
        return True

    def after_validate(self) -> None:
        pass

    def validate(self, attribute_names: Any = None, clear_errors: bool = True) -> bool:
        """
        Run the active validators.

        Args:
            attribute_names: Only validate these attributes (default: all
                attributes active in the current scenario)
            clear_errors: Drop existing errors first

        Returns:
            bool: True when no errors were recorded

        Raises:
            InvalidArgumentError: If the current scenario is unknown
        """
        if clear_errors:
            self.clear_errors()
        if not self.before_validate():
            return False

        if self.scenario not in self.scenarios():
            raise InvalidArgumentError(f"Unknown scenario: {self.scenario}")

        names = self.active_attributes() if attribute_names is None else to_list(attribute_names)
        for validator in self.get_active_validators():
            validator.validate_attributes(self, names)

        self.after_validate()
        return not self.has_errors()

    # Errors

    def has_errors(self, attribute: str | None = None) -> bool:
        if attribute is None:
            return bool(self._errors)
        return bool(self._errors.get(attribute))

    def get_errors(self, attribute: str | None = None) -> Any:
        if attribute is None:
            return {name: list(errors) for name, errors in self._errors.items()}
        return list(self._errors.get(attribute, []))

    def get_first_error(self, attribute: str) -> str | None:
        errors = self._errors.get(attribute)
        return errors[0] if errors else None

    def get_first_errors(self) -> dict[str, str]:
        return {name: errors[0] for name, errors in self._errors.items() if errors}

    def add_error(self, attribute: str, error: str = "") -> None:
        self._errors.setdefault(attribute, []).append(error)

    def add_errors(self, items: Mapping[str, Any]) -> None:
        for attribute, errors in items.items():
            for error in to_list(errors):
                self.add_error(attribute, error)

    def clear_errors(self, attribute: str | None = None) -> None:
        if attribute is None:
            self._errors = {}
        else:
            self._errors.pop(attribute, None)

    # Labels and hints

    def attribute_labels(self) -> dict[str, str]:
        return {}

    def attribute_hints(self) -> dict[str, str]:
        return {}

    def get_attribute_label(self, attribute: str) -> str:
        labels = self.attribute_labels()
        return labels.get(attribute) or self.generate_attribute_label(attribute)

    def get_attribute_hint(self, attribute: str) -> str:
        return self.attribute_hints().get(attribute, "")

    def generate_attribute_label(self, name: str) -> str:
        return camel_to_words(name)
