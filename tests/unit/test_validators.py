"""
Tests for attribute validators.

Covers validator resolution in create_validator(), standalone value checks
and validators that need the model.
"""

import pytest

from cti_record.records import InvalidConfigError, Model, UnknownMethodError
from cti_record.records.validators import (
    BooleanValidator,
    EmailValidator,
    InlineValidator,
    NumberValidator,
    RangeValidator,
    RegularExpressionValidator,
    RequiredValidator,
    StringValidator,
    Validator,
)


class Profile(Model):
    """Form model used as validation target."""

    nickname: str | None = None
    age: str | None = None
    website: str | None = None

    def check_nickname(self, attribute, params, validator):
        if getattr(self, attribute) == params.get("reserved"):
            self.add_error(attribute, "This nickname is reserved.")


class TestCreateValidator:
    """Tests for Validator.create_validator() resolution order."""

    def test_model_method_becomes_inline_validator(self) -> None:
        """A string naming a model method resolves to an inline validator."""
        validator = Validator.create_validator("check_nickname", Profile(), ["nickname"], {"params": {"reserved": "admin"}})

        assert isinstance(validator, InlineValidator)
        assert validator.method == "check_nickname"
        assert validator.params == {"reserved": "admin"}

    def test_built_in_name_with_default_params(self) -> None:
        """'integer' is a NumberValidator restricted to integers."""
        validator = Validator.create_validator("integer", Profile(), "age")

        assert isinstance(validator, NumberValidator)
        assert validator.integer_only is True
        assert validator.attributes == ["age"]

    def test_validator_class(self) -> None:
        validator = Validator.create_validator(StringValidator, Profile(), ["nickname"], {"max": 5})

        assert isinstance(validator, StringValidator)
        assert validator.max == 5

    def test_plain_callable_becomes_inline_validator(self) -> None:
        def check(model, attribute, params, validator):
            model.add_error(attribute, "nope")

        validator = Validator.create_validator(check, Profile(), ["nickname"])

        assert isinstance(validator, InlineValidator)

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(InvalidConfigError):
            Validator.create_validator("no_such_validator", Profile(), ["nickname"])


class TestValueValidators:
    """Tests for standalone value checks through validate()."""

    def test_string_max(self) -> None:
        valid, message = StringValidator(max=3).validate("abcd")

        assert valid is False
        assert message == "the input value should contain at most 3 characters."

    def test_string_rejects_non_strings(self) -> None:
        assert StringValidator().validate(12)[0] is False

    def test_integer(self) -> None:
        validator = NumberValidator(integer_only=True)

        assert validator.validate("12") == (True, None)
        assert validator.validate("1.5")[0] is False
        assert validator.validate(True)[0] is False

    def test_number_bounds(self) -> None:
        validator = NumberValidator(min=1, max=10)

        assert validator.validate(5)[0] is True
        assert validator.validate("11")[1] == "the input value must be no greater than 10."

    def test_range(self) -> None:
        validator = RangeValidator(range=["draft", "published"])

        assert validator.validate("draft")[0] is True
        assert validator.validate("archived")[0] is False

    def test_range_requires_range(self) -> None:
        with pytest.raises(InvalidConfigError):
            RangeValidator()

    def test_boolean(self) -> None:
        validator = BooleanValidator()

        assert validator.validate("1")[0] is True
        assert validator.validate(False)[0] is True
        assert validator.validate("yes")[0] is False

    def test_boolean_strict(self) -> None:
        assert BooleanValidator(strict=True).validate(1)[0] is False

    def test_match_inverted(self) -> None:
        validator = RegularExpressionValidator(pattern=r"^\d+$", not_=True)

        assert validator.validate("123")[0] is False
        assert validator.validate("abc")[0] is True

    def test_email(self) -> None:
        validator = EmailValidator()

        assert validator.validate("ada@example.com")[0] is True
        assert validator.validate("not-an-email")[0] is False

    def test_required_treats_whitespace_as_blank(self) -> None:
        assert RequiredValidator().validate("  ")[0] is False


class TestModelValidators:
    """Tests for validators that run against a model."""

    def test_inline_validator_receives_params(self) -> None:
        """The inline method gets the rule params and records errors."""

        class ReservedProfile(Profile):
            def rules(self):
                return [("nickname", "check_nickname", {"params": {"reserved": "admin"}})]

        profile = ReservedProfile(nickname="admin")

        assert profile.validate() is False
        assert profile.get_errors("nickname") == ["This nickname is reserved."]

    def test_trim_and_default_run_before_checks(self) -> None:
        """Filters rewrite values in rule order."""

        class CleanProfile(Profile):
            def rules(self):
                return [
                    ("nickname", "trim"),
                    ("age", "default", {"value": "18"}),
                    ("nickname", "string", {"max": 5}),
                ]

        profile = CleanProfile(nickname="  ada  ")

        assert profile.validate() is True
        assert profile.nickname == "ada"
        assert profile.age == "18"

    def test_skip_on_error_stops_later_validators(self) -> None:
        """An attribute with an error is skipped by later validators."""

        class StrictProfile(Profile):
            def rules(self):
                return [("age", "required"), ("age", "integer")]

        profile = StrictProfile()

        profile.validate()

        assert profile.get_errors("age") == ["Age cannot be blank."]

    def test_when_gate(self) -> None:
        """`when` disables the validator for the model."""

        class GatedProfile(Profile):
            def rules(self):
                return [("website", "required", {"when": lambda model, attribute: model.nickname is not None})]

        assert GatedProfile().validate() is True
        assert GatedProfile(nickname="ada").validate() is False

    def test_error_message_uses_attribute_label(self) -> None:
        class LabelledProfile(Profile):
            def rules(self):
                return [("website", "match", {"pattern": r"^https?://"})]

            def attribute_labels(self):
                return {"website": "Home page"}

        profile = LabelledProfile(website="ftp://example.com")

        profile.validate()

        assert profile.get_first_error("website") == "Home page is invalid."

    def test_inline_validator_with_missing_method(self) -> None:
        profile = Profile(nickname="ada")
        validator = InlineValidator(["nickname"], method="check_missing")

        with pytest.raises(UnknownMethodError, match=r"Calling unknown method: Profile.check_missing\(\)"):
            validator.validate_attributes(profile)
