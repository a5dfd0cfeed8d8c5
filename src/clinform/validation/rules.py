"""Built-in field validation rules.

Each rule checks one declarative ValidatorSpec against a field's value and
returns a list of ValidationError records. Rules never raise for bad user
input; an empty list means the value passed.
"""

from __future__ import annotations

import re
from abc import abstractmethod
from datetime import date
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from clinform.models.schema import FormField, ValidatorSpec
from clinform.models.validation import ErrorKind, ValidationError


class FieldRule(BaseModel):
    """Abstract base class for field validation rules.

    Subclasses implement check(), which receives a non-empty value (the
    engine handles emptiness before dispatching) except for RequiredRule.
    """

    rule_type: str = Field(..., description="ValidatorSpec.type this rule serves")
    description: str = Field(..., description="Human-readable rule description")

    @abstractmethod
    def check(self, field: FormField, value: Any, spec: ValidatorSpec) -> list[ValidationError]:
        """Check a value against one validator spec.

        Args:
            field: The field being validated.
            value: The field's current answer.
            spec: The validator configuration from the field's schema.

        Returns:
            List of ValidationError. Empty list means the value passed.
        """
        ...


class RequiredRule(FieldRule):
    rule_type: str = "required"
    description: str = "Field must have a value"

    def check(self, field: FormField, value: Any, spec: ValidatorSpec) -> list[ValidationError]:
        return [
            ValidationError(
                field_id=field.id,
                kind=ErrorKind.REQUIRED,
                message=spec.message or "Field is mandatory",
            )
        ]


class RangeRule(FieldRule):
    rule_type: str = "range"
    description: str = "Numeric value must lie within min/max bounds"

    def check(self, field: FormField, value: Any, spec: ValidatorSpec) -> list[ValidationError]:
        try:
            number = float(str(value).strip())
        except ValueError:
            return [
                ValidationError(
                    field_id=field.id,
                    kind=ErrorKind.FORMAT,
                    message=spec.message or f"'{value}' is not a number",
                )
            ]
        if spec.min is not None and number < spec.min:
            return [
                ValidationError(
                    field_id=field.id,
                    kind=ErrorKind.RANGE,
                    message=spec.message or f"Value must be at least {spec.min:g}",
                )
            ]
        if spec.max is not None and number > spec.max:
            return [
                ValidationError(
                    field_id=field.id,
                    kind=ErrorKind.RANGE,
                    message=spec.message or f"Value must be at most {spec.max:g}",
                )
            ]
        return []


class RegexRule(FieldRule):
    rule_type: str = "regex"
    description: str = "Text value must match a pattern"

    def check(self, field: FormField, value: Any, spec: ValidatorSpec) -> list[ValidationError]:
        if not spec.pattern:
            return []
        try:
            matched = re.fullmatch(spec.pattern, str(value))
        except re.error as e:
            # normalization already reported the pattern
            logger.warning("Field {}: invalid regex {!r} skipped: {}", field.id, spec.pattern, e)
            return []
        if matched is None:
            return [
                ValidationError(
                    field_id=field.id,
                    kind=ErrorKind.FORMAT,
                    message=spec.message or "Value has an invalid format",
                )
            ]
        return []


class LengthRule(FieldRule):
    rule_type: str = "length"
    description: str = "Text value must not exceed a maximum length"

    def check(self, field: FormField, value: Any, spec: ValidatorSpec) -> list[ValidationError]:
        if spec.max_length is None or len(str(value)) <= spec.max_length:
            return []
        return [
            ValidationError(
                field_id=field.id,
                kind=ErrorKind.LENGTH,
                message=spec.message or f"Value must be at most {spec.max_length} characters",
            )
        ]


class DateRule(FieldRule):
    rule_type: str = "date"
    description: str = "Value must be an ISO date, not in the future unless allowed"

    def check(self, field: FormField, value: Any, spec: ValidatorSpec) -> list[ValidationError]:
        try:
            parsed = date.fromisoformat(str(value)[:10])
        except ValueError:
            return [
                ValidationError(
                    field_id=field.id,
                    kind=ErrorKind.DATE,
                    message=spec.message or f"'{value}' is not a valid date",
                )
            ]
        if not spec.allow_future_dates and parsed > date.today():
            return [
                ValidationError(
                    field_id=field.id,
                    kind=ErrorKind.DATE,
                    message=spec.message or "Date cannot be in the future",
                )
            ]
        return []


def get_default_rules() -> list[FieldRule]:
    """Return one instance of every built-in rule."""
    return [RequiredRule(), RangeRule(), RegexRule(), LengthRule(), DateRule()]
