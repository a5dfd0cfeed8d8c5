"""Field validation orchestrator.

Holds a registry of FieldRule instances keyed by validator type and runs
the rules declared by each field's schema fragment. All errors across all
eligible fields are collected before returning.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from loguru import logger

from clinform.expressions.evaluator import UNSPECIFIED_SUFFIX, is_empty
from clinform.models.schema import FormField, ValidatorSpec
from clinform.models.validation import ValidationError
from clinform.validation.rules import FieldRule, get_default_rules


def unspecified_key(field_id: str) -> str:
    """Answer-state key of a field's 'unspecified' companion toggle."""
    return f"{field_id}{UNSPECIFIED_SUFFIX}"


class FormValidator:
    """Runs declarative validation rules over form fields."""

    def __init__(self, rules: Iterable[FieldRule] | None = None) -> None:
        self._rules: dict[str, FieldRule] = {}
        for rule in rules if rules is not None else get_default_rules():
            self.register(rule)

    @property
    def rules(self) -> list[FieldRule]:
        """Return the registered rules."""
        return list(self._rules.values())

    def register(self, rule: FieldRule) -> None:
        """Register a rule, replacing any rule with the same type."""
        self._rules[rule.rule_type] = rule
        logger.debug("Registered validation rule: {}", rule.rule_type)

    @staticmethod
    def specs_for(field: FormField) -> list[ValidatorSpec]:
        """Validator specs that apply to a field.

        Combines the explicit ``validators`` list with rules implied by the
        field itself: ``required``, numeric ``min``/``max`` bounds,
        ``maxLength``, and the date rendering.
        """
        specs = list(field.validators)
        declared = {spec.type for spec in specs}
        options = field.question_options
        if field.required and "required" not in declared:
            specs.insert(0, ValidatorSpec(type="required"))
        if (
            field.is_numeric
            and (options.min is not None or options.max is not None)
            and "range" not in declared
        ):
            specs.append(ValidatorSpec(type="range", min=options.min, max=options.max))
        if options.max_length is not None and "length" not in declared:
            specs.append(ValidatorSpec(type="length", max_length=options.max_length))
        if field.rendering == "date" and "date" not in declared:
            specs.append(ValidatorSpec(type="date"))
        return specs

    def validate_field(self, field: FormField, value: Any) -> list[ValidationError]:
        """Validate one value against the field's rules.

        An empty value on a required field yields exactly one ``required``
        error; an empty value on an optional field passes.
        """
        specs = self.specs_for(field)
        if is_empty(value):
            for spec in specs:
                if spec.type == "required":
                    return self._rules["required"].check(field, value, spec)
            return []

        errors: list[ValidationError] = []
        for spec in specs:
            if spec.type == "required":
                continue
            rule = self._rules.get(spec.type)
            if rule is None:
                logger.warning("Field {}: unknown validator type {!r} ignored", field.id, spec.type)
                continue
            errors.extend(rule.check(field, value, spec))
        return errors

    @staticmethod
    def is_eligible(field: FormField, answers: Mapping[str, Any]) -> bool:
        """Whether a field takes part in validation and submission.

        Hidden, disabled, misconfigured, and unspecified fields are skipped.
        """
        if field.is_hidden or field.disabled or field.config_error is not None:
            return False
        return answers.get(unspecified_key(field.id)) is not True

    def validate(
        self,
        fields: Iterable[FormField],
        answers: Mapping[str, Any],
    ) -> dict[str, list[ValidationError]]:
        """Validate every eligible field.

        Returns:
            Mapping of field id to its errors, only for fields with errors.
        """
        results: dict[str, list[ValidationError]] = {}
        for field in fields:
            if not self.is_eligible(field, answers):
                continue
            errors = self.validate_field(field, answers.get(field.id))
            if errors:
                results[field.id] = errors
        if results:
            logger.info(
                "Validation found {} error(s) across {} field(s)",
                sum(len(e) for e in results.values()),
                len(results),
            )
        return results
