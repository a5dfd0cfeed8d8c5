"""Handlers for observation-producing questions (``type: obs``)."""

from __future__ import annotations

from typing import Any

from clinform.expressions.evaluator import is_empty
from clinform.handlers.base import EncounterContext, FieldHandler, SubmissionValue, find_existing_obs
from clinform.models.encounter import Encounter, Observation
from clinform.models.schema import FormField


def _coerce_number(value: Any) -> Any:
    if isinstance(value, bool) or isinstance(value, (int, float)):
        return value
    try:
        number = float(str(value).strip())
    except ValueError:
        return value
    return int(number) if number.is_integer() else number


class SimpleAnswerHandler(FieldHandler):
    """Free-entry answers: text, textarea, number, and date."""

    def get_initial_value(self, encounter: Encounter | None, field: FormField) -> Any:
        matches = find_existing_obs(encounter, field)
        if not matches:
            return None
        value = matches[0].value_code
        if field.rendering == "date" and isinstance(value, str):
            # REST datetimes carry a time part; date inputs hold YYYY-MM-DD
            return value[:10]
        return value

    def handle_field_submission(
        self,
        field: FormField,
        value: Any,
        context: EncounterContext,
    ) -> SubmissionValue:
        existing = find_existing_obs(context.encounter, field)
        if is_empty(value):
            field.value = self._voided(existing[0]) if existing else None
            return field.value
        if field.is_numeric:
            value = _coerce_number(value)
        field.value = self._observation(field, value, existing[0] if existing else None)
        return field.value

    def get_display_value(self, field: FormField, value: Any) -> str:
        if is_empty(value):
            return ""
        return str(value)


class SingleChoiceHandler(FieldHandler):
    """One coded answer chosen from the question's answer list."""

    def get_initial_value(self, encounter: Encounter | None, field: FormField) -> Any:
        matches = find_existing_obs(encounter, field)
        return matches[0].value_code if matches else None

    def handle_field_submission(
        self,
        field: FormField,
        value: Any,
        context: EncounterContext,
    ) -> SubmissionValue:
        existing = find_existing_obs(context.encounter, field)
        if is_empty(value):
            field.value = self._voided(existing[0]) if existing else None
            return field.value
        field.value = self._observation(field, value, existing[0] if existing else None)
        return field.value

    def get_display_value(self, field: FormField, value: Any) -> str:
        if is_empty(value):
            return ""
        return field.question_options.answer_label(str(value)) or str(value)


class MultiChoiceHandler(FieldHandler):
    """Checkbox questions: one observation per selected answer.

    In edit sessions, previously saved answers that are still selected keep
    their observation uuid and deselected ones are voided.
    """

    multi_valued = True

    def get_initial_value(self, encounter: Encounter | None, field: FormField) -> Any:
        return [obs.value_code for obs in find_existing_obs(encounter, field)]

    def handle_field_submission(
        self,
        field: FormField,
        value: Any,
        context: EncounterContext,
    ) -> SubmissionValue:
        selected = list(value) if isinstance(value, (list, tuple)) else ([] if is_empty(value) else [value])
        existing = {obs.value_code: obs for obs in find_existing_obs(context.encounter, field)}
        observations: list[Observation] = [
            self._observation(field, code, existing.get(code)) for code in dict.fromkeys(selected)
        ]
        observations.extend(
            self._voided(obs) for code, obs in existing.items() if code not in selected
        )
        field.value = observations
        return field.value

    def get_display_value(self, field: FormField, value: Any) -> str:
        if is_empty(value):
            return ""
        codes = value if isinstance(value, (list, tuple)) else [value]
        return ", ".join(
            field.question_options.answer_label(str(code)) or str(code) for code in codes
        )


class ToggleHandler(FieldHandler):
    """Boolean switches persisted as the canonical true/false concepts.

    The answer state holds a bool; observations carry the concept code.
    """

    def _to_concept(self, value: Any) -> str:
        if value in (self._config.concept_true, self._config.concept_false):
            return value
        return self._config.concept_true if value else self._config.concept_false

    def get_initial_value(self, encounter: Encounter | None, field: FormField) -> Any:
        matches = find_existing_obs(encounter, field)
        if not matches:
            return None
        return matches[0].value_code == self._config.concept_true

    def handle_field_submission(
        self,
        field: FormField,
        value: Any,
        context: EncounterContext,
    ) -> SubmissionValue:
        existing = find_existing_obs(context.encounter, field)
        if value is None or value == "":
            field.value = self._voided(existing[0]) if existing else None
            return field.value
        field.value = self._observation(
            field, self._to_concept(value), existing[0] if existing else None
        )
        return field.value

    def get_display_value(self, field: FormField, value: Any) -> str:
        if value is None or value == "":
            return ""
        concept = self._to_concept(value)
        label = field.question_options.answer_label(concept)
        if label:
            return label
        return "Yes" if concept == self._config.concept_true else "No"
