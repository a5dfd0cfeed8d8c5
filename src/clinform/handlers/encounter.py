"""Handlers for questions that set encounter attributes instead of observations."""

from __future__ import annotations

from typing import Any

from clinform.expressions.evaluator import is_empty
from clinform.handlers.base import EncounterContext, FieldHandler, SubmissionValue
from clinform.models.encounter import Encounter, ref_uuid
from clinform.models.schema import FormField


class EncounterAttributeHandler(FieldHandler):
    """Base for encounter-level questions.

    Submission yields no observation. The answer is kept on ``field.value``
    and applied by the controller to ``EncounterPayload.<encounter_attribute>``.
    """

    def handle_field_submission(
        self,
        field: FormField,
        value: Any,
        context: EncounterContext,
    ) -> SubmissionValue:
        field.value = None if is_empty(value) else value
        return None

    def get_display_value(self, field: FormField, value: Any) -> str:
        if is_empty(value):
            return ""
        return field.question_options.answer_label(str(value)) or str(value)


class EncounterLocationHandler(EncounterAttributeHandler):
    encounter_attribute = "location"

    def get_initial_value(self, encounter: Encounter | None, field: FormField) -> Any:
        if encounter is None or encounter.location is None:
            return None
        return encounter.location.uuid


class EncounterProviderHandler(EncounterAttributeHandler):
    encounter_attribute = "provider"

    def get_initial_value(self, encounter: Encounter | None, field: FormField) -> Any:
        if encounter is None or not encounter.encounter_providers:
            return None
        return encounter.encounter_providers[0].provider_uuid


class EncounterDatetimeHandler(EncounterAttributeHandler):
    encounter_attribute = "encounter_datetime"

    def get_initial_value(self, encounter: Encounter | None, field: FormField) -> Any:
        if encounter is None:
            return None
        return encounter.encounter_datetime

    def get_display_value(self, field: FormField, value: Any) -> str:
        if is_empty(value):
            return ""
        return str(value)[:10]


def encounter_type_uuid(encounter: Encounter) -> str | None:
    """Uuid of a fetched encounter's type, whether expanded or not."""
    return ref_uuid(encounter.encounter_type)
