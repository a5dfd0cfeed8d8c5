"""Field handler contract.

Every question type is served by a FieldHandler exposing the same three
operations:

- ``get_initial_value(encounter, field)`` extracts the field's answer from
  an existing encounter (edit and view sessions).
- ``handle_field_submission(field, value, context)`` maps an answer to the
  Observation(s) persisted for it.
- ``get_display_value(field, value)`` renders an answer for read-only views.

``handle_field_submission`` stores its result on ``field.value`` before
returning it. This is the one place outside the controller that writes to a
field: the controller's submit reduction reads ``field.value`` back.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from clinform.config import EngineConfig
from clinform.models.encounter import (
    FORM_FIELD_NAMESPACE,
    Encounter,
    ExistingObs,
    Observation,
    form_field_path,
)
from clinform.models.schema import FormField
from clinform.models.session import SessionMode

SubmissionValue = Observation | list[Observation] | None


class EncounterContext(BaseModel):
    """Encounter-level information available to handlers during a session."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    patient: str | None = None
    encounter: Encounter | None = None
    location: str | None = None
    session_mode: SessionMode = SessionMode.ENTER
    date: datetime = Field(default_factory=datetime.now)


def find_existing_obs(encounter: Encounter | None, field: FormField) -> list[ExistingObs]:
    """Return the observations of ``encounter`` that belong to ``field``.

    Observations stamped with this field's form field path win; otherwise
    observations are matched on the question concept.
    """
    if encounter is None:
        return []
    leaves = encounter.iter_obs()
    path = form_field_path(field.id)
    by_path = [obs for obs in leaves if obs.form_field_path == path]
    if by_path:
        return by_path
    if not field.concept:
        return []
    return [obs for obs in leaves if obs.concept.uuid == field.concept]


class FieldHandler(ABC):
    """Abstract base for per-question-type behaviour.

    Attributes:
        multi_valued: True when answers are ordered lists of concept codes.
        encounter_attribute: Name of the EncounterPayload attribute the
            handler feeds, or None for handlers that produce observations.
    """

    multi_valued: bool = False
    encounter_attribute: str | None = None

    def __init__(self, config: EngineConfig) -> None:
        self._config = config

    @abstractmethod
    def get_initial_value(self, encounter: Encounter | None, field: FormField) -> Any:
        """Extract the field's current answer from an existing encounter."""
        ...

    @abstractmethod
    def handle_field_submission(
        self,
        field: FormField,
        value: Any,
        context: EncounterContext,
    ) -> SubmissionValue:
        """Map an answer to the observation(s) to persist.

        Implementations must assign the result to ``field.value``.
        """
        ...

    @abstractmethod
    def get_display_value(self, field: FormField, value: Any) -> str:
        """Render an answer as human-readable text."""
        ...

    def blank_value(self, field: FormField) -> Any:
        """Empty answer appropriate to the field's cardinality."""
        return [] if self.multi_valued else ""

    def _observation(
        self,
        field: FormField,
        value: Any,
        existing: ExistingObs | None = None,
    ) -> Observation:
        return Observation(
            concept=field.concept or "",
            value=value,
            uuid=existing.uuid if existing is not None else None,
            form_field_namespace=FORM_FIELD_NAMESPACE,
            form_field_path=form_field_path(field.id),
        )

    @staticmethod
    def _voided(existing: ExistingObs) -> Observation:
        return Observation(concept=existing.concept.uuid, uuid=existing.uuid, voided=True)
