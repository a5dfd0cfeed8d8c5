"""Session-level models: modes, load state, change sets, and submission results."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from clinform.models.encounter import EncounterPayload
from clinform.models.validation import ValidationError


class SessionMode(StrEnum):
    """How a form session treats the encounter it is bound to.

    ENTER: No existing encounter; blank initial state.
    EDIT: Existing encounter hydrated and patched on submit.
    VIEW: Read-only rendering; no mutation and no submission.
    """

    ENTER = "enter"
    EDIT = "edit"
    VIEW = "view"


class LoadState(StrEnum):
    """Hydration progress of a session."""

    PENDING = "pending"
    LOADED = "loaded"
    FAILED = "failed"


class ChangeSet(BaseModel):
    """Entities touched by one committed value change.

    Passed to subscribers so the host UI re-renders only what changed.
    """

    field_id: str
    fields: set[str] = Field(default_factory=set)
    pages: set[str] = Field(default_factory=set)
    sections: set[str] = Field(default_factory=set)

    @property
    def is_empty(self) -> bool:
        return not (self.fields or self.pages or self.sections)


class SubmissionResult(BaseModel):
    """Outcome of a submit attempt."""

    ok: bool
    errors: dict[str, list[ValidationError]] = Field(default_factory=dict)
    payload: EncounterPayload | None = None
    resource: dict | None = None
    message: str = ""

    @property
    def error_count(self) -> int:
        return sum(len(errs) for errs in self.errors.values())
