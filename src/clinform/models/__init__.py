"""Pydantic data models shared across all clinform components.

All models are re-exported here for convenient imports:
    from clinform.models import FormSchema, FormField, Observation, EncounterPayload
"""

from clinform.models.encounter import (
    Encounter,
    EncounterPayload,
    EncounterProvider,
    ExistingObs,
    Observation,
    Ref,
    SaveResult,
    form_field_path,
    ref_uuid,
)
from clinform.models.schema import (
    AnswerOption,
    FieldSubmission,
    FormField,
    FormPage,
    FormSchema,
    FormSection,
    HideRule,
    QuestionOptions,
    ValidatorSpec,
)
from clinform.models.session import ChangeSet, LoadState, SessionMode, SubmissionResult
from clinform.models.validation import ErrorKind, ValidationError

__all__ = [
    # schema
    "AnswerOption",
    "QuestionOptions",
    "HideRule",
    "ValidatorSpec",
    "FieldSubmission",
    "FormField",
    "FormSection",
    "FormPage",
    "FormSchema",
    # encounter
    "Ref",
    "ref_uuid",
    "ExistingObs",
    "EncounterProvider",
    "Encounter",
    "Observation",
    "EncounterPayload",
    "SaveResult",
    "form_field_path",
    # validation
    "ErrorKind",
    "ValidationError",
    # session
    "SessionMode",
    "LoadState",
    "ChangeSet",
    "SubmissionResult",
]
