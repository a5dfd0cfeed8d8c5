"""Form schema models.

A FormSchema is an ordered tree of pages, sections, and questions loaded
from the JSON wire format used by form designers::

    {"name": ..., "pages": [{"label": ..., "sections": [{"label": ...,
        "questions": [{"id": ..., "type": "obs",
                       "questionOptions": {"rendering": "radio", ...},
                       "hide": {"hideWhenExpression": "..."}}]}]}]}

Wire names are camelCase aliases; attributes are snake_case. Computed and
transient runtime attributes (``is_hidden``, ``value``, ``submission``,
``config_error``) are excluded from serialization.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from clinform.models.validation import ValidationError

NUMERIC_RENDERINGS = ("number", "numeric")


class AnswerOption(BaseModel):
    """One selectable answer of a choice question."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    concept: str = Field(..., min_length=1, description="Answer concept code")
    label: str = Field(default="", description="Human-readable answer label")


class QuestionOptions(BaseModel):
    """Rendering hint and concept binding of a question."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    rendering: str = Field(..., description="Widget hint, e.g. 'radio', 'text', 'toggle'")
    concept: str | None = Field(default=None, description="Question concept code")
    answers: list[AnswerOption] = Field(default_factory=list)
    min: float | None = Field(default=None, description="Lower bound for numeric answers")
    max: float | None = Field(default=None, description="Upper bound for numeric answers")
    max_length: int | None = Field(default=None, alias="maxLength", ge=0)

    def answer_label(self, concept: str) -> str | None:
        """Return the label of the answer whose concept matches, if any."""
        for answer in self.answers:
            if answer.concept == concept:
                return answer.label
        return None


class HideRule(BaseModel):
    """Conditional visibility rule attached to a page, section, or field."""

    model_config = ConfigDict(populate_by_name=True)

    hide_when_expression: str = Field(..., alias="hideWhenExpression", min_length=1)


class ValidatorSpec(BaseModel):
    """Declarative validation rule sourced from the field's schema fragment."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str = Field(..., description="Validator type: required, range, regex, length, date")
    min: float | None = None
    max: float | None = None
    pattern: str | None = None
    max_length: int | None = Field(default=None, alias="maxLength", ge=0)
    message: str | None = None
    allow_future_dates: bool = Field(default=False, alias="allowFutureDates")


class FieldSubmission(BaseModel):
    """Transient per-field submission state."""

    errors: list[ValidationError] = Field(default_factory=list)
    unspecified: bool = False


class FormField(BaseModel):
    """A single question of the form."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(..., min_length=1)
    label: str = Field(default="")
    type: str = Field(..., description="Question type, e.g. 'obs' or 'encounterLocation'")
    question_options: QuestionOptions = Field(..., alias="questionOptions")
    hide: HideRule | None = None
    required: bool = False
    unspecified: bool = False
    disabled: bool = False
    validators: list[ValidatorSpec] = Field(default_factory=list)

    is_hidden: bool = Field(default=False, exclude=True)
    value: Any = Field(default=None, exclude=True)
    submission: FieldSubmission = Field(default_factory=FieldSubmission, exclude=True)
    config_error: str | None = Field(default=None, exclude=True)

    @property
    def rendering(self) -> str:
        return self.question_options.rendering

    @property
    def concept(self) -> str | None:
        return self.question_options.concept

    @property
    def is_numeric(self) -> bool:
        return self.rendering in NUMERIC_RENDERINGS


class FormSection(BaseModel):
    """An ordered group of questions within a page."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    label: str = Field(..., min_length=1)
    is_expanded: bool = Field(default=True, alias="isExpanded")
    hide: HideRule | None = None
    questions: list[FormField] = Field(default_factory=list)

    is_hidden: bool = Field(default=False, exclude=True)


class FormPage(BaseModel):
    """An ordered group of sections."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    label: str = Field(..., min_length=1)
    hide: HideRule | None = None
    sections: list[FormSection] = Field(default_factory=list)

    is_hidden: bool = Field(default=False, exclude=True)


class FormSchema(BaseModel):
    """Complete declarative form definition."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str = Field(..., min_length=1)
    uuid: str | None = None
    encounter_type: str | None = Field(default=None, alias="encounterType")
    allow_unspecified_all: bool = Field(default=False, alias="allowUnspecifiedAll")
    pages: list[FormPage] = Field(default_factory=list)

    def iter_sections(self) -> Iterator[FormSection]:
        for page in self.pages:
            yield from page.sections

    def iter_fields(self) -> Iterator[FormField]:
        """Yield every question in document order."""
        for section in self.iter_sections():
            yield from section.questions

    @property
    def total_fields(self) -> int:
        return sum(len(section.questions) for section in self.iter_sections())
