"""Form schema normalization.

Turns a raw JSON form definition into the internal model used by the
controller: every page, section, and field gets an explicit ``is_hidden``
flag, every field is bound to its handler, and the initial answer state is
seeded either from an existing encounter (edit/view) or from blank
defaults (enter).

Configuration problems (unknown type tags, duplicate keys, malformed
hide-expressions, regex validators that do not compile) are collected per
entity so one bad question does not prevent the rest of the form from
loading. Pass ``strict=True`` to raise instead.
"""

from __future__ import annotations

import copy
import json
import re
from pathlib import Path
from typing import Any

import pydantic
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from clinform.config import EngineConfig
from clinform.errors import EvaluationError, SchemaConfigurationError
from clinform.expressions.dependencies import DependencyTracker, EntityRef
from clinform.expressions.evaluator import ExpressionEvaluator, is_empty
from clinform.expressions.parser import parse
from clinform.handlers.base import FieldHandler
from clinform.handlers.registry import HandlerRegistry, default_registry
from clinform.models.encounter import Encounter
from clinform.models.schema import FormField, FormPage, FormSchema, FormSection, HideRule
from clinform.validation.engine import unspecified_key


class NormalizedForm(BaseModel):
    """Internal form model produced by FormSchemaNormalizer.

    Field, page, and section objects are shared between the schema tree and
    the lookup tables, so flags set through one are visible through the
    other.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    form: FormSchema
    fields: list[FormField] = Field(default_factory=list)
    fields_by_id: dict[str, FormField] = Field(default_factory=dict)
    pages_by_label: dict[str, FormPage] = Field(default_factory=dict)
    sections_by_label: dict[str, FormSection] = Field(default_factory=dict)
    section_of_field: dict[str, str] = Field(default_factory=dict)
    page_of_section: dict[str, str] = Field(default_factory=dict)
    handlers: dict[str, FieldHandler] = Field(default_factory=dict)
    initial_values: dict[str, Any] = Field(default_factory=dict)
    tracker: DependencyTracker
    evaluator: ExpressionEvaluator
    configuration_errors: list[SchemaConfigurationError] = Field(default_factory=list)
    evaluation_errors: list[EvaluationError] = Field(default_factory=list)

    def handler_for(self, field_id: str) -> FieldHandler | None:
        return self.handlers.get(field_id)


def load_schema(source: Path | str | dict[str, Any] | FormSchema) -> FormSchema:
    """Load a FormSchema from a path, JSON text, dict, or existing model.

    Input objects are deep-copied so normalization never mutates them.

    Raises:
        FileNotFoundError: If a path is given and does not exist.
        SchemaConfigurationError: If the document is not a valid form schema.
    """
    if isinstance(source, FormSchema):
        return source.model_copy(deep=True)
    if isinstance(source, Path):
        if not source.exists():
            msg = f"Form schema not found: {source}"
            raise FileNotFoundError(msg)
        source = source.read_text()
    try:
        data = json.loads(source) if isinstance(source, str) else copy.deepcopy(source)
        return FormSchema.model_validate(data)
    except pydantic.ValidationError as exc:
        msg = f"Invalid form schema: {exc.error_count()} problem(s)\n{exc}"
        raise SchemaConfigurationError(msg) from exc
    except json.JSONDecodeError as exc:
        msg = f"Form schema is not valid JSON: {exc}"
        raise SchemaConfigurationError(msg) from exc


class FormSchemaNormalizer:
    """Builds NormalizedForm instances from raw schemas.

    Args:
        config: Engine configuration (toggle concepts and defaults).
        registry: Handler registry; the built-in registry when omitted.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        registry: HandlerRegistry | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.registry = registry or default_registry(self.config)

    def normalize(
        self,
        raw: Path | str | dict[str, Any] | FormSchema,
        encounter: Encounter | None = None,
        *,
        strict: bool = False,
    ) -> NormalizedForm:
        """Normalize a schema and compute initial answers and visibility.

        Args:
            raw: The schema source (see load_schema).
            encounter: Existing encounter to hydrate answers from, if any.
            strict: Raise the first configuration error instead of
                recording it.

        Returns:
            The normalized form.

        Raises:
            SchemaConfigurationError: If the schema is structurally invalid,
                or on any configuration error when ``strict`` is set.
        """
        form = load_schema(raw)
        tracker = DependencyTracker()
        fields_by_id: dict[str, FormField] = {}
        normalized = NormalizedForm(
            form=form,
            tracker=tracker,
            evaluator=ExpressionEvaluator(self.config, fields_by_id, tracker),
        )
        # evaluator must see the same mapping the form exposes
        normalized.fields_by_id = fields_by_id

        self._index(normalized)
        self._bind_handlers(normalized)
        self._check_expressions(normalized)
        self._check_validators(normalized)

        if strict and normalized.configuration_errors:
            raise normalized.configuration_errors[0]

        normalized.initial_values = self._initial_values(normalized, encounter)
        self._compute_visibility(normalized)

        logger.info(
            "Normalized form '{}': {} pages, {} fields, {} configuration error(s)",
            form.name,
            len(form.pages),
            len(normalized.fields),
            len(normalized.configuration_errors),
        )
        return normalized

    def _record(self, normalized: NormalizedForm, message: str, entity: str) -> None:
        logger.error("Schema configuration error for {}: {}", entity, message)
        normalized.configuration_errors.append(SchemaConfigurationError(message, entity=entity))

    def _index(self, normalized: NormalizedForm) -> None:
        for page in normalized.form.pages:
            if page.label in normalized.pages_by_label:
                self._record(normalized, f"Duplicate page label {page.label!r}", page.label)
            else:
                normalized.pages_by_label[page.label] = page
            for section in page.sections:
                if section.label in normalized.sections_by_label:
                    self._record(
                        normalized, f"Duplicate section label {section.label!r}", section.label
                    )
                else:
                    normalized.sections_by_label[section.label] = section
                    normalized.page_of_section[section.label] = page.label
                for field in section.questions:
                    normalized.fields.append(field)
                    if field.id in normalized.fields_by_id:
                        field.config_error = f"Duplicate field id {field.id!r}"
                        self._record(normalized, field.config_error, field.id)
                        continue
                    normalized.fields_by_id[field.id] = field
                    normalized.section_of_field[field.id] = section.label

    def _bind_handlers(self, normalized: NormalizedForm) -> None:
        for field in normalized.fields:
            if field.config_error is not None:
                continue
            try:
                normalized.handlers[field.id] = self.registry.resolve(field)
            except SchemaConfigurationError as exc:
                field.config_error = str(exc)
                self._record(normalized, str(exc), field.id)

    def _check_expressions(self, normalized: NormalizedForm) -> None:
        entities: list[tuple[str, HideRule | None]] = [
            (f"page {p.label}", p.hide) for p in normalized.form.pages
        ]
        entities += [(f"section {s.label}", s.hide) for s in normalized.form.iter_sections()]
        entities += [(f"field {f.id}", f.hide) for f in normalized.fields]
        for entity, hide in entities:
            if hide is None:
                continue
            try:
                parse(hide.hide_when_expression)
            except EvaluationError as exc:
                self._record(normalized, f"Malformed hide-expression: {exc}", entity)

    def _check_validators(self, normalized: NormalizedForm) -> None:
        for field in normalized.fields:
            if field.config_error is not None:
                continue
            for spec in field.validators:
                if spec.type != "regex" or not spec.pattern:
                    continue
                try:
                    re.compile(spec.pattern)
                except re.error as exc:
                    field.config_error = f"Invalid regex {spec.pattern!r}: {exc}"
                    self._record(normalized, field.config_error, field.id)
                    break

    def _initial_values(
        self,
        normalized: NormalizedForm,
        encounter: Encounter | None,
    ) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for field in normalized.fields:
            if field.id in values:
                continue
            handler = normalized.handler_for(field.id)
            blank: Any = handler.blank_value(field) if handler else ""
            existing = None
            if encounter is not None and handler is not None:
                existing = handler.get_initial_value(encounter, field)
            values[field.id] = blank if existing is None or existing == "" else existing
            if field.unspecified or normalized.form.allow_unspecified_all:
                # Heuristic: with an encounter, "no saved value" reads as unspecified.
                unspecified = encounter is not None and is_empty(existing)
                values[unspecified_key(field.id)] = unspecified
                field.submission.unspecified = unspecified
        return values

    def _compute_visibility(self, normalized: NormalizedForm) -> None:
        evaluator = normalized.evaluator
        values = normalized.initial_values

        def hidden(hide: HideRule | None, target: EntityRef) -> bool:
            if hide is None:
                return False
            outcome = evaluator.is_hidden(hide.hide_when_expression, values, target=target)
            if outcome.error is not None:
                normalized.evaluation_errors.append(outcome.error)
            return outcome.hidden

        for field in normalized.fields:
            field.is_hidden = hidden(field.hide, EntityRef.field(field.id))
        for section in normalized.form.iter_sections():
            section.is_hidden = hidden(section.hide, EntityRef.section(section.label))
        for page in normalized.form.pages:
            page.is_hidden = hidden(page.hide, EntityRef.page(page.label))
