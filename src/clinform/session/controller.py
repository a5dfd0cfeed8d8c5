"""Form state controller.

Owns the answer state of one form session and orchestrates the other
components: the normalizer seeds state, the evaluator and dependency
tracker keep visibility consistent as answers change, the validator gates
submission, and handlers reduce answers into the encounter payload handed
to the save collaborator.

All state changes happen synchronously on the caller's thread. A value
change re-evaluates every dependant against the same snapshot and commits
the new ``is_hidden`` flags together before subscribers are notified.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from clinform.config import EngineConfig
from clinform.errors import FetchError, OperationCancelled, ReadOnlySessionError
from clinform.expressions.dependencies import EntityKind, EntityRef
from clinform.expressions.evaluator import is_empty
from clinform.handlers.base import EncounterContext, FieldHandler
from clinform.handlers.encounter import encounter_type_uuid
from clinform.handlers.registry import OBS_TYPE, HandlerRegistry
from clinform.models.encounter import (
    Encounter,
    EncounterPayload,
    EncounterProvider,
    Observation,
)
from clinform.models.schema import FormField, FormPage, FormSchema, FormSection, HideRule
from clinform.models.session import ChangeSet, LoadState, SessionMode, SubmissionResult
from clinform.models.validation import ValidationError
from clinform.schema.normalizer import FormSchemaNormalizer, NormalizedForm
from clinform.session.cancellation import CancellationToken
from clinform.session.collaborators import EncounterFetcher, EncounterSaver, SessionProvider
from clinform.validation.engine import FormValidator, unspecified_key

ChangeListener = Callable[[ChangeSet], None]


class FormStateController:
    """Runs one form session in enter, edit, or view mode.

    Args:
        schema: Form schema source (path, JSON text, dict, or FormSchema).
        mode: Session mode. Defaults to EDIT when ``encounter_uuid`` is
            given, ENTER otherwise.
        patient_uuid: Patient the encounter belongs to.
        encounter_uuid: Existing encounter to hydrate (edit/view).
        fetcher: Encounter fetch collaborator, required with ``encounter_uuid``.
        saver: Encounter save collaborator, required to submit.
        session_provider: Supplies the current provider and default location.
        config: Engine configuration.
        registry: Handler registry override.
        validator: Validator override.
    """

    def __init__(
        self,
        schema: Path | str | dict[str, Any] | FormSchema,
        *,
        mode: SessionMode | None = None,
        patient_uuid: str | None = None,
        encounter_uuid: str | None = None,
        fetcher: EncounterFetcher | None = None,
        saver: EncounterSaver | None = None,
        session_provider: SessionProvider | None = None,
        config: EngineConfig | None = None,
        registry: HandlerRegistry | None = None,
        validator: FormValidator | None = None,
    ) -> None:
        if mode is None:
            mode = SessionMode.EDIT if encounter_uuid else SessionMode.ENTER
        if mode == SessionMode.EDIT and not encounter_uuid:
            msg = "Edit sessions require an encounter_uuid"
            raise ValueError(msg)
        if encounter_uuid and fetcher is None:
            msg = "An encounter fetcher is required to hydrate an existing encounter"
            raise ValueError(msg)

        self.mode = mode
        self.patient_uuid = patient_uuid
        self.encounter_uuid = encounter_uuid
        self.config = config or EngineConfig()
        self._schema_source = schema
        self._normalizer = FormSchemaNormalizer(self.config, registry)
        self._validator = validator or FormValidator()
        self._fetcher = fetcher
        self._saver = saver
        self._session_provider = session_provider

        self.state = LoadState.PENDING
        self.load_error: FetchError | None = None
        self.completed = False
        self.encounter_date = datetime.now()
        self.provider: str | None = None
        self.location: str | None = None

        self._form: NormalizedForm | None = None
        self._encounter: Encounter | None = None
        self._values: dict[str, Any] = {}
        self._listeners: list[ChangeListener] = []
        self._hydration_token: CancellationToken | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self, cancel_token: CancellationToken | None = None) -> LoadState:
        """Hydrate the session.

        Reads session defaults, fetches the existing encounter when one is
        bound, normalizes the schema, and seeds the answer state. A failed
        fetch leaves the session in ``LoadState.FAILED``; calling load()
        again retries.
        """
        token = cancel_token or CancellationToken()
        self._hydration_token = token
        self.load_error = None

        if self._session_provider is not None:
            self.provider = self._session_provider.current_provider()
            self.location = self._session_provider.default_location()

        encounter: Encounter | None = None
        if self.encounter_uuid and self._fetcher is not None:
            try:
                encounter = self._fetcher.fetch_encounter(
                    self.encounter_uuid, self.config.encounter_representation, token
                )
                token.raise_if_cancelled()
            except OperationCancelled:
                logger.info("Hydration of encounter {} cancelled", self.encounter_uuid)
                return self.state
            except FetchError as exc:
                logger.error("Failed to load encounter {}: {}", self.encounter_uuid, exc)
                self.state = LoadState.FAILED
                self.load_error = exc
                return self.state

        self._encounter = encounter
        if encounter is not None and encounter.location is not None:
            self.location = encounter.location.uuid

        self._form = self._normalizer.normalize(self._schema_source, encounter)
        self._values = dict(self._form.initial_values)
        self.state = LoadState.LOADED
        logger.info(
            "Loaded form '{}' in {} mode ({} fields)",
            self._form.form.name,
            self.mode,
            len(self._form.fields),
        )
        return self.state

    def close(self) -> None:
        """Tear down the session, cancelling any in-flight hydration."""
        if self._hydration_token is not None:
            self._hydration_token.cancel()
        self._listeners.clear()

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def form(self) -> NormalizedForm:
        if self._form is None:
            msg = f"Form session is not loaded (state: {self.state})"
            raise RuntimeError(msg)
        return self._form

    @property
    def schema(self) -> FormSchema:
        return self.form.form

    @property
    def encounter(self) -> Encounter | None:
        return self._encounter

    @property
    def values(self) -> dict[str, Any]:
        """Copy of the current answer state."""
        return dict(self._values)

    @property
    def context(self) -> EncounterContext:
        return EncounterContext(
            patient=self.patient_uuid,
            encounter=self._encounter,
            location=self.location,
            session_mode=self.mode,
            date=self.encounter_date,
        )

    def value_of(self, field_id: str) -> Any:
        self.field(field_id)
        return self._values.get(field_id)

    def field(self, field_id: str) -> FormField:
        try:
            return self.form.fields_by_id[field_id]
        except KeyError:
            msg = f"Unknown field {field_id!r}"
            raise KeyError(msg) from None

    def page(self, label: str) -> FormPage:
        return self.form.pages_by_label[label]

    def section(self, label: str) -> FormSection:
        return self.form.sections_by_label[label]

    def handler(self, field_id: str) -> FieldHandler | None:
        return self.form.handler_for(field_id)

    def is_visible(self, field: FormField) -> bool:
        """A field is visible when it and its section and page are not hidden."""
        if field.is_hidden:
            return False
        section_label = self.form.section_of_field.get(field.id)
        if section_label is None:
            return True
        if self.form.sections_by_label[section_label].is_hidden:
            return False
        page_label = self.form.page_of_section.get(section_label)
        return page_label is None or not self.form.pages_by_label[page_label].is_hidden

    def visible_fields(self) -> list[FormField]:
        return [
            f for f in self.form.fields if f.config_error is None and self.is_visible(f)
        ]

    def visible_pages(self) -> list[FormPage]:
        return [p for p in self.schema.pages if not p.is_hidden]

    def visible_sections(self, page_label: str | None = None) -> list[FormSection]:
        pages = [self.page(page_label)] if page_label else self.visible_pages()
        return [s for p in pages for s in p.sections if not s.is_hidden]

    def display_value(self, field_id: str) -> str:
        """Human-readable rendering of a field's current answer."""
        field = self.field(field_id)
        handler = self.handler(field_id)
        if handler is None:
            return ""
        return handler.get_display_value(field, self._values.get(field_id))

    def display_values(self) -> dict[str, str]:
        """Display strings for every visible field, keyed by field id."""
        return {f.id: self.display_value(f.id) for f in self.visible_fields()}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _ensure_writable(self) -> None:
        if self.mode == SessionMode.VIEW:
            msg = "View sessions are read-only"
            raise ReadOnlySessionError(msg)
        if self.state != LoadState.LOADED:
            msg = f"Form session is not loaded (state: {self.state})"
            raise RuntimeError(msg)

    def set_value(self, field_id: str, value: Any) -> ChangeSet:
        """Commit a new answer and cascade visibility to its dependants.

        Returns:
            The entities whose state changed, including the field itself.

        Raises:
            ReadOnlySessionError: In view mode.
            KeyError: If the field does not exist.
        """
        self._ensure_writable()
        field = self.field(field_id)
        self._values[field_id] = value
        changes = ChangeSet(field_id=field_id, fields={field_id})

        if unspecified_key(field_id) in self._values and not is_empty(value):
            self._values[unspecified_key(field_id)] = False
            field.submission.unspecified = False

        self._cascade(field_id, value, changes)
        self._refresh_field(field, value)
        self._notify(changes)
        return changes

    def set_unspecified(self, field_id: str, unspecified: bool) -> ChangeSet:
        """Toggle a field's 'unspecified' companion.

        Marking a field unspecified clears its answer and its errors.
        """
        self._ensure_writable()
        field = self.field(field_id)
        if not (field.unspecified or self.schema.allow_unspecified_all):
            msg = f"Field {field_id!r} does not allow an unspecified answer"
            raise ValueError(msg)
        self._values[unspecified_key(field_id)] = unspecified
        field.submission.unspecified = unspecified
        changes = ChangeSet(field_id=field_id, fields={field_id})
        if unspecified:
            handler = self.handler(field_id)
            self._values[field_id] = handler.blank_value(field) if handler else ""
            field.submission.errors = []
        # dependants of the field also read its companion
        self._cascade(field_id, self._values.get(field_id), changes)
        self._notify(changes)
        return changes

    def mark_all_unspecified(self) -> list[str]:
        """Mark every empty field that allows it as unspecified.

        Returns:
            Ids of the fields that were marked.
        """
        self._ensure_writable()
        marked: list[str] = []
        for field in self.visible_fields():
            if not (field.unspecified or self.schema.allow_unspecified_all):
                continue
            if is_empty(self._values.get(field.id)):
                self.set_unspecified(field.id, True)
                marked.append(field.id)
        return marked

    def _entity(self, ref: EntityRef) -> FormField | FormSection | FormPage | None:
        if ref.kind == EntityKind.FIELD:
            return self.form.fields_by_id.get(ref.key)
        if ref.kind == EntityKind.SECTION:
            return self.form.sections_by_label.get(ref.key)
        return self.form.pages_by_label.get(ref.key)

    def _cascade(self, field_id: str, value: Any, changes: ChangeSet) -> None:
        form = self.form
        overrides = {field_id: value}
        pending: list[tuple[EntityRef, FormField | FormSection | FormPage, bool]] = []
        for ref in form.tracker.dependants_of(field_id).refs():
            entity = self._entity(ref)
            hide: HideRule | None = getattr(entity, "hide", None)
            if entity is None or hide is None:
                continue
            outcome = form.evaluator.is_hidden(
                hide.hide_when_expression, self._values, target=ref, overrides=overrides
            )
            if outcome.error is not None:
                form.evaluation_errors.append(outcome.error)
            pending.append((ref, entity, outcome.hidden))

        # commit all flags together so no dependant sees a half-updated form
        for ref, entity, hidden in pending:
            if entity.is_hidden == hidden:
                continue
            entity.is_hidden = hidden
            if ref.kind == EntityKind.FIELD:
                changes.fields.add(ref.key)
            elif ref.kind == EntityKind.SECTION:
                changes.sections.add(ref.key)
            else:
                changes.pages.add(ref.key)
            logger.debug("{} {} is now {}", ref.kind, ref.key, "hidden" if hidden else "visible")

    def _refresh_field(self, field: FormField, value: Any) -> None:
        if self._validator.is_eligible(field, self._values) and self.is_visible(field):
            field.submission.errors = self._validator.validate_field(field, value)
        else:
            field.submission.errors = []
        handler = self.handler(field.id)
        if handler is not None:
            handler.handle_field_submission(field, value, self.context)

    def _notify(self, changes: ChangeSet) -> None:
        for listener in list(self._listeners):
            listener(changes)

    # ------------------------------------------------------------------
    # Validation and submission
    # ------------------------------------------------------------------

    def validate(self) -> dict[str, list[ValidationError]]:
        """Validate all eligible fields and stamp errors onto them."""
        fields = [f for f in self.form.fields if self.is_visible(f)]
        errors = self._validator.validate(fields, self._values)
        for field in self.form.fields:
            field.submission.errors = errors.get(field.id, [])
        return errors

    def collect_observations(self) -> list[Observation]:
        """Reduce visible observation fields into a flat observation list.

        Each handler's submission result is written to ``field.value`` and
        read back here; multi-valued answers contribute one entry each.
        """
        observations: list[Observation] = []
        context = self.context
        for field in self.visible_fields():
            if field.type != OBS_TYPE:
                continue
            handler = self.handler(field.id)
            if handler is None:
                continue
            handler.handle_field_submission(field, self._values.get(field.id), context)
            if not field.value:
                continue
            if isinstance(field.value, list):
                observations.extend(field.value)
            else:
                observations.append(field.value)
        return observations

    def _encounter_attributes(self) -> dict[str, Any]:
        attributes: dict[str, Any] = {}
        context = self.context
        for field in self.visible_fields():
            handler = self.handler(field.id)
            if handler is None or handler.encounter_attribute is None:
                continue
            handler.handle_field_submission(field, self._values.get(field.id), context)
            if field.value is not None:
                attributes[handler.encounter_attribute] = field.value
        return attributes

    def build_payload(self, now: datetime | None = None) -> EncounterPayload:
        """Assemble the encounter payload from the current answers.

        Edit sessions patch a clone of the fetched encounter, keeping its
        attributes and appending the current provider when absent. Enter
        sessions build a fresh payload.
        """
        observations = self.collect_observations()
        attributes = self._encounter_attributes()
        location = attributes.get("location") or self.location
        provider = attributes.get("provider") or self.provider

        if self._encounter is not None:
            data = self._encounter.model_dump(by_alias=True, exclude_none=True)
            data["location"] = location
            data["encounterType"] = encounter_type_uuid(self._encounter)
            data["patient"] = (
                self._encounter.patient.uuid if self._encounter.patient else self.patient_uuid
            )
            data["obs"] = []
            payload = EncounterPayload.model_validate(data)
            if "encounter_datetime" in attributes:
                payload.encounter_datetime = str(attributes["encounter_datetime"])
            if provider and not payload.has_provider(provider):
                payload.encounter_providers.append(
                    EncounterProvider(provider=provider, encounter_role=self.config.encounter_role)
                )
            payload.obs = observations
            return payload

        encounter_datetime = attributes.get("encounter_datetime") or (
            now or self.encounter_date
        ).isoformat()
        return EncounterPayload(
            patient=self.patient_uuid,
            encounter_datetime=str(encounter_datetime),
            location=location,
            encounter_type=self.schema.encounter_type or self.config.default_encounter_type,
            encounter_providers=(
                [EncounterProvider(provider=provider, encounter_role=self.config.encounter_role)]
                if provider
                else []
            ),
            form=self.schema.uuid,
            obs=observations,
        )

    def submit(self, cancel_token: CancellationToken | None = None) -> SubmissionResult:
        """Validate, assemble, and save the encounter.

        Submission is blocked when any eligible field has errors. Success
        is reported only when the saver explicitly returns ``ok``; on any
        failure the answer state is left untouched.

        Raises:
            ReadOnlySessionError: In view mode.
        """
        self._ensure_writable()
        if self._saver is None:
            msg = "An encounter saver is required to submit"
            raise ValueError(msg)

        errors = self.validate()
        if errors:
            return SubmissionResult(
                ok=False,
                errors=errors,
                message=f"{sum(len(e) for e in errors.values())} field(s) need attention",
            )

        payload = self.build_payload()
        token = cancel_token or CancellationToken()
        try:
            token.raise_if_cancelled()
            result = self._saver.save_encounter(token, payload, self.encounter_uuid)
        except OperationCancelled:
            logger.info("Submission of form '{}' cancelled", self.schema.name)
            return SubmissionResult(ok=False, payload=payload, message="Submission cancelled")
        except FetchError as exc:
            logger.error("Saving encounter failed: {}", exc)
            return SubmissionResult(ok=False, payload=payload, message=f"Save failed: {exc}")

        if not result.ok:
            logger.error("Encounter save rejected (status {}): {}", result.status_code, result.message)
            return SubmissionResult(
                ok=False,
                payload=payload,
                resource=result.resource,
                message=result.message or f"Save failed with status {result.status_code}",
            )

        if self.mode == SessionMode.EDIT:
            self.completed = True
        message = "Record updated" if self.encounter_uuid else "Record created"
        logger.info("{} for form '{}' ({} observations)", message, self.schema.name, len(payload.obs))
        return SubmissionResult(ok=True, payload=payload, resource=result.resource, message=message)
