"""Registry mapping question type tags to field handlers.

Observation questions (``type: obs``) are keyed by their rendering hint;
every other question is keyed by its type. Adding a question type means
registering one more handler, never touching the controller.
"""

from __future__ import annotations

from loguru import logger

from clinform.config import EngineConfig
from clinform.errors import SchemaConfigurationError
from clinform.handlers.base import FieldHandler
from clinform.handlers.encounter import (
    EncounterDatetimeHandler,
    EncounterLocationHandler,
    EncounterProviderHandler,
)
from clinform.handlers.obs import (
    MultiChoiceHandler,
    SimpleAnswerHandler,
    SingleChoiceHandler,
    ToggleHandler,
)
from clinform.models.schema import FormField

OBS_TYPE = "obs"


def handler_key(field_type: str, rendering: str) -> str:
    """Registry tag for a question: rendering for obs, type otherwise."""
    return rendering if field_type == OBS_TYPE else field_type


class HandlerRegistry:
    """Dispatch table from type tag to FieldHandler."""

    def __init__(self) -> None:
        self._handlers: dict[str, FieldHandler] = {}

    def register(self, tag: str, handler: FieldHandler) -> None:
        """Register (or replace) the handler for a tag."""
        if tag in self._handlers:
            logger.debug("Replacing handler for tag {}", tag)
        self._handlers[tag] = handler

    def get(self, tag: str) -> FieldHandler:
        """Look up a handler by tag.

        Raises:
            SchemaConfigurationError: If no handler is registered for the tag.
        """
        handler = self._handlers.get(tag)
        if handler is None:
            msg = f"No handler registered for question type {tag!r}"
            raise SchemaConfigurationError(msg, entity=tag)
        return handler

    def resolve(self, field: FormField) -> FieldHandler:
        """Handler for a question, keyed per handler_key()."""
        return self.get(handler_key(field.type, field.rendering))

    def tags(self) -> list[str]:
        """Return all registered tags, sorted."""
        return sorted(self._handlers)

    def __contains__(self, tag: object) -> bool:
        return tag in self._handlers


def default_registry(config: EngineConfig) -> HandlerRegistry:
    """Build a registry holding every built-in handler."""
    registry = HandlerRegistry()

    simple = SimpleAnswerHandler(config)
    for tag in ("text", "textarea", "number", "numeric", "date"):
        registry.register(tag, simple)

    single = SingleChoiceHandler(config)
    for tag in ("radio", "select", "content-switcher"):
        registry.register(tag, single)

    multi = MultiChoiceHandler(config)
    for tag in ("checkbox", "multiCheckbox"):
        registry.register(tag, multi)

    registry.register("toggle", ToggleHandler(config))

    location = EncounterLocationHandler(config)
    provider = EncounterProviderHandler(config)
    encounter_datetime = EncounterDatetimeHandler(config)
    for tag, handler in (
        ("encounterLocation", location),
        ("encounter-location", location),
        ("encounterProvider", provider),
        ("encounter-provider", provider),
        ("encounterDatetime", encounter_datetime),
        ("encounter-datetime", encounter_datetime),
    ):
        registry.register(tag, handler)
    return registry
