"""Per-question-type handlers and their registry."""

from clinform.handlers.base import EncounterContext, FieldHandler, find_existing_obs
from clinform.handlers.encounter import (
    EncounterAttributeHandler,
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
from clinform.handlers.registry import HandlerRegistry, default_registry, handler_key

__all__ = [
    "EncounterContext",
    "FieldHandler",
    "find_existing_obs",
    "SimpleAnswerHandler",
    "SingleChoiceHandler",
    "MultiChoiceHandler",
    "ToggleHandler",
    "EncounterAttributeHandler",
    "EncounterLocationHandler",
    "EncounterProviderHandler",
    "EncounterDatetimeHandler",
    "HandlerRegistry",
    "default_registry",
    "handler_key",
]
