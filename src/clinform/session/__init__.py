"""Form session orchestration: controller, collaborators, and cancellation."""

from clinform.session.cancellation import CancellationToken
from clinform.session.collaborators import (
    EncounterFetcher,
    EncounterSaver,
    SessionProvider,
    StaticSessionProvider,
)
from clinform.session.controller import FormStateController

__all__ = [
    "CancellationToken",
    "EncounterFetcher",
    "EncounterSaver",
    "FormStateController",
    "SessionProvider",
    "StaticSessionProvider",
]
