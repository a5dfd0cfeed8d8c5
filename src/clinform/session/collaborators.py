"""Interfaces of the external collaborators a form session depends on.

The controller only talks to these protocols. ``clinform.resources``
provides a REST implementation and a JSON-file implementation.
"""

from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel

from clinform.models.encounter import Encounter, EncounterPayload, SaveResult
from clinform.session.cancellation import CancellationToken


class EncounterFetcher(Protocol):
    def fetch_encounter(
        self,
        encounter_uuid: str,
        representation: str,
        cancel_token: CancellationToken,
    ) -> Encounter:
        """Fetch an existing encounter.

        Raises:
            FetchError: If the encounter cannot be retrieved.
            OperationCancelled: If ``cancel_token`` fires first.
        """
        ...


class EncounterSaver(Protocol):
    def save_encounter(
        self,
        cancel_token: CancellationToken,
        payload: EncounterPayload,
        encounter_uuid: str | None = None,
    ) -> SaveResult:
        """Create (no uuid) or update (uuid) an encounter."""
        ...


class SessionProvider(Protocol):
    def current_provider(self) -> str | None:
        """Uuid of the authenticated provider."""
        ...

    def default_location(self) -> str | None:
        """Uuid of the session's default location."""
        ...


class StaticSessionProvider(BaseModel):
    """Session provider with fixed values, for the CLI and tests."""

    provider_uuid: str | None = None
    location_uuid: str | None = None

    def current_provider(self) -> str | None:
        return self.provider_uuid

    def default_location(self) -> str | None:
        return self.location_uuid
