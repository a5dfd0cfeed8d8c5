"""Concrete encounter collaborators: REST over httpx and a JSON-file store."""

from clinform.resources.encounter import EncounterResource
from clinform.resources.file_store import FileEncounterStore

__all__ = ["EncounterResource", "FileEncounterStore"]
