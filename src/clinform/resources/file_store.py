"""JSON-file implementation of the encounter collaborators.

Encounters live as ``<uuid>.json`` documents in one directory. Used by the
CLI to hydrate from exported encounters and to persist filled forms
without a server.
"""

from __future__ import annotations

import json
import uuid
from pathlib import Path
from typing import Any

import pydantic

from clinform.errors import FetchError
from clinform.models.encounter import Encounter, EncounterPayload, SaveResult
from clinform.session.cancellation import CancellationToken


def _as_resource(payload: EncounterPayload, record_uuid: str) -> dict[str, Any]:
    """Shape a payload the way the REST service returns the saved encounter.

    References are expanded to objects, observations get uuids, and voided
    observations are dropped.
    """
    data = payload.to_request()
    data["uuid"] = record_uuid
    for key in ("patient", "location", "encounterType"):
        if isinstance(data.get(key), str):
            data[key] = {"uuid": data[key]}
    data["obs"] = [
        {**obs, "uuid": obs.get("uuid") or str(uuid.uuid4()), "concept": {"uuid": obs["concept"]}}
        for obs in data.get("obs", [])
        if not obs.get("voided")
    ]
    return data


class FileEncounterStore:
    """Directory of encounter JSON documents."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def _path_for(self, encounter_uuid: str) -> Path | None:
        direct = self.directory / f"{encounter_uuid}.json"
        if direct.exists():
            return direct
        if not self.directory.is_dir():
            return None
        for path in sorted(self.directory.glob("*.json")):
            try:
                data = json.loads(path.read_text())
            except (OSError, json.JSONDecodeError):
                continue
            if isinstance(data, dict) and data.get("uuid") == encounter_uuid:
                return path
        return None

    def fetch_encounter(
        self,
        encounter_uuid: str,
        representation: str,
        cancel_token: CancellationToken,
    ) -> Encounter:
        cancel_token.raise_if_cancelled()
        path = self._path_for(encounter_uuid)
        if path is None:
            msg = f"Encounter {encounter_uuid} not found in {self.directory}"
            raise FetchError(msg, status_code=404)
        try:
            return Encounter.model_validate_json(path.read_text())
        except pydantic.ValidationError as exc:
            msg = f"{path} is not a valid encounter document"
            raise FetchError(msg) from exc

    def save_encounter(
        self,
        cancel_token: CancellationToken,
        payload: EncounterPayload,
        encounter_uuid: str | None = None,
    ) -> SaveResult:
        cancel_token.raise_if_cancelled()
        record_uuid = encounter_uuid or payload.uuid or str(uuid.uuid4())
        data = _as_resource(payload, record_uuid)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            (self.directory / f"{record_uuid}.json").write_text(json.dumps(data, indent=2))
        except OSError as exc:
            msg = f"Could not write encounter {record_uuid}: {exc}"
            raise FetchError(msg) from exc
        return SaveResult(ok=True, status_code=200 if encounter_uuid else 201, resource=data)
