"""Encounter and observation models.

``Encounter`` is the read-only shape returned by the encounter fetch
collaborator. ``EncounterPayload`` is the persistence unit assembled on
submit: a fresh payload in enter mode, a patched clone of the fetched
encounter in edit mode. ``Observation`` is the per-answer unit produced by
field handlers.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

FORM_FIELD_NAMESPACE = "clinform"


def form_field_path(field_id: str) -> str:
    """Path stamped on observations so edits can match them back to a field."""
    return f"{FORM_FIELD_NAMESPACE}-{field_id}"


class Ref(BaseModel):
    """Reference to a REST resource (concept, location, patient, ...)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    uuid: str
    display: str | None = None
    name: Any = None


def ref_uuid(value: Ref | str | None) -> str | None:
    """Return the uuid of a reference or plain uuid string."""
    if value is None:
        return None
    if isinstance(value, Ref):
        return value.uuid
    return value


class ExistingObs(BaseModel):
    """An observation as returned inside a fetched encounter."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    uuid: str
    concept: Ref
    value: Ref | bool | int | float | str | None = None
    obs_datetime: str | None = Field(default=None, alias="obsDatetime")
    form_field_path: str | None = Field(default=None, alias="formFieldPath")
    group_members: list[ExistingObs] | None = Field(default=None, alias="groupMembers")

    @property
    def value_code(self) -> Any:
        """Coded answers resolve to their concept uuid; scalars are returned as is."""
        if isinstance(self.value, Ref):
            return self.value.uuid
        return self.value


class EncounterProvider(BaseModel):
    """A provider participating in an encounter, with their role."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    uuid: str | None = None
    provider: Ref | str
    encounter_role: Ref | str | None = Field(default=None, alias="encounterRole")

    @property
    def provider_uuid(self) -> str | None:
        return ref_uuid(self.provider)


class Encounter(BaseModel):
    """An existing encounter fetched for edit or view sessions."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    uuid: str
    encounter_datetime: str | None = Field(default=None, alias="encounterDatetime")
    encounter_type: Ref | str | None = Field(default=None, alias="encounterType")
    location: Ref | None = None
    patient: Ref | None = None
    encounter_providers: list[EncounterProvider] = Field(
        default_factory=list, alias="encounterProviders"
    )
    obs: list[ExistingObs] = Field(default_factory=list)

    def iter_obs(self) -> list[ExistingObs]:
        """Flatten obs groups into a single list of leaf observations."""
        flat: list[ExistingObs] = []
        stack = list(reversed(self.obs))
        while stack:
            obs = stack.pop()
            if obs.group_members:
                stack.extend(reversed(obs.group_members))
            else:
                flat.append(obs)
        return flat


class Observation(BaseModel):
    """One concept/value unit persisted as part of an encounter."""

    model_config = ConfigDict(populate_by_name=True)

    concept: str
    value: Any = None
    uuid: str | None = None
    voided: bool | None = None
    form_field_namespace: str | None = Field(default=None, alias="formFieldNamespace")
    form_field_path: str | None = Field(default=None, alias="formFieldPath")


class EncounterPayload(BaseModel):
    """Assembled create-or-update request body for an encounter."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    uuid: str | None = None
    patient: str | None = None
    encounter_datetime: str | None = Field(default=None, alias="encounterDatetime")
    encounter_type: str | None = Field(default=None, alias="encounterType")
    location: str | None = None
    encounter_providers: list[EncounterProvider] = Field(
        default_factory=list, alias="encounterProviders"
    )
    form: str | None = None
    obs: list[Observation] = Field(default_factory=list)

    def has_provider(self, provider_uuid: str) -> bool:
        return any(p.provider_uuid == provider_uuid for p in self.encounter_providers)

    def to_request(self) -> dict[str, Any]:
        """Serialize to the REST wire format (camelCase, no nulls)."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class SaveResult(BaseModel):
    """Outcome reported by the encounter save collaborator."""

    ok: bool
    status_code: int | None = None
    resource: dict[str, Any] | None = None
    message: str = ""
