"""Engine configuration.

Concept codes, encounter defaults, and REST settings are carried on an
explicit EngineConfig that is injected into the evaluator, normalizer,
handlers, and controller.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REPRESENTATION = (
    "custom:(uuid,encounterDatetime,encounterType,location:(uuid,name),"
    "patient:(uuid,display),encounterProviders:(uuid,provider:(uuid,name),"
    "encounterRole:(uuid,name)),obs:(uuid,obsDatetime,concept:(uuid,name:(uuid,name)),"
    "value:ref,groupMembers))"
)


class EngineConfig(BaseSettings):
    """Settings shared by every component of the engine.

    Every field can be overridden by an upper-cased CLINFORM_ environment
    variable, e.g. ``CLINFORM_CONCEPT_TRUE`` or ``CLINFORM_BASE_URL``.
    """

    model_config = SettingsConfigDict(env_prefix="CLINFORM_", extra="ignore")

    concept_true: str = Field(
        default="1065AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA",
        description="Canonical 'Yes' concept code used for toggle answers",
    )
    concept_false: str = Field(
        default="1066AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA",
        description="Canonical 'No' concept code used for toggle answers",
    )
    default_encounter_type: str = Field(
        default="30b849bd-c4f4-4254-a033-fe9cf01001d8",
        description="Encounter type used when the schema does not declare one",
    )
    encounter_role: str = Field(
        default="240b26f9-dd88-4172-823d-4a8bfeb7841f",
        description="Encounter role assigned to providers added by the engine",
    )
    encounter_representation: str = Field(
        default=DEFAULT_REPRESENTATION,
        description="REST representation requested when hydrating an encounter",
    )
    base_url: str = Field(
        default="http://localhost:8080/openmrs",
        description="Base URL of the encounter REST service",
    )
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1)

    @field_validator("concept_true", "concept_false")
    @classmethod
    def concept_not_blank(cls, v: str) -> str:
        """Concept codes are used as comparison literals and must be non-blank."""
        if not v.strip():
            msg = "concept codes must not be blank"
            raise ValueError(msg)
        return v

    @classmethod
    def from_file(cls, path: Path) -> EngineConfig:
        """Load configuration from a JSON file.

        Values in the file take precedence over CLINFORM_* variables, which
        still fill any field the file leaves out.

        Args:
            path: JSON file whose keys match EngineConfig field names.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        return cls(**json.loads(path.read_text()))

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Build configuration from CLINFORM_* environment variables alone."""
        return cls()
