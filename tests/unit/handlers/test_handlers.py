"""Tests for the built-in field handlers.

Covers initial-value extraction from an existing encounter, submission
into Observations (including the ``field.value`` write), and display
rendering for each handler family.
"""

from __future__ import annotations

from typing import Any

import pytest

from clinform.config import EngineConfig
from clinform.handlers.base import EncounterContext, find_existing_obs
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
from clinform.models.encounter import Encounter, Observation
from clinform.models.schema import FormField
from clinform.models.session import SessionMode

YES = "1065AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"
NO = "1066AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _make_field(
    field_id: str,
    rendering: str,
    *,
    field_type: str = "obs",
    answers: list[dict[str, str]] | None = None,
) -> FormField:
    return FormField(
        id=field_id,
        label=field_id.title(),
        type=field_type,
        question_options={
            "rendering": rendering,
            "concept": f"c-{field_id}",
            "answers": answers or [],
        },
    )


def _make_encounter(obs: list[dict[str, Any]] | None = None) -> Encounter:
    return Encounter.model_validate(
        {
            "uuid": "enc-1",
            "encounterDatetime": "2024-03-01T10:00:00.000+0000",
            "location": {"uuid": "loc-1", "display": "Clinic A"},
            "encounterProviders": [{"provider": {"uuid": "prov-1"}}],
            "obs": obs or [],
        }
    )


def _context(encounter: Encounter | None = None) -> EncounterContext:
    mode = SessionMode.EDIT if encounter else SessionMode.ENTER
    return EncounterContext(patient="pat-1", encounter=encounter, session_mode=mode)


@pytest.fixture()
def config() -> EngineConfig:
    return EngineConfig()


SYMPTOMS = [
    {"concept": "s-fever", "label": "Fever"},
    {"concept": "s-cough", "label": "Cough"},
    {"concept": "s-rash", "label": "Rash"},
]


class TestFindExistingObs:
    def test_form_field_path_wins_over_concept(self) -> None:
        field = _make_field("weight", "number")
        encounter = _make_encounter(
            [
                {"uuid": "o1", "concept": {"uuid": "c-weight"}, "value": 60},
                {
                    "uuid": "o2",
                    "concept": {"uuid": "c-weight"},
                    "value": 61,
                    "formFieldPath": "clinform-weight",
                },
            ]
        )
        assert [o.uuid for o in find_existing_obs(encounter, field)] == ["o2"]

    def test_falls_back_to_concept(self) -> None:
        field = _make_field("weight", "number")
        encounter = _make_encounter([{"uuid": "o1", "concept": {"uuid": "c-weight"}, "value": 60}])
        assert [o.uuid for o in find_existing_obs(encounter, field)] == ["o1"]

    def test_group_members_are_searched(self) -> None:
        field = _make_field("weight", "number")
        encounter = _make_encounter(
            [
                {
                    "uuid": "grp",
                    "concept": {"uuid": "c-vitals"},
                    "groupMembers": [{"uuid": "o1", "concept": {"uuid": "c-weight"}, "value": 60}],
                }
            ]
        )
        assert [o.uuid for o in find_existing_obs(encounter, field)] == ["o1"]

    def test_no_encounter(self) -> None:
        assert find_existing_obs(None, _make_field("weight", "number")) == []


class TestSimpleAnswerHandler:
    def test_initial_date_is_trimmed(self, config: EngineConfig) -> None:
        field = _make_field("visitDate", "date")
        encounter = _make_encounter(
            [{"uuid": "o1", "concept": {"uuid": "c-visitDate"}, "value": "2024-02-20T00:00:00.000+0000"}]
        )
        assert SimpleAnswerHandler(config).get_initial_value(encounter, field) == "2024-02-20"

    def test_submission_builds_observation_and_sets_field_value(self, config: EngineConfig) -> None:
        field = _make_field("notes", "text")
        result = SimpleAnswerHandler(config).handle_field_submission(field, "stable", _context())
        assert isinstance(result, Observation)
        assert result.concept == "c-notes"
        assert result.value == "stable"
        assert result.form_field_path == "clinform-notes"
        assert field.value is result

    @pytest.mark.parametrize("rendering", ["number", "numeric"])
    def test_number_values_are_coerced(self, config: EngineConfig, rendering: str) -> None:
        field = _make_field("weight", rendering)
        assert SimpleAnswerHandler(config).handle_field_submission(field, "72", _context()).value == 72
        assert SimpleAnswerHandler(config).handle_field_submission(field, "72.5", _context()).value == 72.5

    def test_edit_keeps_obs_uuid(self, config: EngineConfig) -> None:
        field = _make_field("notes", "text")
        encounter = _make_encounter([{"uuid": "o1", "concept": {"uuid": "c-notes"}, "value": "old"}])
        result = SimpleAnswerHandler(config).handle_field_submission(field, "new", _context(encounter))
        assert result.uuid == "o1"
        assert result.value == "new"

    def test_clearing_voids_existing_obs(self, config: EngineConfig) -> None:
        field = _make_field("notes", "text")
        encounter = _make_encounter([{"uuid": "o1", "concept": {"uuid": "c-notes"}, "value": "old"}])
        result = SimpleAnswerHandler(config).handle_field_submission(field, "", _context(encounter))
        assert result.uuid == "o1"
        assert result.voided is True

    def test_empty_enter_submission_is_none(self, config: EngineConfig) -> None:
        field = _make_field("notes", "text")
        assert SimpleAnswerHandler(config).handle_field_submission(field, "", _context()) is None
        assert field.value is None


class TestSingleChoiceHandler:
    def test_initial_value_is_answer_concept(self, config: EngineConfig) -> None:
        field = _make_field("tested", "radio")
        encounter = _make_encounter(
            [{"uuid": "o1", "concept": {"uuid": "c-tested"}, "value": {"uuid": YES, "display": "Yes"}}]
        )
        assert SingleChoiceHandler(config).get_initial_value(encounter, field) == YES

    def test_display_uses_answer_label(self, config: EngineConfig) -> None:
        field = _make_field("tested", "radio", answers=[{"concept": YES, "label": "Yes"}])
        handler = SingleChoiceHandler(config)
        assert handler.get_display_value(field, YES) == "Yes"
        assert handler.get_display_value(field, "unlisted") == "unlisted"
        assert handler.get_display_value(field, None) == ""


class TestMultiChoiceHandler:
    def test_three_selected_answers_give_three_observations(self, config: EngineConfig) -> None:
        field = _make_field("symptoms", "checkbox", answers=SYMPTOMS)
        result = MultiChoiceHandler(config).handle_field_submission(
            field, ["s-fever", "s-cough", "s-rash"], _context()
        )
        assert isinstance(result, list)
        assert len(result) == 3
        assert {o.concept for o in result} == {"c-symptoms"}
        assert [o.value for o in result] == ["s-fever", "s-cough", "s-rash"]
        assert field.value == result

    def test_duplicate_selections_collapse(self, config: EngineConfig) -> None:
        field = _make_field("symptoms", "checkbox", answers=SYMPTOMS)
        result = MultiChoiceHandler(config).handle_field_submission(
            field, ["s-fever", "s-fever"], _context()
        )
        assert len(result) == 1

    def test_deselected_answers_are_voided_in_edit(self, config: EngineConfig) -> None:
        field = _make_field("symptoms", "checkbox", answers=SYMPTOMS)
        encounter = _make_encounter(
            [
                {"uuid": "o-fever", "concept": {"uuid": "c-symptoms"}, "value": {"uuid": "s-fever"}},
                {"uuid": "o-cough", "concept": {"uuid": "c-symptoms"}, "value": {"uuid": "s-cough"}},
            ]
        )
        handler = MultiChoiceHandler(config)
        assert handler.get_initial_value(encounter, field) == ["s-fever", "s-cough"]

        result = handler.handle_field_submission(field, ["s-fever", "s-rash"], _context(encounter))
        by_value = {o.value: o for o in result if not o.voided}
        assert by_value["s-fever"].uuid == "o-fever"
        assert by_value["s-rash"].uuid is None
        voided = [o for o in result if o.voided]
        assert [o.uuid for o in voided] == ["o-cough"]

    def test_blank_value_is_list(self, config: EngineConfig) -> None:
        field = _make_field("symptoms", "checkbox")
        assert MultiChoiceHandler(config).blank_value(field) == []

    def test_display_joins_labels(self, config: EngineConfig) -> None:
        field = _make_field("symptoms", "checkbox", answers=SYMPTOMS)
        display = MultiChoiceHandler(config).get_display_value(field, ["s-fever", "s-rash"])
        assert display == "Fever, Rash"


class TestToggleHandler:
    def test_true_submits_true_concept(self, config: EngineConfig) -> None:
        field = _make_field("pregnant", "toggle")
        result = ToggleHandler(config).handle_field_submission(field, True, _context())
        assert result.value == YES

    def test_false_submits_false_concept(self, config: EngineConfig) -> None:
        field = _make_field("pregnant", "toggle")
        result = ToggleHandler(config).handle_field_submission(field, False, _context())
        assert result.value == NO

    def test_initial_value_is_bool(self, config: EngineConfig) -> None:
        field = _make_field("pregnant", "toggle")
        encounter = _make_encounter(
            [{"uuid": "o1", "concept": {"uuid": "c-pregnant"}, "value": {"uuid": YES}}]
        )
        assert ToggleHandler(config).get_initial_value(encounter, field) is True

    def test_display_defaults_to_yes_no(self, config: EngineConfig) -> None:
        field = _make_field("pregnant", "toggle")
        handler = ToggleHandler(config)
        assert handler.get_display_value(field, True) == "Yes"
        assert handler.get_display_value(field, False) == "No"
        assert handler.get_display_value(field, None) == ""


class TestEncounterAttributeHandlers:
    def test_location(self, config: EngineConfig) -> None:
        field = _make_field("where", "ui-select-extended", field_type="encounterLocation")
        handler = EncounterLocationHandler(config)
        assert handler.encounter_attribute == "location"
        assert handler.get_initial_value(_make_encounter(), field) == "loc-1"
        assert handler.handle_field_submission(field, "loc-2", _context()) is None
        assert field.value == "loc-2"

    def test_provider(self, config: EngineConfig) -> None:
        field = _make_field("who", "ui-select-extended", field_type="encounterProvider")
        assert EncounterProviderHandler(config).get_initial_value(_make_encounter(), field) == "prov-1"

    def test_datetime(self, config: EngineConfig) -> None:
        field = _make_field("when", "date", field_type="encounterDatetime")
        handler = EncounterDatetimeHandler(config)
        initial = handler.get_initial_value(_make_encounter(), field)
        assert initial == "2024-03-01T10:00:00.000+0000"
        assert handler.get_display_value(field, initial) == "2024-03-01"

    def test_empty_submission_clears_field_value(self, config: EngineConfig) -> None:
        field = _make_field("where", "select", field_type="encounterLocation")
        field.value = "stale"
        EncounterLocationHandler(config).handle_field_submission(field, "", _context())
        assert field.value is None
