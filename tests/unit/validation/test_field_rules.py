"""Tests for the built-in field validation rules."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from clinform.models.schema import FormField, ValidatorSpec
from clinform.models.validation import ErrorKind
from clinform.validation.rules import (
    DateRule,
    LengthRule,
    RangeRule,
    RegexRule,
    RequiredRule,
    get_default_rules,
)


@pytest.fixture()
def field() -> FormField:
    return FormField(id="q1", label="Question", type="obs", question_options={"rendering": "text"})


class TestRequiredRule:
    def test_default_message(self, field: FormField) -> None:
        errors = RequiredRule().check(field, "", ValidatorSpec(type="required"))
        assert len(errors) == 1
        assert errors[0].kind == ErrorKind.REQUIRED
        assert errors[0].message == "Field is mandatory"
        assert errors[0].field_id == "q1"

    def test_custom_message(self, field: FormField) -> None:
        spec = ValidatorSpec(type="required", message="Please answer")
        assert RequiredRule().check(field, None, spec)[0].message == "Please answer"


class TestRangeRule:
    def test_within_bounds(self, field: FormField) -> None:
        assert RangeRule().check(field, "5", ValidatorSpec(type="range", min=0, max=10)) == []

    def test_below_min(self, field: FormField) -> None:
        errors = RangeRule().check(field, -1, ValidatorSpec(type="range", min=0))
        assert errors[0].kind == ErrorKind.RANGE
        assert "at least 0" in errors[0].message

    def test_above_max(self, field: FormField) -> None:
        errors = RangeRule().check(field, 300, ValidatorSpec(type="range", max=250))
        assert errors[0].kind == ErrorKind.RANGE
        assert "at most 250" in errors[0].message

    def test_not_a_number(self, field: FormField) -> None:
        errors = RangeRule().check(field, "heavy", ValidatorSpec(type="range", max=250))
        assert errors[0].kind == ErrorKind.FORMAT


class TestRegexRule:
    def test_full_match_required(self, field: FormField) -> None:
        spec = ValidatorSpec(type="regex", pattern=r"\d{3}-\d{4}")
        assert RegexRule().check(field, "555-1234", spec) == []
        assert RegexRule().check(field, "555-12345", spec)[0].kind == ErrorKind.FORMAT

    def test_custom_message(self, field: FormField) -> None:
        spec = ValidatorSpec(type="regex", pattern=r"[A-Z]+", message="Upper case only")
        assert RegexRule().check(field, "abc", spec)[0].message == "Upper case only"

    def test_missing_pattern_passes(self, field: FormField) -> None:
        assert RegexRule().check(field, "anything", ValidatorSpec(type="regex")) == []

    def test_uncompilable_pattern_skipped(self, field: FormField) -> None:
        spec = ValidatorSpec(type="regex", pattern="[unclosed")
        assert RegexRule().check(field, "abc", spec) == []


class TestLengthRule:
    def test_within_limit(self, field: FormField) -> None:
        assert LengthRule().check(field, "abcd", ValidatorSpec(type="length", maxLength=4)) == []

    def test_too_long(self, field: FormField) -> None:
        errors = LengthRule().check(field, "abcde", ValidatorSpec(type="length", maxLength=4))
        assert errors[0].kind == ErrorKind.LENGTH
        assert errors[0].message == "Value must be at most 4 characters"

    def test_no_limit_passes(self, field: FormField) -> None:
        assert LengthRule().check(field, "x" * 500, ValidatorSpec(type="length")) == []


class TestDateRule:
    def test_valid_past_date(self, field: FormField) -> None:
        assert DateRule().check(field, "2020-01-31", ValidatorSpec(type="date")) == []

    def test_datetime_string_accepted(self, field: FormField) -> None:
        assert DateRule().check(field, "2020-01-31T08:00:00", ValidatorSpec(type="date")) == []

    def test_invalid_date(self, field: FormField) -> None:
        errors = DateRule().check(field, "2020-02-30", ValidatorSpec(type="date"))
        assert errors[0].kind == ErrorKind.DATE

    def test_future_date_rejected(self, field: FormField) -> None:
        tomorrow = (date.today() + timedelta(days=1)).isoformat()
        errors = DateRule().check(field, tomorrow, ValidatorSpec(type="date"))
        assert errors[0].message == "Date cannot be in the future"

    def test_future_date_allowed(self, field: FormField) -> None:
        tomorrow = (date.today() + timedelta(days=1)).isoformat()
        spec = ValidatorSpec(type="date", allowFutureDates=True)
        assert DateRule().check(field, tomorrow, spec) == []


class TestDefaultRules:
    def test_one_rule_per_type(self) -> None:
        types = [rule.rule_type for rule in get_default_rules()]
        assert sorted(types) == ["date", "length", "range", "regex", "required"]
