"""Tests for the hide-expression tokenizer and parser."""

from __future__ import annotations

import pytest

from clinform.errors import EvaluationError
from clinform.expressions.parser import (
    Call,
    Compare,
    FieldRef,
    IsEmpty,
    Literal,
    Logical,
    Not,
    field_references,
    parse,
    tokenize,
)


class TestTokenize:
    def test_quoted_literal_may_contain_spaces(self) -> None:
        tokens = tokenize("visitType == 'follow up visit'")
        assert [t.kind for t in tokens] == ["name", "op", "string"]
        assert tokens[2].text == "'follow up visit'"

    def test_field_ids_with_dashes_and_dots(self) -> None:
        tokens = tokenize("tb-screen.result != 'x'")
        assert tokens[0].kind == "name"
        assert tokens[0].text == "tb-screen.result"

    def test_keywords_are_case_insensitive(self) -> None:
        tokens = tokenize("a AND b Or NOT c")
        assert [t.text for t in tokens if t.kind == "keyword"] == ["and", "or", "not"]

    def test_symbolic_operators(self) -> None:
        tokens = tokenize("a===1&&b!==2||!c")
        ops = [t.text for t in tokens if t.kind == "op"]
        assert ops == ["===", "&&", "!==", "||", "!"]

    def test_unknown_character_raises(self) -> None:
        with pytest.raises(EvaluationError, match="Unexpected character"):
            tokenize("a @ b")


class TestParse:
    def test_simple_comparison(self) -> None:
        node = parse("sex == 'F'")
        assert node == Compare(op="==", left=FieldRef(name="sex"), right=Literal(value="F"))

    def test_and_binds_tighter_than_or(self) -> None:
        node = parse("a or b and c")
        assert isinstance(node, Logical)
        assert node.op == "or"
        assert isinstance(node.operands[1], Logical)
        assert node.operands[1].op == "and"

    def test_parentheses_override_precedence(self) -> None:
        node = parse("(a or b) and c")
        assert isinstance(node, Logical)
        assert node.op == "and"
        assert isinstance(node.operands[0], Logical)

    def test_not_prefix(self) -> None:
        node = parse("!a")
        assert node == Not(operand=FieldRef(name="a"))

    def test_is_empty_and_is_not_empty(self) -> None:
        assert parse("a is empty") == IsEmpty(operand=FieldRef(name="a"))
        assert parse("a is not empty") == IsEmpty(operand=FieldRef(name="a"), negated=True)

    def test_is_empty_function_form(self) -> None:
        assert parse("isEmpty(a)") == IsEmpty(operand=FieldRef(name="a"))

    def test_includes_call(self) -> None:
        node = parse("includes(symptoms, 'cough')")
        assert isinstance(node, Call)
        assert node.name == "includes"
        assert node.args == (FieldRef(name="symptoms"), Literal(value="cough"))

    def test_number_and_keyword_literals(self) -> None:
        assert parse("age > 18").right == Literal(value=18)
        assert parse("bmi < 18.5").right == Literal(value=18.5)
        assert parse("a == null").right == Literal(value=None)
        assert parse("a === true").right == Literal(value=True)

    def test_parse_is_cached(self) -> None:
        assert parse("a == 'cached'") is parse("a == 'cached'")

    @pytest.mark.parametrize(
        "expression",
        [
            "",
            "a ==",
            "(a == 1",
            "a == 1 )",
            "a is",
            "lookup(a)",
            "includes(a)",
            "__import__('os')",
        ],
    )
    def test_malformed_expressions_raise(self, expression: str) -> None:
        with pytest.raises(EvaluationError):
            parse(expression)


class TestFieldReferences:
    def test_references_in_first_appearance_order(self) -> None:
        node = parse("b == 1 or (a is empty and includes(c, b))")
        assert field_references(node) == ["b", "a", "c"]

    def test_literals_are_not_references(self) -> None:
        assert field_references(parse("'a' == true")) == []
