"""Safe evaluation of hide-expressions against an answer snapshot.

The evaluator walks the AST produced by ``clinform.expressions.parser``.
Field references are resolved against the current answers (or an explicit
override for the field being changed), recorded as dependency edges, and
compared with a table-driven comparator. Toggle determinants hold booleans
in the answer state, so their values are mapped to the configured
true/false concept codes before comparison.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict

from clinform.config import EngineConfig
from clinform.errors import EvaluationError
from clinform.expressions.dependencies import DependencyTracker, EntityRef
from clinform.expressions.parser import (
    Call,
    Compare,
    FieldRef,
    IsEmpty,
    Literal,
    Logical,
    Node,
    Not,
    field_references,
    parse,
)
from clinform.models.schema import FormField

UNSPECIFIED_SUFFIX = "-unspecified"


def is_empty(value: Any) -> bool:
    """Null, empty string, and empty collections count as empty."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _loose_equals(left: Any, right: Any) -> bool:
    if isinstance(left, list):
        return any(_loose_equals(item, right) for item in left)
    if isinstance(right, list):
        return any(_loose_equals(left, item) for item in right)
    if left is None or right is None:
        return is_empty(left) and is_empty(right)
    if left == right:
        return True
    left_num, right_num = _as_number(left), _as_number(right)
    if left_num is not None and right_num is not None:
        return left_num == right_num
    if isinstance(left, bool) or isinstance(right, bool):
        return str(left).lower() == str(right).lower()
    return False


def _strict_equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    numeric = (int, float)
    if isinstance(left, numeric) and isinstance(right, numeric):
        return left == right
    return type(left) is type(right) and left == right


def _ordered(compare: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def apply(left: Any, right: Any) -> bool:
        left_num, right_num = _as_number(left), _as_number(right)
        if left_num is None or right_num is None:
            if isinstance(left, str) and isinstance(right, str):
                # ISO dates and other lexically ordered strings
                return compare(left, right)  # type: ignore[arg-type]
            return False
        return compare(left_num, right_num)

    return apply


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": _loose_equals,
    "!=": lambda a, b: not _loose_equals(a, b),
    "===": _strict_equals,
    "!==": lambda a, b: not _strict_equals(a, b),
    "<": _ordered(lambda a, b: a < b),
    "<=": _ordered(lambda a, b: a <= b),
    ">": _ordered(lambda a, b: a > b),
    ">=": _ordered(lambda a, b: a >= b),
}


def _truthy(value: Any) -> bool:
    if is_empty(value):
        return False
    return bool(value)


class EvaluationOutcome(BaseModel):
    """Result of a fail-closed visibility evaluation.

    ``hidden`` is False whenever ``error`` is set.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    hidden: bool
    error: EvaluationError | None = None


class ExpressionEvaluator:
    """Evaluates hide-expressions for the fields of one form instance.

    Args:
        config: Engine configuration carrying the toggle concept codes.
        fields: All fields of the form keyed by id.
        tracker: Dependency tracker receiving determinant -> target edges.
    """

    def __init__(
        self,
        config: EngineConfig,
        fields: Mapping[str, FormField],
        tracker: DependencyTracker | None = None,
    ) -> None:
        self._config = config
        self._fields = fields
        self.tracker = tracker if tracker is not None else DependencyTracker()

    def evaluate(
        self,
        expression: str,
        answers: Mapping[str, Any],
        *,
        target: EntityRef | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> bool:
        """Evaluate an expression to a boolean.

        Every referenced field is recorded as a determinant of ``target``
        before evaluation starts, so short-circuiting never hides an edge.

        Args:
            expression: The hide-expression text.
            answers: Current answer snapshot keyed by field id.
            target: Entity that owns the expression, for dependency tracking.
            overrides: Values that take precedence over ``answers``, used for
                the field whose change triggered re-evaluation.

        Raises:
            EvaluationError: If the expression is malformed or references
                an unknown field.
        """
        tree = parse(expression)
        unknown: list[str] = []
        for name in field_references(tree):
            determinant = self._determinant_id(name)
            if determinant is None:
                unknown.append(name)
            elif target is not None:
                self.tracker.record(determinant, target)
        if unknown:
            msg = f"Unknown field {unknown[0]!r} in hide-expression {expression!r}"
            raise EvaluationError(msg, expression=expression)
        return _truthy(self._eval(tree, answers, overrides or {}))

    def is_hidden(
        self,
        expression: str,
        answers: Mapping[str, Any],
        *,
        target: EntityRef,
        overrides: Mapping[str, Any] | None = None,
    ) -> EvaluationOutcome:
        """Evaluate visibility, failing closed (visible) on any error."""
        try:
            hidden = self.evaluate(expression, answers, target=target, overrides=overrides)
        except EvaluationError as exc:
            logger.warning(
                "Hide-expression for {} {} failed, keeping it visible: {}",
                target.kind,
                target.key,
                exc,
            )
            return EvaluationOutcome(hidden=False, error=exc)
        return EvaluationOutcome(hidden=hidden)

    def substitute(self, field_id: str, value: Any) -> Any:
        """Map a raw answer to the value used in comparisons.

        Toggle answers become the canonical true/false concept codes and
        empty values become None.
        """
        field = self._fields.get(field_id)
        if field is not None and field.rendering == "toggle":
            if value in (self._config.concept_true, self._config.concept_false):
                return value
            return self._config.concept_true if _truthy(value) else self._config.concept_false
        if is_empty(value):
            return None
        return value

    def _determinant_id(self, name: str) -> str | None:
        if name in self._fields:
            return name
        if name.endswith(UNSPECIFIED_SUFFIX) and name[: -len(UNSPECIFIED_SUFFIX)] in self._fields:
            return name[: -len(UNSPECIFIED_SUFFIX)]
        return None

    def _resolve(self, name: str, answers: Mapping[str, Any], overrides: Mapping[str, Any]) -> Any:
        value = overrides[name] if name in overrides else answers.get(name)
        if name not in self._fields:
            # <id>-unspecified companion
            return bool(value)
        return self.substitute(name, value)

    def _eval(self, node: Node, answers: Mapping[str, Any], overrides: Mapping[str, Any]) -> Any:
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, FieldRef):
            return self._resolve(node.name, answers, overrides)
        if isinstance(node, Compare):
            left = self._eval(node.left, answers, overrides)
            right = self._eval(node.right, answers, overrides)
            return OPERATORS[node.op](left, right)
        if isinstance(node, Logical):
            if node.op == "and":
                return all(_truthy(self._eval(n, answers, overrides)) for n in node.operands)
            return any(_truthy(self._eval(n, answers, overrides)) for n in node.operands)
        if isinstance(node, Not):
            return not _truthy(self._eval(node.operand, answers, overrides))
        if isinstance(node, IsEmpty):
            empty = is_empty(self._eval(node.operand, answers, overrides))
            return not empty if node.negated else empty
        if isinstance(node, Call):
            container = self._eval(node.args[0], answers, overrides)
            needle = self._eval(node.args[1], answers, overrides)
            if container is None:
                return False
            if isinstance(container, (list, tuple, set)):
                return any(_loose_equals(item, needle) for item in container)
            return str(needle) in str(container)
        msg = f"Unsupported expression node {type(node).__name__}"
        raise EvaluationError(msg)
