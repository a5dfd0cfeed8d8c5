"""Hide-expression parsing, evaluation, and dependency tracking."""

from clinform.expressions.dependencies import DependencyTracker, Dependants, EntityKind, EntityRef
from clinform.expressions.evaluator import (
    OPERATORS,
    EvaluationOutcome,
    ExpressionEvaluator,
    is_empty,
)
from clinform.expressions.parser import field_references, parse, tokenize

__all__ = [
    "DependencyTracker",
    "Dependants",
    "EntityKind",
    "EntityRef",
    "EvaluationOutcome",
    "ExpressionEvaluator",
    "OPERATORS",
    "field_references",
    "is_empty",
    "parse",
    "tokenize",
]
