"""Declarative per-field validation.

Provides a rule-based validator for form answers. Rules are registered by
validator type (required, range, regex, date) and produce structured
ValidationError records instead of raising.
"""

from clinform.validation.engine import FormValidator, unspecified_key
from clinform.validation.rules import (
    DateRule,
    FieldRule,
    RangeRule,
    RegexRule,
    RequiredRule,
    get_default_rules,
)

__all__ = [
    "DateRule",
    "FieldRule",
    "FormValidator",
    "RangeRule",
    "RegexRule",
    "RequiredRule",
    "get_default_rules",
    "unspecified_key",
]
