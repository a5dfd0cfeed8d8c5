"""Structured validation results.

Validation never raises: each failing rule yields one ValidationError
record that is collected and attached to the field's transient submission
state.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class ErrorKind(StrEnum):
    """Category of a validation failure.

    REQUIRED: No value on a required field.
    RANGE: Numeric value outside the configured bounds.
    FORMAT: Value does not match the expected pattern.
    DATE: Unparseable date or a date in the future.
    LENGTH: Text longer than the configured maximum.
    """

    REQUIRED = "required"
    RANGE = "range"
    FORMAT = "format"
    DATE = "date"
    LENGTH = "length"


class ValidationError(BaseModel):
    """One user-correctable problem with a field's value."""

    field_id: str = Field(..., description="Id of the offending field")
    kind: ErrorKind = Field(..., description="Failure category")
    message: str = Field(..., description="Message suitable for display next to the field")
