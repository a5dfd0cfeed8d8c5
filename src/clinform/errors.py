"""Exception taxonomy for the form engine.

Validation problems are not exceptions: they are returned as
ValidationError records (see clinform.models.validation). Everything here
is a fault in configuration, evaluation, transport, or session usage.
"""

from __future__ import annotations


class FormEngineError(Exception):
    """Base class for all form engine errors."""


class SchemaConfigurationError(FormEngineError):
    """Raised when the form schema cannot be interpreted.

    Covers unknown question type tags, duplicate field ids or page/section
    labels, and hide-expressions that fail to parse at load time.
    """

    def __init__(self, message: str, *, entity: str | None = None) -> None:
        super().__init__(message)
        self.entity = entity


class EvaluationError(FormEngineError):
    """Raised when a hide-expression cannot be evaluated at runtime."""

    def __init__(self, message: str, *, expression: str | None = None) -> None:
        super().__init__(message)
        self.expression = expression


class FetchError(FormEngineError):
    """Raised when hydrating or saving an encounter fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ReadOnlySessionError(FormEngineError):
    """Raised when a view-mode session is asked to mutate or submit."""


class OperationCancelled(FormEngineError):
    """Raised when a cancellation token is triggered mid-operation."""
