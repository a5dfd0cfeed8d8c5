"""Cancellation tokens for the two asynchronous operations of a session.

Hydration uses one token per controller, cancelled on teardown. Each
submit call gets a fresh token.
"""

from __future__ import annotations

from clinform.errors import OperationCancelled


class CancellationToken:
    """Cooperative cancellation flag shared with collaborators."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelled if the token has been cancelled."""
        if self._cancelled:
            msg = "Operation was cancelled"
            raise OperationCancelled(msg)
