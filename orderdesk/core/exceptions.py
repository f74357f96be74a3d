"""
Error taxonomy shared by the order composition services.

Validation errors block the triggering action and are shown to the user,
lookup failures are recovered locally and never surface, persistence failures
are shown to the user while the draft is kept intact.
"""

from typing import Any


class OrderDeskError(Exception):
    """Base exception for order composition errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class OrderValidationError(OrderDeskError):
    """Raised when user input does not allow the requested action."""

    pass


class LookupFailure(OrderDeskError):
    """Raised when a search or fetch against the API fails."""

    pass


class PersistenceFailure(OrderDeskError):
    """Raised when the order upsert is rejected or cannot be delivered."""

    pass
