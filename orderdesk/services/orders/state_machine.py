"""Order status canonicalization and transition validation.

This module implements the StatusCanonicalizer, which maps between status
keys and display labels and is the single place where a draft's status
change is validated against the transition table.
"""

from typing import Any, Optional, Union

from orderdesk.core.config import get_settings
from orderdesk.core.exceptions import OrderDeskError
from orderdesk.core.logging import get_logger
from orderdesk.services.orders.enums import (
    OrderStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)

logger = get_logger(__name__)

StatusLike = Union[OrderStatus, str]


class StatusTransitionError(OrderDeskError):
    """Raised when an invalid status transition is attempted."""

    def __init__(
        self,
        message: str,
        current_state: OrderStatus,
        target_state: OrderStatus,
        **context: Any
    ):
        super().__init__(message, **context)
        self.current_state = current_state
        self.target_state = target_state


class StatusCanonicalizer:
    """Lookup between internal status keys and display labels."""

    def __init__(self, default_status: Optional[StatusLike] = None):
        """Initialize canonicalizer.

        Args:
            default_status: Status used for blank input (defaults to settings)
        """
        default = default_status or get_settings().default_status
        self.default_status = self.to_key(default)

    def to_key(self, value: StatusLike) -> OrderStatus:
        """Resolve a key or label to its OrderStatus.

        Raises:
            ValueError: If value is not a known key or label
        """
        if isinstance(value, OrderStatus):
            return value
        return OrderStatus.from_string(value)

    def to_label(self, value: Optional[StatusLike]) -> str:
        """Display label for a key or label.

        Unknown values are returned unchanged; blank values render as "-".
        """
        if value is None or not str(value).strip():
            return "-"
        status = value if isinstance(value, OrderStatus) else OrderStatus.parse(value)
        if status is None:
            return str(value)
        return status.label

    def canonicalize(self, value: Optional[StatusLike]) -> OrderStatus:
        """Resolve stored or incoming status, falling back to the default."""
        if isinstance(value, OrderStatus):
            return value
        status = OrderStatus.parse(value)
        if status is None:
            if value:
                logger.warning(
                    "Unknown order status, using default",
                    status=str(value),
                    default=self.default_status.value,
                )
            return self.default_status
        return status

    def transition(
        self,
        current: StatusLike,
        target: StatusLike,
    ) -> OrderStatus:
        """Validate a status change and return the target status.

        Args:
            current: Current status key or label
            target: Desired status key or label

        Returns:
            Target OrderStatus

        Raises:
            StatusTransitionError: If the transition table forbids the change
        """
        current_status = self.canonicalize(current)
        target_status = self.to_key(target)

        if not validate_order_status_transition(current_status, target_status):
            allowed = get_allowed_order_transitions(current_status)
            raise StatusTransitionError(
                f"Invalid transition from {current_status.value} to "
                f"{target_status.value}",
                current_state=current_status,
                target_state=target_status,
                allowed_transitions=sorted(s.value for s in allowed),
            )

        logger.debug(
            "Status transition validated",
            transition=f"{current_status.value}->{target_status.value}",
        )
        return target_status
