"""Order status enum and transition rules.

This module defines the closed set of order statuses used by the dashboard,
their customer-facing labels, and the transition table consulted whenever a
draft's status changes.
"""

from enum import Enum
from typing import Dict, Optional, Set


class OrderStatus(str, Enum):
    """Order status as understood by the backend.

    Valid transitions:
    - any status -> any other status (manual corrections are allowed)
    """

    ORDER_PLACED = "OrderPlaced"
    CONFIRMED = "Confirmed"
    FINISHED = "Finished"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert a status key or display label to OrderStatus.

        Matching is case-insensitive and ignores surrounding whitespace.

        Args:
            value: Status key ("Confirmed") or label ("Pedido Confirmado")

        Returns:
            OrderStatus enum value

        Raises:
            ValueError: If value is neither a key nor a label
        """
        normalized = (value or "").strip().casefold()
        for status in cls:
            if normalized in (status.value.casefold(), status.label.casefold()):
                return status
        valid_values = ", ".join(s.value for s in cls)
        raise ValueError(
            f"Invalid order status: {value}. "
            f"Valid values are: {valid_values}"
        )

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["OrderStatus"]:
        """Like from_string, returning None for blank or unknown input."""
        if not value or not str(value).strip():
            return None
        try:
            return cls.from_string(str(value))
        except ValueError:
            return None

    @property
    def label(self) -> str:
        """Customer-facing label for the status."""
        return ORDER_STATUS_LABELS[self]

    def is_terminal(self) -> bool:
        """Check if the order has been completed."""
        return self is OrderStatus.FINISHED


ORDER_STATUS_LABELS: Dict[OrderStatus, str] = {
    OrderStatus.ORDER_PLACED: "Pedido Realizado",
    OrderStatus.CONFIRMED: "Pedido Confirmado",
    OrderStatus.FINISHED: "Concluído",
}

# State transition validation rules
ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.ORDER_PLACED: {
        OrderStatus.CONFIRMED,
        OrderStatus.FINISHED,
    },
    OrderStatus.CONFIRMED: {
        OrderStatus.ORDER_PLACED,
        OrderStatus.FINISHED,
    },
    OrderStatus.FINISHED: {
        OrderStatus.ORDER_PLACED,
        OrderStatus.CONFIRMED,
    },
}


def validate_order_status_transition(
    current: OrderStatus,
    new: OrderStatus
) -> bool:
    """Validate if order status transition is allowed.

    Setting a status to its current value is always allowed.

    Args:
        current: Current order status
        new: Desired new status

    Returns:
        True if transition is valid
    """
    if current is new:
        return True
    return new in ORDER_STATUS_TRANSITIONS.get(current, set())


def get_allowed_order_transitions(
    current: OrderStatus
) -> Set[OrderStatus]:
    """Get all allowed transitions from current order status.

    Args:
        current: Current order status

    Returns:
        Set of allowed next statuses
    """
    return ORDER_STATUS_TRANSITIONS.get(current, set()).copy()
