"""
Pricing calculation for draft orders.

Totals are a pure function of the current ledger and financial fields and
are recomputed on every read; nothing here caches. Derived values are clamped
at zero whatever the sign or size of discount and payment.
"""

from decimal import Decimal
from typing import Any, Iterable, NamedTuple

from orderdesk.schemas.orders import OrderItem
from orderdesk.services.orders.money import (
    clamp_non_negative,
    line_total,
    sum_amounts,
    to_decimal,
)


class OrderTotals(NamedTuple):
    """Derived money fields of a draft order."""

    subtotal: Decimal
    discount: Decimal
    delivery_fee: Decimal
    amount_paid: Decimal
    total: Decimal
    remaining: Decimal

    @property
    def has_partial_payment(self) -> bool:
        """Something was paid and a balance is still open."""
        return self.amount_paid > 0 and self.remaining > 0


class PricingCalculator:
    """Stateless calculator for subtotal, total and remaining balance."""

    @staticmethod
    def items_subtotal(items: Iterable[OrderItem]) -> Decimal:
        """Sum of quantity times unit price over all items."""
        return sum_amounts(line_total(item.quantity, item.unit_price) for item in items)

    @staticmethod
    def total(subtotal: Any, discount: Any, delivery_fee: Any) -> Decimal:
        """max(0, subtotal - discount + delivery_fee)."""
        return clamp_non_negative(
            to_decimal(subtotal) - to_decimal(discount) + to_decimal(delivery_fee)
        )

    @staticmethod
    def remaining(total: Any, amount_paid: Any) -> Decimal:
        """max(0, total - amount_paid)."""
        return clamp_non_negative(to_decimal(total) - to_decimal(amount_paid))

    @classmethod
    def calculate(
        cls,
        items: Iterable[OrderItem],
        discount: Any = 0,
        delivery_fee: Any = 0,
        amount_paid: Any = 0,
    ) -> OrderTotals:
        """
        Compute all derived fields.

        Args:
            items: Ledger items
            discount: Discount amount
            delivery_fee: Delivery fee
            amount_paid: Amount already paid

        Returns:
            OrderTotals with full-precision values
        """
        discount = to_decimal(discount)
        delivery_fee = to_decimal(delivery_fee)
        amount_paid = to_decimal(amount_paid)
        subtotal = cls.items_subtotal(items)
        total = cls.total(subtotal, discount, delivery_fee)
        return OrderTotals(
            subtotal=subtotal,
            discount=discount,
            delivery_fee=delivery_fee,
            amount_paid=amount_paid,
            total=total,
            remaining=cls.remaining(total, amount_paid),
        )
