"""
Draft order aggregate.

Holds everything the editor shows for one order: customer snapshot, delivery
flag and address, the line-item ledger, financial inputs, status and the
delivery slot fields. Totals are derived on every access.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from orderdesk.core.logging import get_logger
from orderdesk.schemas.orders import (
    AddressSnapshot,
    CustomerSnapshot,
    EntityId,
    OrderRecord,
)
from orderdesk.services.orders.delivery_slot import parse_backend_datetime, split_slot
from orderdesk.services.orders.enums import OrderStatus
from orderdesk.services.orders.ledger import LineItemLedger
from orderdesk.services.orders.money import to_decimal
from orderdesk.services.orders.pricing import OrderTotals, PricingCalculator
from orderdesk.services.orders.state_machine import StatusCanonicalizer

logger = get_logger(__name__)


class OrderDraft:
    """
    In-memory order being composed or edited.

    Attributes:
        order_id: Persisted id, None for a new order
        customer_id: Selected customer id
        customer_name: Customer display name
        customer_phone: Free-text phone as entered or fetched
        is_delivery: Delivery (True) or pickup (False)
        address: Delivery address snapshot
        ledger: Line items
        discount: Discount amount
        delivery_fee: Delivery fee
        amount_paid: Amount already paid
        status: Current status
        delivery_date: ``YYYY-MM-DD`` field
        delivery_time: ``HH:MM`` field
    """

    def __init__(
        self,
        order_id: Optional[EntityId] = None,
        status: OrderStatus = OrderStatus.ORDER_PLACED,
        now: Optional[datetime] = None,
    ):
        self.order_id = order_id
        self.customer_id: Optional[EntityId] = None
        self.customer_name = ""
        self.customer_phone = ""
        self.is_delivery = True
        self.address = AddressSnapshot()
        self.ledger = LineItemLedger()
        self.discount = Decimal("0")
        self.delivery_fee = Decimal("0")
        self.amount_paid = Decimal("0")
        self.status = status
        self.delivery_date, self.delivery_time = split_slot(now or datetime.now())

    @classmethod
    def from_record(
        cls,
        record: OrderRecord,
        canonicalizer: Optional[StatusCanonicalizer] = None,
        now: Optional[datetime] = None,
    ) -> "OrderDraft":
        """
        Hydrate a draft from a fetched or freshly saved order.

        The delivery slot falls back to now when the record has none or it
        cannot be parsed.
        """
        canonicalizer = canonicalizer or StatusCanonicalizer()
        draft = cls(
            order_id=record.id,
            status=canonicalizer.canonicalize(record.status),
            now=now,
        )
        draft.customer_id = record.customer_id
        draft.customer_name = record.customer_name
        draft.customer_phone = record.customer_phone
        draft.is_delivery = record.is_delivery
        draft.address = record.address
        draft.ledger = LineItemLedger(record.items)
        draft.discount = record.discount
        draft.delivery_fee = record.delivery_fee
        draft.amount_paid = record.amount_paid

        slot = parse_backend_datetime(record.delivery_date)
        if slot is not None:
            draft.delivery_date, draft.delivery_time = split_slot(slot)
        elif record.delivery_date:
            logger.warning(
                "Unparseable delivery date on order record",
                order_id=str(record.id),
                delivery_date=record.delivery_date,
            )
        return draft

    @property
    def is_new(self) -> bool:
        return self.order_id is None

    @property
    def items(self):
        return self.ledger.items

    @property
    def totals(self) -> OrderTotals:
        """Derived money fields, recomputed on every access."""
        return PricingCalculator.calculate(
            self.ledger,
            discount=self.discount,
            delivery_fee=self.delivery_fee,
            amount_paid=self.amount_paid,
        )

    def apply_customer(self, customer: CustomerSnapshot) -> None:
        """Copy identity, name and phone from a selected customer."""
        self.customer_id = customer.id
        self.customer_name = customer.name
        self.customer_phone = customer.phone

    def clear_customer(self) -> None:
        """Forget the selected customer's identity and phone."""
        self.customer_id = None
        self.customer_phone = ""

    def set_financials(
        self,
        discount: Any = None,
        delivery_fee: Any = None,
        amount_paid: Any = None,
    ) -> None:
        """Update any of discount, delivery fee and amount paid."""
        if discount is not None:
            self.discount = to_decimal(discount)
        if delivery_fee is not None:
            self.delivery_fee = to_decimal(delivery_fee)
        if amount_paid is not None:
            self.amount_paid = to_decimal(amount_paid)
