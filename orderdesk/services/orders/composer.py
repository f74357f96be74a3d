"""
Outbound rendering of a draft order.

Three independent views of the same draft: the upsert payload sent to the
API, the set of order ids handed to the print service, and the plain-text
summary sent to the customer.
"""

import re
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Union

from orderdesk.core.exceptions import OrderValidationError
from orderdesk.core.logging import get_logger
from orderdesk.schemas.orders import (
    AddressSnapshot,
    EntityId,
    OrderRecord,
    UpsertCustomer,
    UpsertItem,
    UpsertPayload,
)
from orderdesk.services.notifications.templates import TemplateEngine, get_template_engine
from orderdesk.services.orders.delivery_slot import DeliverySlotValidator
from orderdesk.services.orders.draft import OrderDraft
from orderdesk.services.orders.state_machine import StatusCanonicalizer

logger = get_logger(__name__)

MESSAGE_TEMPLATE = "order_summary"

_NON_DIGITS = re.compile(r"\D")

OrderLike = Union[OrderRecord, Mapping[str, Any], EntityId]


def digits_only(phone: Optional[str]) -> str:
    """Strip everything but digits from a phone number."""
    return _NON_DIGITS.sub("", phone or "")


def format_address_line(address: AddressSnapshot) -> str:
    """One-line address for the customer message."""
    parts = []
    if address.street:
        parts.append(address.street)
    if address.number:
        parts.append(f"Número {address.number}")
    if address.apartment and address.apartment_number:
        parts.append(f"Condomínio {address.apartment_number}")
    return ", ".join(parts)


class OutboundComposer:
    """Render a draft into payload, print references and message body."""

    def __init__(
        self,
        canonicalizer: Optional[StatusCanonicalizer] = None,
        template_engine: Optional[TemplateEngine] = None,
    ):
        self._canonicalizer = canonicalizer or StatusCanonicalizer()
        self._templates = template_engine or get_template_engine()

    def build_upsert_payload(
        self,
        draft: OrderDraft,
        delivery_slot: Optional[datetime] = None,
        raw_delivery_date: Optional[str] = None,
        customer_phone: Optional[str] = None,
    ) -> UpsertPayload:
        """
        Full snapshot of the draft for ``POST /api/orders/upsert``.

        Args:
            draft: Draft order
            delivery_slot: Validated delivery slot
            raw_delivery_date: Sent as-is when the slot could not be composed
            customer_phone: Phone to send instead of the draft's own

        Returns:
            UpsertPayload; OrderId is set only for existing orders and the
            address only for deliveries
        """
        address = draft.address if draft.is_delivery else AddressSnapshot()
        phone = customer_phone if customer_phone is not None else draft.customer_phone
        customer = UpsertCustomer(
            name=draft.customer_name.strip() or None,
            cell_phone=phone.strip() or None,
            street=address.street or None,
            number=address.number or None,
            neighborhood=address.neighborhood or None,
            city=address.city or None,
            state=address.state or None,
            apartment=address.apartment if draft.is_delivery else None,
            number_apartment=address.apartment_number or None,
        )
        items = [
            UpsertItem(
                product_id=item.product_id,
                product_name=item.product_name,
                unit_price=item.unit_price,
                quantity=item.quantity,
                notes=item.note or "",
            )
            for item in draft.ledger
        ]
        delivery_date = DeliverySlotValidator.to_wire(delivery_slot) or raw_delivery_date

        return UpsertPayload(
            order_id=draft.order_id,
            customer_id=draft.customer_id,
            customer=customer,
            discount=draft.discount,
            is_delivery=draft.is_delivery,
            delivery_fee=draft.delivery_fee,
            amount_paid=draft.amount_paid,
            items=items,
            delivery_date=delivery_date,
            order_status=self._canonicalizer.canonicalize(draft.status).value,
        )

    def select_print_ids(self, orders: Iterable[OrderLike]) -> list[EntityId]:
        """
        Ids of the currently visible orders, in display order.

        Raises:
            OrderValidationError: If no order with an id is visible
        """
        orders = list(orders)
        if not orders:
            raise OrderValidationError("Nenhum pedido para imprimir")
        ids = [order_id for order_id in (_order_id(o) for o in orders) if order_id is not None]
        if not ids:
            raise OrderValidationError("Nenhum pedido válido para imprimir")
        return ids

    def print_ids_for_draft(self, draft: OrderDraft) -> list[EntityId]:
        """The draft's own id; empty for a new order (preview)."""
        return [] if draft.order_id is None else [draft.order_id]

    def build_message(self, draft: OrderDraft, phone: Optional[str]) -> str:
        """
        Plain-text order summary for the customer.

        Args:
            draft: Draft order
            phone: Recipient phone in any format

        Returns:
            Message body

        Raises:
            OrderValidationError: If phone has no digits
        """
        digits = digits_only(phone)
        if not digits:
            raise OrderValidationError(
                "Telefone do cliente não disponível para envio da mensagem",
                field="customer_phone",
            )

        context = {
            "status_label": self._canonicalizer.to_label(draft.status),
            "order_id": draft.order_id,
            "customer_name": draft.customer_name.strip() or "Cliente",
            "phone": digits,
            "items": draft.items,
            "totals": draft.totals,
            "is_delivery": draft.is_delivery,
            "address_line": format_address_line(draft.address) if draft.is_delivery else "",
        }
        return self._templates.render_message(MESSAGE_TEMPLATE, context)


def _order_id(order: OrderLike) -> Optional[EntityId]:
    if isinstance(order, OrderRecord):
        return order.id
    if isinstance(order, Mapping):
        for key in ("id", "Id", "orderId", "OrderId"):
            if order.get(key):
                return order[key]
        return None
    return order or None
