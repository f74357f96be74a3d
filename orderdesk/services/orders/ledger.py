"""
Line-item ledger for draft orders.

Ordered list of items keyed by product id, kept in insertion order. Adding a
product that is already present bumps its quantity instead of adding a row.
Edits are merged as given; quantity and price are validated at save time.
"""

from typing import Any, Iterator, Optional

from orderdesk.core.config import get_settings
from orderdesk.core.exceptions import OrderDeskError
from orderdesk.core.logging import get_logger
from orderdesk.schemas.orders import OrderItem, ProductSnapshot
from orderdesk.services.orders.money import to_decimal, to_quantity

logger = get_logger(__name__)

EDITABLE_FIELDS = frozenset({"quantity", "unit_price", "note"})


class LedgerError(OrderDeskError):
    """Raised for an unknown position or field in a ledger operation."""

    pass


def resolve_unit_type(product: ProductSnapshot, default: Optional[str] = None) -> str:
    """
    Unit label for a new item.

    Priority: category unit type, category unit hint on the product, the
    product's own unit field, then the configured default.
    """
    candidates = (
        product.category.unit_type if product.category else None,
        product.category_unit,
        product.unit,
    )
    for candidate in candidates:
        if candidate and str(candidate).strip():
            return str(candidate).strip()
    return default or get_settings().default_unit_type


class LineItemLedger:
    """Ordered, product-keyed list of order items."""

    def __init__(self, items: Optional[list[OrderItem]] = None):
        self._items: list[OrderItem] = [item.model_copy() for item in items or []]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[OrderItem]:
        return iter(self._items)

    def __getitem__(self, index: int) -> OrderItem:
        return self._items[self._check_index(index)]

    @property
    def items(self) -> list[OrderItem]:
        """Copy of the item list in ledger order."""
        return list(self._items)

    def index_of(self, product_id: Any) -> Optional[int]:
        """Position of the item for product_id, or None."""
        for position, item in enumerate(self._items):
            if item.product_id is not None and str(item.product_id) == str(product_id):
                return position
        return None

    def add_from_product(self, product: ProductSnapshot) -> int:
        """
        Add one unit of product.

        Args:
            product: Product snapshot selected by the user

        Returns:
            Position of the affected item
        """
        position = self.index_of(product.id)
        if position is not None:
            item = self._items[position]
            item.quantity = to_quantity(item.quantity) + 1
            logger.debug(
                "Ledger quantity incremented",
                product_id=str(product.id),
                quantity=item.quantity,
            )
            return position

        self._items.append(
            OrderItem(
                product_id=product.id,
                product_name=product.name,
                category_name=product.category_name,
                unit_type=resolve_unit_type(product),
                quantity=1,
                unit_price=product.price,
                note="",
            )
        )
        logger.debug("Ledger item added", product_id=str(product.id))
        return len(self._items) - 1

    def update_item(self, index: int, **fields: Any) -> OrderItem:
        """
        Merge quantity, unit_price and/or note into the item at index.

        Values are converted but not clamped.

        Raises:
            LedgerError: On unknown fields or an out-of-range index
        """
        position = self._check_index(index)
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise LedgerError(
                f"Cannot update item fields: {', '.join(sorted(unknown))}",
                fields=sorted(unknown),
            )

        patch: dict[str, Any] = {}
        if "quantity" in fields:
            patch["quantity"] = to_quantity(fields["quantity"])
        if "unit_price" in fields:
            patch["unit_price"] = to_decimal(fields["unit_price"])
        if "note" in fields:
            patch["note"] = "" if fields["note"] is None else str(fields["note"])

        current = self._items[position]
        updated = OrderItem.model_validate({**current.model_dump(), **patch})
        self._items[position] = updated
        return updated

    def remove_item(self, index: int) -> OrderItem:
        """
        Delete the item at index; the others keep their relative order.

        Raises:
            LedgerError: If index is out of range
        """
        position = self._check_index(index)
        removed = self._items.pop(position)
        logger.debug("Ledger item removed", product_id=str(removed.product_id))
        return removed

    def _check_index(self, index: int) -> int:
        if not isinstance(index, int) or isinstance(index, bool):
            raise LedgerError(f"Invalid item position: {index!r}", index=index)
        if index < 0 or index >= len(self._items):
            raise LedgerError(
                f"Item position {index} out of range",
                index=index,
                size=len(self._items),
            )
        return index
