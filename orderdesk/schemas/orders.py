"""
Order composition Pydantic schemas for API reads and writes.

This module defines the snapshot value objects copied out of API responses
(customers, products, order records) and the upsert payload sent back to the
API. Snapshots are built with ``from_record`` constructors that tolerate the
backend's historical field spellings, so the rest of the engine only deals
with one shape.
"""

from decimal import Decimal
from typing import Annotated, Any, Mapping, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
)
from pydantic.alias_generators import to_pascal

from orderdesk.core.config import get_settings
from orderdesk.services.orders.money import line_total, to_decimal, to_quantity

EntityId = Union[int, str]

# JSON payloads carry amounts as numbers
Amount = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first value under keys that is neither None nor blank."""
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return default


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "sim")
    return bool(value)


class AddressSnapshot(BaseModel):
    """Delivery address copied from a customer or order record."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    street: str = ""
    number: str = ""
    neighborhood: str = ""
    city: str = ""
    state: str = ""
    apartment: bool = False
    apartment_number: str = ""

    @classmethod
    def from_record(
        cls, data: Mapping[str, Any], prefer_flat: bool = False
    ) -> "AddressSnapshot":
        """
        Build an address from a nested ``address`` object or flat fields.

        By default nested values win over flat ones, matching how the customer
        endpoint returns its canonical address. Order records carry the
        address they were saved with as flat fields, so they pass
        ``prefer_flat=True``.
        """
        nested = data.get("address") or data.get("Address") or {}
        if not isinstance(nested, Mapping):
            nested = {}

        first, second = (data, nested) if prefer_flat else (nested, data)

        def field(*names: str) -> Any:
            value = _pick(first, *names)
            if value is None:
                value = _pick(second, *names)
            return value

        apartment = field("apartment", "Apartment")
        return cls(
            street=_text(field("street", "Street", "customerStreet", "CustomerStreet")),
            number=_text(field("number", "Number", "customerNumber", "CustomerNumber")),
            neighborhood=_text(field("neighborhood", "Neighborhood")),
            city=_text(field("city", "City")),
            state=_text(field("state", "State")),
            apartment=_flag(apartment) if apartment is not None else False,
            apartment_number=_text(
                field(
                    "numberApartment",
                    "NumberApartment",
                    "customerNumberApartment",
                    "CustomerNumberApartment",
                )
            ),
        )

    def is_empty(self) -> bool:
        """True when no address field carries a value."""
        return not any(
            (self.street, self.number, self.neighborhood, self.city, self.state)
        ) and not self.apartment_number


class CustomerSnapshot(BaseModel):
    """Customer read model captured at selection time."""

    model_config = ConfigDict(frozen=True)

    id: Optional[EntityId] = None
    name: str = ""
    phone: str = ""
    address: AddressSnapshot = Field(default_factory=AddressSnapshot)

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "CustomerSnapshot":
        return cls(
            id=_pick(data, "id", "Id", "customerId", "CustomerId"),
            name=_text(_pick(data, "name", "Name", "nome")),
            phone=_text(
                _pick(data, "cellPhone", "CellPhone", "cellphone", "phone", "Phone")
            ),
            address=AddressSnapshot.from_record(data),
        )


class CategorySnapshot(BaseModel):
    """Product category name and unit type."""

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    unit_type: Optional[str] = None


class ProductSnapshot(BaseModel):
    """Product read model captured at selection time."""

    model_config = ConfigDict(frozen=True)

    id: EntityId
    name: str = ""
    price: Amount = Decimal("0")
    category: Optional[CategorySnapshot] = None
    category_unit: Optional[str] = None
    unit: Optional[str] = None

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "ProductSnapshot":
        raw_category = data.get("category") or data.get("Category")
        category = None
        if isinstance(raw_category, Mapping):
            category = CategorySnapshot(
                name=_pick(raw_category, "name", "Name", "categoryName"),
                unit_type=_pick(raw_category, "unitType", "UnitType"),
            )
        category_name = _pick(data, "categoryName", "CategoryName")
        if category_name is None and isinstance(raw_category, str):
            category_name = raw_category
        if category_name and (category is None or not category.name):
            category = CategorySnapshot(
                name=category_name,
                unit_type=category.unit_type if category else None,
            )

        return cls(
            id=_pick(data, "id", "Id", "productId", "ProductId"),
            name=_text(_pick(data, "name", "Name", "productName")),
            price=to_decimal(_pick(data, "price", "Price", "unitPrice")),
            category=category,
            category_unit=_pick(data, "categoryUnit", "categoryUnitType"),
            unit=_pick(data, "unit", "unitType", "unitOfMeasure", "Unit"),
        )

    @property
    def category_name(self) -> Optional[str]:
        return self.category.name if self.category else None


class OrderItem(BaseModel):
    """Line item on a draft order.

    Name, category, unit and price are copied from the product when the item
    is added and are never re-resolved afterwards.
    """

    model_config = ConfigDict(validate_assignment=True)

    product_id: Optional[EntityId] = None
    product_name: str = ""
    category_name: Optional[str] = None
    unit_type: str = "unit"
    quantity: int = 1
    unit_price: Amount = Decimal("0")
    note: str = ""

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "OrderItem":
        category = data.get("category")
        category = category if isinstance(category, Mapping) else {}
        unit_type = _pick(
            data, "unitType", "UnitType", "unit", "Unit", "categoryUnit"
        ) or _pick(category, "unitType", "categoryUnit")
        return cls(
            product_id=_pick(data, "productId", "ProductId", "id"),
            product_name=_text(_pick(data, "productName", "ProductName", "name")),
            category_name=_pick(data, "categoryName") or _pick(category, "name", "categoryName"),
            unit_type=unit_type or get_settings().default_unit_type,
            quantity=to_quantity(_pick(data, "quantity", "Quantity", "qty"), default=1),
            unit_price=to_decimal(_pick(data, "unitPrice", "UnitPrice", "price")),
            note=_text(_pick(data, "notes", "Notes", "note", "Note")),
        )

    @property
    def line_total(self) -> Decimal:
        return line_total(self.quantity, self.unit_price)


class OrderRecord(BaseModel):
    """Order as returned by the order fetch and upsert endpoints."""

    model_config = ConfigDict(frozen=True)

    id: Optional[EntityId] = None
    customer_id: Optional[EntityId] = None
    customer_name: str = ""
    customer_phone: str = ""
    is_delivery: bool = False
    address: AddressSnapshot = Field(default_factory=AddressSnapshot)
    items: list[OrderItem] = Field(default_factory=list)
    discount: Amount = Decimal("0")
    delivery_fee: Amount = Decimal("0")
    amount_paid: Amount = Decimal("0")
    status: Optional[str] = None
    delivery_date: Optional[str] = None

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "OrderRecord":
        customer = data.get("customer") or data.get("Customer")
        customer_id = _pick(data, "customerId", "CustomerId")
        if isinstance(customer, Mapping):
            customer_data: Mapping[str, Any] = customer
            if customer_id is None:
                customer_id = _pick(customer, "id", "Id")
        else:
            customer_data = {}
            if customer_id is None and customer is not None:
                customer_id = customer

        address = AddressSnapshot.from_record(data, prefer_flat=True)
        if address.is_empty() and customer_data:
            address = AddressSnapshot.from_record(customer_data)

        raw_items = data.get("items") or data.get("Items") or []
        is_delivery = _pick(data, "isDelivery", "IsDelivery")

        return cls(
            id=_pick(data, "id", "Id", "orderId", "OrderId"),
            customer_id=customer_id,
            customer_name=_text(
                _pick(data, "customerName", "CustomerName")
                or _pick(customer_data, "name", "Name")
            ),
            customer_phone=_text(
                _pick(
                    data,
                    "customerCellPhone",
                    "customerCell",
                    "customerPhone",
                    "cellPhone",
                    "CellPhone",
                )
                or _pick(customer_data, "cellPhone", "CellPhone", "phone")
            ),
            is_delivery=_flag(is_delivery) if is_delivery is not None else False,
            address=address,
            items=[OrderItem.from_record(item) for item in raw_items],
            discount=to_decimal(_pick(data, "discount", "Discount")),
            delivery_fee=to_decimal(_pick(data, "deliveryFee", "DeliveryFee")),
            amount_paid=to_decimal(_pick(data, "amountPaid", "AmountPaid")),
            status=_pick(data, "orderStatus", "OrderStatus", "status", "Status"),
            delivery_date=_pick(data, "deliveryDate", "DeliveryDate"),
        )


class _PascalModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)


class UpsertCustomer(_PascalModel):
    """Customer block of the upsert payload."""

    name: Optional[str] = None
    cell_phone: Optional[str] = None
    street: Optional[str] = None
    number: Optional[str] = None
    neighborhood: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    apartment: Optional[bool] = None
    number_apartment: Optional[str] = None


class UpsertItem(_PascalModel):
    """Line item of the upsert payload."""

    product_id: Optional[EntityId] = None
    product_name: str
    unit_price: Amount
    quantity: int
    notes: str = ""


class UpsertPayload(_PascalModel):
    """Full order snapshot accepted by ``POST /api/orders/upsert``."""

    order_id: Optional[EntityId] = None
    customer_id: Optional[EntityId] = None
    customer: UpsertCustomer
    discount: Amount
    is_delivery: bool
    delivery_fee: Amount
    amount_paid: Amount
    items: list[UpsertItem]
    delivery_date: Optional[str] = None
    order_status: str

    def to_wire(self) -> dict[str, Any]:
        """Serialize with backend field names, dropping absent values."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
