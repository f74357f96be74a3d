"""
Order editor service orchestrating the composition engine.

This module implements the OrderEditorService, the single entry point the
dashboard UI talks to while a draft order is open. It wires the resolvers,
address cascade, ledger, pricing, slot validation and outbound composer
together, and owns the save flow: validate, compose the payload, upsert, and
replace the draft with the server's canonical order on success.
"""

from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from orderdesk.core.config import get_settings
from orderdesk.core.exceptions import (
    LookupFailure,
    OrderValidationError,
    PersistenceFailure,
)
from orderdesk.core.logging import get_logger, log_performance, set_session_id
from orderdesk.schemas.orders import (
    AddressSnapshot,
    CustomerSnapshot,
    EntityId,
    OrderRecord,
    ProductSnapshot,
    UpsertPayload,
)
from orderdesk.services.api.client import ApiClientError, OrderDeskApiClient
from orderdesk.services.cache.lookup_cache import LookupCache
from orderdesk.services.notifications.channels import MessagingChannel, PrintChannel
from orderdesk.services.orders.address_cascade import AddressCascade
from orderdesk.services.orders.composer import OrderLike, OutboundComposer, digits_only
from orderdesk.services.orders.delivery_slot import DeliverySlotValidator
from orderdesk.services.orders.draft import OrderDraft
from orderdesk.services.orders.enums import OrderStatus
from orderdesk.services.orders.pricing import OrderTotals
from orderdesk.services.orders.state_machine import StatusCanonicalizer, StatusLike
from orderdesk.services.resolvers.resolver import CustomerResolver, ProductResolver

logger = get_logger(__name__)

ADDRESS_FIELDS = frozenset(
    {"street", "number", "neighborhood", "city", "state", "apartment", "apartment_number"}
)


class SaveResult(BaseModel):
    """Outcome of ``OrderEditorService.save``."""

    model_config = ConfigDict(frozen=True)

    success: bool
    message: str
    order_id: Optional[EntityId] = None
    created: bool = False
    order: Optional[OrderRecord] = None
    errors: list[str] = Field(default_factory=list)


class OrderEditorService:
    """
    Editing session for one draft order.

    Attributes:
        draft: Order being edited
        customer_resolver: Customer search (disabled for existing orders)
        product_resolver: Product search
        cascade: Address cascade from the selected customer
        composer: Outbound payload/print/message renderer
    """

    def __init__(
        self,
        client: OrderDeskApiClient,
        cache: Optional[LookupCache] = None,
        clock: Optional[Callable[[], datetime]] = None,
        composer: Optional[OutboundComposer] = None,
        print_channel: Optional[PrintChannel] = None,
        messaging_channel: Optional[MessagingChannel] = None,
        debounce_seconds: Optional[float] = None,
    ):
        """
        Initialize editor service.

        Args:
            client: API client
            cache: Lookup cache shared with other dashboard widgets
            clock: Current local time provider
            composer: Outbound composer
            print_channel: Print service link builder
            messaging_channel: Customer messaging link builder
            debounce_seconds: Search quiet period (defaults to settings)
        """
        settings = get_settings()
        self.client = client
        self.cache = cache or LookupCache()
        self._clock = clock or datetime.now
        self.canonicalizer = StatusCanonicalizer(settings.default_status)
        self.slot_validator = DeliverySlotValidator(self._clock)
        self.composer = composer or OutboundComposer(self.canonicalizer)
        self.print_channel = print_channel or PrintChannel(client.base_url)
        self.messaging_channel = messaging_channel or MessagingChannel()
        self.customer_resolver = CustomerResolver(client, debounce_seconds=debounce_seconds)
        self.product_resolver = ProductResolver(client, debounce_seconds=debounce_seconds)
        self.cascade = AddressCascade(client, self.cache)
        self.draft = self._new_draft()
        self.session_id = set_session_id()

        logger.info(
            "OrderEditorService initialized",
            base_url=client.base_url,
        )

    def _new_draft(self) -> OrderDraft:
        return OrderDraft(status=self.canonicalizer.default_status, now=self._clock())

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def load_catalog(self) -> None:
        """Fill the resolvers' local collections from the lookup cache."""
        customers = await self._load_collection(
            LookupCache.CUSTOMERS_KEY, self.client.list_customers
        )
        products = await self._load_collection(
            LookupCache.PRODUCTS_KEY, self.client.list_products
        )
        self.customer_resolver.set_local_collection(customers)
        self.product_resolver.set_local_collection(products)

    async def refresh_catalog(self) -> None:
        """Invalidate cached collections and customer records, then reload."""
        self.cache.invalidate(LookupCache.CUSTOMERS_KEY)
        self.cache.invalidate(LookupCache.PRODUCTS_KEY)
        self.cache.invalidate_prefix(LookupCache.CUSTOMER_PREFIX)
        await self.load_catalog()

    async def _load_collection(self, key: str, loader) -> list:
        try:
            return list(await self.cache.get_or_load(key, loader))
        except ApiClientError as e:
            logger.warning(
                "Could not load local collection",
                cache_key=key,
                error=str(e),
            )
            return []

    async def start_new(self) -> OrderDraft:
        """Discard the current draft and start an empty new order."""
        self.draft = self._new_draft()
        self.cascade.reset()
        self.customer_resolver.enable()
        self.customer_resolver.clear()
        self.product_resolver.clear()
        logger.info("New draft started")
        return self.draft

    async def open(self, order_id: EntityId) -> OrderDraft:
        """
        Load an existing order for editing.

        The customer identity comes from the order itself; live customer
        search is disabled. For deliveries the customer's canonical address
        and phone are refreshed.

        Raises:
            LookupFailure: If the order cannot be fetched
        """
        try:
            record = await self.client.get_order(order_id)
        except ApiClientError as e:
            logger.error("Failed to load order", order_id=str(order_id), error=str(e))
            raise LookupFailure(
                "Erro ao carregar dados do pedido",
                order_id=str(order_id),
                status_code=e.status_code,
            ) from e

        self._adopt(record)
        if self.draft.is_delivery and self.draft.customer_id is not None:
            self.cache.invalidate(LookupCache.customer_key(self.draft.customer_id))
            await self.cascade.on_customer_changed(self.draft)

        logger.info(
            "Order opened for editing",
            order_id=str(order_id),
            item_count=len(self.draft.ledger),
        )
        return self.draft

    def _adopt(self, record: OrderRecord) -> None:
        self.draft = OrderDraft.from_record(
            record, canonicalizer=self.canonicalizer, now=self._clock()
        )
        self.cascade.reset()
        self.cascade.mark_applied(self.draft.customer_id if self.draft.is_delivery else None)
        self.customer_resolver.disable()
        self.customer_resolver.query = self.draft.customer_name
        self.product_resolver.clear()

    # ------------------------------------------------------------------
    # Customer, address and delivery
    # ------------------------------------------------------------------

    async def search_customers(self, query: str) -> list[CustomerSnapshot]:
        """
        Debounced customer search; returns the resolver's current results.

        On a new order the typed text becomes the customer name, and a
        previously selected customer is dropped along with its phone and
        cascaded address.
        """
        if self.draft.is_new:
            if self.draft.customer_id is not None:
                self._drop_selected_customer()
            self.draft.customer_name = query or ""
        await self.customer_resolver.search(query)
        return list(self.customer_resolver.results)

    def _drop_selected_customer(self) -> None:
        customer_id = self.draft.customer_id
        if self.cascade.applied_for == str(customer_id):
            self.draft.address = AddressSnapshot()
        self.draft.clear_customer()
        self.cascade.reset()
        logger.info("Customer selection dropped", customer_id=str(customer_id))

    async def search_products(self, query: str) -> list[ProductSnapshot]:
        """Debounced product search; returns the resolver's current results."""
        await self.product_resolver.search(query)
        return list(self.product_resolver.results)

    async def select_customer(self, customer: CustomerSnapshot) -> None:
        """
        Select a customer for a new order and cascade its address.

        Raises:
            OrderValidationError: If the draft is an existing order
        """
        if not self.draft.is_new:
            raise OrderValidationError(
                "O cliente de um pedido existente não pode ser alterado",
                order_id=str(self.draft.order_id),
            )
        self.draft.apply_customer(customer)
        self.customer_resolver.query = customer.name
        logger.info("Customer selected", customer_id=str(customer.id))
        await self.cascade.on_customer_changed(self.draft)

    def set_customer_phone(self, phone: str) -> None:
        self.draft.customer_phone = phone or ""

    async def set_delivery(self, enabled: bool) -> None:
        """Switch between delivery and pickup."""
        self.draft.is_delivery = bool(enabled)
        await self.cascade.on_delivery_toggled(self.draft)

    def update_address(self, **fields: Any) -> None:
        """
        Manual address edit; never triggers the cascade.

        Raises:
            OrderValidationError: On unknown address fields
        """
        unknown = set(fields) - ADDRESS_FIELDS
        if unknown:
            raise OrderValidationError(
                f"Campos de endereço desconhecidos: {', '.join(sorted(unknown))}",
                fields=sorted(unknown),
            )
        self.draft.address = AddressSnapshot.model_validate(
            {**self.draft.address.model_dump(), **fields}
        )

    # ------------------------------------------------------------------
    # Ledger, status and financials
    # ------------------------------------------------------------------

    def add_product(self, product: ProductSnapshot) -> int:
        """Add one unit of product and reset the product search."""
        position = self.draft.ledger.add_from_product(product)
        self.product_resolver.clear()
        return position

    def update_item(self, index: int, **fields: Any) -> None:
        self.draft.ledger.update_item(index, **fields)

    def remove_item(self, index: int) -> None:
        self.draft.ledger.remove_item(index)

    def set_status(self, status: StatusLike) -> OrderStatus:
        """Change the draft's status through the transition check."""
        self.draft.status = self.canonicalizer.transition(self.draft.status, status)
        return self.draft.status

    def set_financials(
        self,
        discount: Any = None,
        delivery_fee: Any = None,
        amount_paid: Any = None,
    ) -> None:
        self.draft.set_financials(discount, delivery_fee, amount_paid)

    def set_delivery_slot(self, date_field: str, time_field: str) -> None:
        self.draft.delivery_date = date_field or ""
        self.draft.delivery_time = time_field or ""

    @property
    def totals(self) -> OrderTotals:
        return self.draft.totals

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def validate_for_save(self) -> Optional[datetime]:
        """
        Check the draft before saving.

        Returns:
            Validated delivery slot, or None if none could be composed

        Raises:
            OrderValidationError: With every problem found under ``errors``
        """
        draft = self.draft
        errors: list[str] = []

        if not draft.customer_name.strip():
            errors.append("Informe o nome do cliente")
        if len(draft.ledger) == 0:
            errors.append("Adicione ao menos um item")
        for position, item in enumerate(draft.ledger, start=1):
            if item.quantity < 1:
                errors.append(f"Item {position}: a quantidade deve ser pelo menos 1")
            if item.unit_price < 0:
                errors.append(f"Item {position}: o preço não pode ser negativo")
        for label, value in (
            ("desconto", draft.discount),
            ("taxa de entrega", draft.delivery_fee),
            ("valor pago", draft.amount_paid),
        ):
            if value < 0:
                errors.append(f"O {label} não pode ser negativo")

        slot = None
        try:
            slot = self.slot_validator.validate(draft.delivery_date, draft.delivery_time)
        except OrderValidationError as e:
            errors.append(e.message)

        if errors:
            raise OrderValidationError(errors[0], errors=errors)
        return slot

    async def save(self) -> SaveResult:
        """
        Validate, upsert and adopt the server's order.

        On any failure the draft is left exactly as it was.

        Returns:
            SaveResult describing success or the user-facing failure
        """
        try:
            slot = self.validate_for_save()
        except OrderValidationError as e:
            logger.info("Order save blocked by validation", errors=e.context.get("errors"))
            return SaveResult(
                success=False,
                message=e.message,
                order_id=self.draft.order_id,
                errors=list(e.context.get("errors", [e.message])),
            )

        draft = self.draft
        phone = draft.customer_phone
        if not phone.strip() and draft.customer_id is not None:
            phone = await self._fetch_customer_phone(draft.customer_id) or ""

        raw_delivery_date = None
        if slot is None and draft.delivery_date and draft.delivery_time:
            raw_delivery_date = f"{draft.delivery_date}T{draft.delivery_time}"

        payload = self.composer.build_upsert_payload(
            draft,
            delivery_slot=slot,
            raw_delivery_date=raw_delivery_date,
            customer_phone=phone,
        )
        created = draft.is_new

        try:
            saved = await self._persist(payload)
        except PersistenceFailure as e:
            return SaveResult(
                success=False,
                message=e.message,
                order_id=draft.order_id,
                errors=[e.message],
            )

        if self.draft is not draft:
            logger.warning(
                "Draft replaced while saving, keeping newer draft",
                order_id=str(saved.id),
            )
        else:
            self._adopt(saved)

        message = "Pedido criado com sucesso" if created else "Pedido salvo com sucesso"
        logger.info("Order saved", order_id=str(saved.id), created=created)
        return SaveResult(
            success=True,
            message=message,
            order_id=saved.id,
            created=created,
            order=saved,
        )

    async def _persist(self, payload: UpsertPayload) -> OrderRecord:
        with log_performance(logger, "order_upsert", order_id=str(payload.order_id)):
            try:
                return await self.client.upsert_order(payload)
            except ApiClientError as e:
                raise PersistenceFailure(
                    "Erro ao salvar pedido",
                    status_code=e.status_code,
                    detail=str(e),
                ) from e
            except ValueError as e:
                raise PersistenceFailure(
                    "Erro ao salvar pedido",
                    detail=str(e),
                ) from e

    async def _fetch_customer_phone(self, customer_id: EntityId) -> Optional[str]:
        try:
            customer = await self.cascade.fetch_customer(customer_id)
        except LookupFailure as e:
            logger.warning(
                "Customer phone lookup failed",
                customer_id=str(customer_id),
                error=e.message,
            )
            return None
        return customer.phone or None

    # ------------------------------------------------------------------
    # Print and messaging
    # ------------------------------------------------------------------

    def print_references(
        self,
        visible_orders: Optional[Iterable[OrderLike]] = None,
    ) -> list[EntityId]:
        """
        Ids to print: the visible list when given, else this draft.

        Raises:
            OrderValidationError: If a visible list has no printable order
        """
        if visible_orders is not None:
            return self.composer.select_print_ids(visible_orders)
        return self.composer.print_ids_for_draft(self.draft)

    def send_to_print(
        self,
        visible_orders: Optional[Iterable[OrderLike]] = None,
        kitchen: bool = False,
    ) -> str:
        """Hand the selected ids to the print service; returns the link."""
        return self.print_channel.send(self.print_references(visible_orders), kitchen=kitchen)

    async def resolve_phone(self) -> str:
        """
        Digits-only phone for messaging.

        Tries the draft, then the canonical customer record, then the local
        customer collection. Returns an empty string if all are blank.
        """
        phone = digits_only(self.draft.customer_phone)
        customer_id = self.draft.customer_id
        if phone or customer_id is None:
            return phone

        fetched = await self._fetch_customer_phone(customer_id)
        if fetched and digits_only(fetched):
            self.draft.customer_phone = fetched
            return digits_only(fetched)

        local = self.customer_resolver.find_local(customer_id)
        if local is not None:
            return digits_only(local.phone)
        return ""

    async def compose_message(self) -> tuple[str, str]:
        """
        Phone and message body for the customer.

        Raises:
            OrderValidationError: If no phone is available
        """
        phone = await self.resolve_phone()
        body = self.composer.build_message(self.draft, phone)
        return phone, body

    async def send_message(self) -> str:
        """Open the customer message; returns the messaging link."""
        phone, body = await self.compose_message()
        return self.messaging_channel.send(phone, body)
