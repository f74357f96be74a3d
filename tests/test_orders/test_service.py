"""
Tests for OrderEditorService.

Exercises the editing session end to end against a mocked API client:
opening and starting drafts, customer selection with address cascade,
ledger edits, the save flow, printing and customer messaging.
"""

from decimal import Decimal
from typing import Callable
from unittest.mock import MagicMock

import httpx
import pytest

from orderdesk.core.exceptions import LookupFailure, OrderValidationError
from orderdesk.schemas.orders import (
    AddressSnapshot,
    CustomerSnapshot,
    OrderItem,
    OrderRecord,
    ProductSnapshot,
    UpsertPayload,
)
from orderdesk.services.api.client import ApiConnectionError, ApiResponseError
from orderdesk.services.notifications.channels import MessagingChannel, PrintChannel
from orderdesk.services.orders.enums import OrderStatus
from orderdesk.services.orders.service import OrderEditorService, SaveResult


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def opener() -> MagicMock:
    return MagicMock()


@pytest.fixture
def service(mock_client: MagicMock, clock: Callable, opener: MagicMock) -> OrderEditorService:
    """Editor service with no debounce and mocked link openers."""
    return OrderEditorService(
        mock_client,
        clock=clock,
        print_channel=PrintChannel("http://api.test", opener=opener),
        messaging_channel=MessagingChannel(opener=opener),
        debounce_seconds=0,
    )


@pytest.fixture
def saved_record(customer_address: AddressSnapshot) -> OrderRecord:
    """Order as returned by the upsert endpoint."""
    return OrderRecord(
        id=101,
        customer_id=7,
        customer_name="Maria Souza",
        customer_phone="(19) 99876-5432",
        is_delivery=True,
        address=customer_address,
        items=[
            OrderItem(
                product_id=1,
                product_name="Pão de Queijo",
                unit_type="kg",
                quantity=2,
                unit_price=Decimal("50"),
            )
        ],
        amount_paid=Decimal("40"),
        status="OrderPlaced",
        delivery_date="2024-06-02T09:30:00",
    )


@pytest.fixture
def existing_record() -> OrderRecord:
    """Stored delivery order with a stale address."""
    return OrderRecord(
        id=42,
        customer_id=7,
        customer_name="Maria Souza",
        is_delivery=True,
        address=AddressSnapshot(street="Endereço antigo"),
        items=[
            OrderItem(product_id=2, product_name="Bolo de Cenoura", quantity=1, unit_price=Decimal("35.90"))
        ],
        status="Pedido Confirmado",
        delivery_date="2024-06-03T10:00:00",
    )


async def fill_new_order(service: OrderEditorService, maria: CustomerSnapshot, bread: ProductSnapshot) -> None:
    await service.select_customer(maria)
    service.add_product(bread)
    service.add_product(bread)
    service.set_financials(amount_paid="40")
    service.set_delivery_slot("2024-06-02", "09:30")


def sent_payload(mock_client: MagicMock) -> dict:
    payload = mock_client.upsert_order.await_args.args[0]
    assert isinstance(payload, UpsertPayload)
    return payload.to_wire()


# ============================================================================
# Session Lifecycle Tests
# ============================================================================


class TestSessionLifecycle:
    """Test starting, opening and catalog loading."""

    def test_initial_draft(self, service):
        draft = service.draft

        assert draft.is_new
        assert draft.status is OrderStatus.ORDER_PLACED
        assert draft.is_delivery is True
        assert (draft.delivery_date, draft.delivery_time) == ("2024-06-01", "12:00")
        assert service.customer_resolver.enabled

    @pytest.mark.asyncio
    async def test_open_existing_order(self, service, mock_client, existing_record, customer_address):
        mock_client.get_order.return_value = existing_record

        draft = await service.open(42)

        mock_client.get_order.assert_awaited_once_with(42)
        assert draft.order_id == 42
        assert draft.status is OrderStatus.CONFIRMED
        assert (draft.delivery_date, draft.delivery_time) == ("2024-06-03", "10:00")
        assert draft.address == customer_address
        assert draft.customer_phone == "(19) 99876-5432"
        assert service.customer_resolver.enabled is False
        assert service.customer_resolver.query == "Maria Souza"

    @pytest.mark.asyncio
    async def test_open_pickup_does_not_cascade(self, service, mock_client, existing_record):
        mock_client.get_order.return_value = existing_record.model_copy(update={"is_delivery": False})

        draft = await service.open(42)

        assert draft.address == AddressSnapshot(street="Endereço antigo")
        mock_client.get_customer.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_open_failure(self, service, mock_client):
        mock_client.get_order.side_effect = ApiResponseError("not found", status_code=404)

        with pytest.raises(LookupFailure) as exc_info:
            await service.open(42)

        assert exc_info.value.message == "Erro ao carregar dados do pedido"
        assert service.draft.is_new

    @pytest.mark.asyncio
    async def test_open_unparseable_order(self, api_client_factory, clock):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={"id": 5, "items": [{"productId": 1, "quantity": "2.5"}]},
            )

        service = OrderEditorService(api_client_factory(handler), clock=clock, debounce_seconds=0)

        with pytest.raises(LookupFailure) as exc_info:
            await service.open(5)

        assert exc_info.value.message == "Erro ao carregar dados do pedido"
        assert service.draft.is_new

    @pytest.mark.asyncio
    async def test_start_new_after_open(self, service, mock_client, existing_record):
        mock_client.get_order.return_value = existing_record
        await service.open(42)

        draft = await service.start_new()

        assert draft.is_new
        assert len(draft.ledger) == 0
        assert service.customer_resolver.enabled

    @pytest.mark.asyncio
    async def test_start_new_restores_local_results(self, service, mock_client, maria, bread):
        mock_client.list_customers.return_value = [maria]
        mock_client.list_products.return_value = [bread]
        await service.load_catalog()
        await service.search_customers("Jo")
        await service.search_products("bolo")

        await service.start_new()

        assert service.customer_resolver.results == [maria]
        assert service.product_resolver.results == [bread]

    @pytest.mark.asyncio
    async def test_load_catalog(self, service, mock_client, maria, bread):
        mock_client.list_customers.return_value = [maria]
        mock_client.list_products.return_value = [bread]

        await service.load_catalog()
        await service.load_catalog()

        assert service.customer_resolver.results == [maria]
        assert service.product_resolver.results == [bread]
        mock_client.list_customers.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_refresh_catalog_reloads(self, service, mock_client):
        await service.load_catalog()
        await service.refresh_catalog()

        assert mock_client.list_customers.await_count == 2
        assert mock_client.list_products.await_count == 2

    @pytest.mark.asyncio
    async def test_catalog_failure_leaves_empty_collection(self, service, mock_client, bread):
        mock_client.list_customers.side_effect = ApiConnectionError("offline")
        mock_client.list_products.return_value = [bread]

        await service.load_catalog()

        assert service.customer_resolver.local_items == []
        assert service.product_resolver.local_items == [bread]


# ============================================================================
# Editing Tests
# ============================================================================


class TestEditing:
    """Test customer, address, ledger and status edits."""

    @pytest.mark.asyncio
    async def test_select_customer_cascades_address(self, service, maria, customer_address):
        await service.select_customer(maria)

        assert service.draft.customer_id == 7
        assert service.draft.address == customer_address
        assert service.customer_resolver.query == "Maria Souza"

    @pytest.mark.asyncio
    async def test_select_customer_refused_for_existing_order(
        self, service, mock_client, existing_record, joao
    ):
        mock_client.get_order.return_value = existing_record
        await service.open(42)

        with pytest.raises(OrderValidationError):
            await service.select_customer(joao)

        assert service.draft.customer_id == 7

    @pytest.mark.asyncio
    async def test_customer_search_disabled_for_existing_order(
        self, service, mock_client, existing_record
    ):
        mock_client.get_order.return_value = existing_record
        await service.open(42)

        await service.search_customers("Jo")

        mock_client.search_customers.assert_not_awaited()
        assert service.draft.customer_name == "Maria Souza"

    @pytest.mark.asyncio
    async def test_search_customers_sets_name_for_new_order(self, service, mock_client, maria):
        mock_client.search_customers.return_value = [maria]

        results = await service.search_customers("Mari")

        assert results == [maria]
        assert service.draft.customer_name == "Mari"

    @pytest.mark.asyncio
    async def test_retyping_name_drops_selected_customer(self, service, maria):
        await service.select_customer(maria)

        await service.search_customers("Carlos Novo")

        draft = service.draft
        assert draft.customer_name == "Carlos Novo"
        assert draft.customer_id is None
        assert draft.customer_phone == ""
        assert draft.address == AddressSnapshot()
        assert service.cascade.applied_for is None

    @pytest.mark.asyncio
    async def test_retyping_name_keeps_manual_address(self, service):
        service.update_address(street="Rua Manual", number="5")

        await service.search_customers("Carlos")

        assert service.draft.address.street == "Rua Manual"

    @pytest.mark.asyncio
    async def test_reselect_after_retyping_cascades_again(self, service, mock_client, maria, customer_address):
        await service.select_customer(maria)
        await service.search_customers("Mar")

        await service.select_customer(maria)

        assert service.draft.customer_id == 7
        assert service.draft.address == customer_address
        assert mock_client.get_customer.await_count == 1

    @pytest.mark.asyncio
    async def test_delivery_toggle_keeps_manual_address(self, service, mock_client, maria):
        await service.select_customer(maria)
        service.update_address(street="Rua Manual", number="5")

        await service.set_delivery(False)
        await service.set_delivery(True)

        assert service.draft.address.street == "Rua Manual"
        assert service.draft.address.number == "5"
        assert service.draft.address.city == "Campinas"
        assert mock_client.get_customer.await_count == 1

    def test_update_address_unknown_field(self, service):
        with pytest.raises(OrderValidationError):
            service.update_address(zip_code="13000-000")

    @pytest.mark.asyncio
    async def test_add_product_resets_product_search(self, service, mock_client, bread, cake):
        service.product_resolver.set_local_collection([bread, cake])
        mock_client.search_products.return_value = [bread]
        await service.search_products("pão")

        position = service.add_product(bread)

        assert position == 0
        assert service.product_resolver.query == ""
        assert service.product_resolver.results == [bread, cake]

    def test_item_edits(self, service, bread, cake):
        service.add_product(bread)
        service.add_product(cake)

        service.update_item(1, quantity=3)
        service.remove_item(0)

        assert [(i.product_id, i.quantity) for i in service.draft.items] == [(2, 3)]

    def test_set_status(self, service):
        assert service.set_status("Concluído") is OrderStatus.FINISHED
        assert service.draft.status is OrderStatus.FINISHED

        with pytest.raises(ValueError):
            service.set_status("Cancelado")

    def test_totals_recomputed(self, service, bread):
        service.add_product(bread)
        service.add_product(bread)
        service.set_financials(amount_paid="40")

        assert service.totals.total == Decimal("100")
        assert service.totals.remaining == Decimal("60")

        service.set_financials(discount="150")

        assert service.totals.total == Decimal("0")
        assert service.totals.remaining == Decimal("0")


# ============================================================================
# Save Tests
# ============================================================================


class TestSave:
    """Test the save flow."""

    @pytest.mark.asyncio
    async def test_create_order(self, service, mock_client, maria, bread, saved_record):
        mock_client.upsert_order.return_value = saved_record
        await fill_new_order(service, maria, bread)

        result = await service.save()

        assert isinstance(result, SaveResult)
        assert result.success is True
        assert result.created is True
        assert result.order_id == 101
        assert result.message == "Pedido criado com sucesso"

        wire = sent_payload(mock_client)
        assert "OrderId" not in wire
        assert wire["CustomerId"] == 7
        assert wire["AmountPaid"] == 40.0
        assert wire["DeliveryDate"] == "2024-06-02T09:30"
        assert wire["Items"][0]["Quantity"] == 2

        assert service.draft.order_id == 101
        assert service.draft.is_new is False
        assert service.customer_resolver.enabled is False

    @pytest.mark.asyncio
    async def test_retyped_customer_not_saved_under_old_identity(
        self, service, mock_client, maria, bread, saved_record
    ):
        mock_client.upsert_order.return_value = saved_record
        await fill_new_order(service, maria, bread)
        await service.search_customers("Carlos Novo")
        await service.set_delivery(False)

        await service.save()

        wire = sent_payload(mock_client)
        assert "CustomerId" not in wire
        assert wire["Customer"]["Name"] == "Carlos Novo"
        assert "CellPhone" not in wire["Customer"]

    @pytest.mark.asyncio
    async def test_save_existing_order(self, service, mock_client, existing_record):
        mock_client.get_order.return_value = existing_record
        mock_client.upsert_order.return_value = existing_record
        await service.open(42)

        result = await service.save()

        assert result.success is True
        assert result.created is False
        assert result.message == "Pedido salvo com sucesso"
        wire = sent_payload(mock_client)
        assert wire["OrderId"] == 42
        assert wire["OrderStatus"] == "Confirmed"

    @pytest.mark.asyncio
    async def test_save_does_not_cascade_again(self, service, mock_client, maria, bread, saved_record):
        mock_client.upsert_order.return_value = saved_record
        await fill_new_order(service, maria, bread)
        await service.save()

        await service.set_delivery(False)
        await service.set_delivery(True)

        assert mock_client.get_customer.await_count == 1

    @pytest.mark.asyncio
    async def test_validation_failure_blocks_upsert(self, service, mock_client):
        result = await service.save()

        assert result.success is False
        assert result.message == "Informe o nome do cliente"
        assert result.errors == ["Informe o nome do cliente", "Adicione ao menos um item"]
        mock_client.upsert_order.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_items_and_amounts(self, service, mock_client, maria, bread):
        await service.select_customer(maria)
        service.add_product(bread)
        service.update_item(0, quantity=0, unit_price=-1)
        service.set_financials(discount="-5")

        result = await service.save()

        assert result.success is False
        assert result.errors == [
            "Item 1: a quantidade deve ser pelo menos 1",
            "Item 1: o preço não pode ser negativo",
            "O desconto não pode ser negativo",
        ]
        mock_client.upsert_order.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_past_delivery_slot(self, service, mock_client, maria, bread):
        await fill_new_order(service, maria, bread)
        service.set_delivery_slot("2020-01-01", "00:00")

        result = await service.save()

        assert result.success is False
        assert result.message == "A data/hora de entrega não pode estar no passado"
        mock_client.upsert_order.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_slot_sent_raw(self, service, mock_client, maria, bread, saved_record):
        mock_client.upsert_order.return_value = saved_record
        await fill_new_order(service, maria, bread)
        service.set_delivery_slot("02/06/2024", "09:30")

        result = await service.save()

        assert result.success is True
        assert sent_payload(mock_client)["DeliveryDate"] == "02/06/2024T09:30"

    @pytest.mark.asyncio
    async def test_persistence_failure_keeps_draft(self, service, mock_client, maria, bread):
        mock_client.upsert_order.side_effect = ApiResponseError("Estoque insuficiente", status_code=400)
        await fill_new_order(service, maria, bread)
        draft = service.draft

        result = await service.save()

        assert result.success is False
        assert result.message == "Erro ao salvar pedido"
        assert service.draft is draft
        assert draft.is_new
        assert draft.items[0].quantity == 2
        assert draft.amount_paid == Decimal("40")

    @pytest.mark.asyncio
    async def test_missing_phone_fetched_for_payload(self, service, mock_client, bread):
        mock_client.upsert_order.side_effect = ApiConnectionError("offline")
        mock_client.get_customer.return_value = CustomerSnapshot(id=8, name="João Lima", phone="11 4000-1234")
        service.draft.customer_id = 8
        service.draft.customer_name = "João Lima"
        service.add_product(bread)

        await service.save()

        assert sent_payload(mock_client)["Customer"]["CellPhone"] == "11 4000-1234"
        assert service.draft.customer_phone == ""


# ============================================================================
# Print and Messaging Tests
# ============================================================================


class TestOutbound:
    """Test printing and customer messaging."""

    def test_print_visible_orders(self, service, opener):
        url = service.send_to_print([OrderRecord(id=1), {"id": 2}], kitchen=True)

        assert url == "http://api.test/api/orders/print/kitchen?ids=1%2C2"
        opener.assert_called_once_with(url)

    def test_print_new_draft_previews(self, service):
        assert service.print_references() == []
        assert service.send_to_print().endswith("/api/orders/print?preview=true")

    def test_print_empty_visible_list(self, service, opener):
        with pytest.raises(OrderValidationError):
            service.send_to_print([])

        opener.assert_not_called()

    @pytest.mark.asyncio
    async def test_compose_message(self, service, maria, bread):
        await service.select_customer(maria)
        service.add_product(bread)

        phone, body = await service.compose_message()

        assert phone == "19998765432"
        assert body.startswith("*Pedido Realizado*\n")
        assert "1x Pão de Queijo - R$ 50,00" in body

    @pytest.mark.asyncio
    async def test_send_message(self, service, maria, bread, opener):
        await service.select_customer(maria)
        service.add_product(bread)

        url = await service.send_message()

        assert url.startswith("https://wa.me/5519998765432?text=")
        opener.assert_called_once_with(url)

    @pytest.mark.asyncio
    async def test_phone_fetched_from_customer(self, service, mock_client):
        mock_client.get_customer.return_value = CustomerSnapshot(id=9, phone="11 4000-1234")
        service.draft.customer_id = 9

        assert await service.resolve_phone() == "1140001234"
        assert service.draft.customer_phone == "11 4000-1234"

    @pytest.mark.asyncio
    async def test_phone_from_local_collection(self, service, mock_client):
        mock_client.get_customer.side_effect = ApiConnectionError("offline")
        service.customer_resolver.set_local_collection(
            [CustomerSnapshot(id=9, name="Marcos", phone="11 5555-0000")]
        )
        service.draft.customer_id = 9

        assert await service.resolve_phone() == "1155550000"

    @pytest.mark.asyncio
    async def test_message_refused_without_phone(self, service, mock_client, bread):
        mock_client.get_customer.return_value = CustomerSnapshot(id=9, name="Marcos")
        service.draft.customer_id = 9
        service.draft.customer_name = "Marcos"
        service.add_product(bread)

        with pytest.raises(OrderValidationError):
            await service.send_message()
