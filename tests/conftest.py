"""
Pytest configuration and shared test fixtures.

This module provides fixtures shared by the order composition tests: a fixed
clock, snapshot factories for customers and products, and a mocked API
client exposing the same coroutine methods as OrderDeskApiClient.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Generator
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from orderdesk.core.config import get_settings
from orderdesk.schemas.orders import (
    AddressSnapshot,
    CategorySnapshot,
    CustomerSnapshot,
    ProductSnapshot,
)
from orderdesk.services.api.client import OrderDeskApiClient

FIXED_NOW = datetime(2024, 6, 1, 12, 0)


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """
    Clear cached settings around each test.

    Tests that patch ORDERDESK_* environment variables get a fresh Settings
    instance, and nothing leaks into the next test.
    """
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Clock frozen at FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def customer_address() -> AddressSnapshot:
    return AddressSnapshot(
        street="Rua das Flores",
        number="120",
        neighborhood="Centro",
        city="Campinas",
        state="SP",
    )


@pytest.fixture
def maria(customer_address: AddressSnapshot) -> CustomerSnapshot:
    """Customer with phone and canonical address."""
    return CustomerSnapshot(
        id=7,
        name="Maria Souza",
        phone="(19) 99876-5432",
        address=customer_address,
    )


@pytest.fixture
def joao() -> CustomerSnapshot:
    """Customer without phone or address."""
    return CustomerSnapshot(id=8, name="João Lima")


@pytest.fixture
def bread() -> ProductSnapshot:
    return ProductSnapshot(
        id=1,
        name="Pão de Queijo",
        price=Decimal("50"),
        category=CategorySnapshot(name="Salgados", unit_type="kg"),
    )


@pytest.fixture
def cake() -> ProductSnapshot:
    return ProductSnapshot(
        id=2,
        name="Bolo de Cenoura",
        price=Decimal("35.90"),
        unit="un",
    )


@pytest.fixture
def mock_client(maria: CustomerSnapshot) -> MagicMock:
    """
    Mock API client with async endpoint methods.

    Returns:
        MagicMock specced on OrderDeskApiClient; every endpoint is an
        AsyncMock returning an empty or default result
    """
    client = MagicMock(spec=OrderDeskApiClient)
    client.base_url = "http://api.test"
    client.search_customers = AsyncMock(return_value=[])
    client.search_products = AsyncMock(return_value=[])
    client.list_customers = AsyncMock(return_value=[])
    client.list_products = AsyncMock(return_value=[])
    client.get_customer = AsyncMock(return_value=maria)
    client.get_order = AsyncMock()
    client.upsert_order = AsyncMock()
    return client


@pytest.fixture
def api_client_factory() -> Callable[[Callable[[httpx.Request], httpx.Response]], OrderDeskApiClient]:
    """
    Build real API clients whose requests are answered by a handler.

    Used where the response parsing of OrderDeskApiClient matters, e.g. for
    malformed rows, instead of the mocked client.
    """

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> OrderDeskApiClient:
        http_client = httpx.AsyncClient(
            base_url="http://api.test", transport=httpx.MockTransport(handler)
        )
        return OrderDeskApiClient(base_url="http://api.test", http_client=http_client)

    return factory
