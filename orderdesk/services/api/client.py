"""
Async HTTP client for the order management REST API.

This module wraps httpx with the handful of endpoints the order composition
engine consumes: customer and product search, customer and order fetch, and
the order upsert. Responses are converted into snapshot schemas at this
boundary so callers never hold raw API dictionaries.
"""

from typing import Any, Optional, TypeVar, Union

import httpx
from pydantic import ValidationError

from orderdesk.core.config import get_settings
from orderdesk.core.exceptions import OrderDeskError
from orderdesk.core.logging import get_logger
from orderdesk.schemas.orders import (
    CustomerSnapshot,
    EntityId,
    OrderRecord,
    ProductSnapshot,
    UpsertPayload,
)
from orderdesk.services.orders.money import MoneyError

logger = get_logger(__name__)

Snapshot = TypeVar("Snapshot", bound=Union[CustomerSnapshot, ProductSnapshot, OrderRecord])


class ApiClientError(OrderDeskError):
    """Base exception for API client errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        super().__init__(message, status_code=status_code, **context)
        self.status_code = status_code


class ApiConnectionError(ApiClientError):
    """Raised when the API cannot be reached or times out."""

    pass


class ApiResponseError(ApiClientError):
    """Raised when the API answers with an error status or bad body."""

    pass


class OrderDeskApiClient:
    """
    Async client for the order management API.

    Owns its httpx.AsyncClient unless one is injected. Use as an async
    context manager or call ``close()`` when done.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize API client.

        Args:
            base_url: API base URL (defaults to settings)
            timeout: Request timeout in seconds (defaults to settings)
            http_client: Preconfigured httpx client, e.g. with a mock transport
        """
        settings = get_settings()
        self._base_url = (base_url or settings.api_base_url).rstrip("/")
        self._timeout = timeout or settings.request_timeout_seconds
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers={"Content-Type": "application/json"},
        )

        logger.info(
            "API client initialized",
            base_url=self._base_url,
            timeout=self._timeout,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> "OrderDeskApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> Any:
        """
        Send a request and decode the JSON body.

        Raises:
            ApiConnectionError: On transport failures and timeouts
            ApiResponseError: On non-2xx status or undecodable body
        """
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.warning(
                "API request rejected",
                method=method,
                path=path,
                status_code=status_code,
            )
            raise ApiResponseError(
                _server_message(e.response) or f"API returned {status_code}",
                status_code=status_code,
                path=path,
            ) from e
        except httpx.RequestError as e:
            logger.warning(
                "API request failed",
                method=method,
                path=path,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ApiConnectionError(
                f"Network error calling {path}: {e}",
                path=path,
            ) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ApiResponseError(
                "API returned a non-JSON body",
                status_code=response.status_code,
                path=path,
            ) from e

    async def search_customers(self, name: str) -> list[CustomerSnapshot]:
        """Search customers by name."""
        path = "/api/customers/search"
        data = await self._request("GET", path, params={"nome": name})
        return _parse_rows(CustomerSnapshot, data, path)

    async def search_products(self, name: str) -> list[ProductSnapshot]:
        """Search products by name."""
        path = "/api/products/search"
        data = await self._request("GET", path, params={"name": name})
        return _parse_rows(ProductSnapshot, data, path)

    async def list_customers(self) -> list[CustomerSnapshot]:
        """Fetch the full customer collection."""
        data = await self._request("GET", "/api/customers")
        return _parse_rows(CustomerSnapshot, data, "/api/customers")

    async def list_products(self) -> list[ProductSnapshot]:
        """Fetch the full product collection."""
        data = await self._request("GET", "/api/products")
        return _parse_rows(ProductSnapshot, data, "/api/products")

    async def get_customer(self, customer_id: EntityId) -> CustomerSnapshot:
        """Fetch one customer with its canonical address."""
        path = f"/api/customers/{customer_id}"
        data = await self._request("GET", path)
        return _parse_record(CustomerSnapshot, data, path, label="Customer")

    async def get_order(self, order_id: EntityId) -> OrderRecord:
        """Fetch a full order record including its items."""
        path = f"/api/orders/{order_id}/items"
        data = await self._request("GET", path)
        return _parse_record(OrderRecord, data, path, label="Order")

    async def upsert_order(self, payload: UpsertPayload) -> OrderRecord:
        """Create or update an order, returning the persisted record."""
        path = "/api/orders/upsert"
        data = await self._request("POST", path, json=payload.to_wire())
        return _parse_record(OrderRecord, data, path, label="Upsert")


def _as_list(data: Any) -> list[dict[str, Any]]:
    if not isinstance(data, list):
        return []
    return [row for row in data if isinstance(row, dict)]


def _parse_rows(model: type[Snapshot], data: Any, path: str) -> list[Snapshot]:
    """
    Convert list rows into snapshots, skipping rows that do not parse.

    Raises:
        ApiResponseError: If there were rows and none of them parsed
    """
    rows = _as_list(data)
    parsed = []
    for row in rows:
        try:
            parsed.append(model.from_record(row))
        except (ValidationError, MoneyError) as e:
            logger.warning(
                "Skipping malformed API row",
                path=path,
                model=model.__name__,
                error=str(e),
                error_type=type(e).__name__,
            )
    if rows and not parsed:
        raise ApiResponseError(
            f"No {model.__name__} row could be parsed", path=path
        )
    return parsed


def _parse_record(model: type[Snapshot], data: Any, path: str, label: str) -> Snapshot:
    """
    Convert a single object body into a snapshot.

    Raises:
        ApiResponseError: If the body is not an object or does not parse
    """
    if not isinstance(data, dict):
        raise ApiResponseError(f"{label} response is not an object", path=path)
    try:
        return model.from_record(data)
    except (ValidationError, MoneyError) as e:
        logger.warning(
            "API response could not be parsed",
            path=path,
            model=model.__name__,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise ApiResponseError(
            f"{label} response could not be parsed: {e}",
            path=path,
        ) from e


def _server_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict):
        message = body.get("message") or body.get("title")
        return str(message) if message else None
    if isinstance(body, str):
        return body or None
    return None
