"""
Debounced lookup-by-name resolvers for customers and products.

Each resolver keeps the locally-held collection and the current result set.
Every search takes a new, strictly increasing token; a response is applied
only if its token is still the latest when it arrives. The debounce sleep
throttles call volume, the token comparison is what keeps stale responses
from replacing fresher ones.
"""

import asyncio
import itertools
from typing import Awaitable, Callable, Generic, Iterable, Optional, Sequence, TypeVar

from orderdesk.core.config import get_settings
from orderdesk.core.exceptions import LookupFailure
from orderdesk.core.logging import get_logger
from orderdesk.schemas.orders import CustomerSnapshot, ProductSnapshot
from orderdesk.services.api.client import ApiClientError, OrderDeskApiClient

logger = get_logger(__name__)

T = TypeVar("T", CustomerSnapshot, ProductSnapshot)

RemoteSearch = Callable[[str], Awaitable[list]]


class EntityResolver(Generic[T]):
    """
    Resolve a free-text query into a list of matching entities.

    Attributes:
        query: Query of the most recent search call
        results: Result set of the latest applied search
    """

    entity_name = "entity"

    def __init__(
        self,
        remote_search: RemoteSearch,
        local_items: Iterable[T] = (),
        debounce_seconds: Optional[float] = None,
    ):
        """
        Initialize resolver.

        Args:
            remote_search: Coroutine function performing the API lookup
            local_items: Locally-held collection used for empty queries and
                as the fallback when the lookup fails
            debounce_seconds: Quiet period before the lookup (defaults to settings)
        """
        if debounce_seconds is None:
            debounce_seconds = get_settings().search_debounce_seconds
        self._remote_search = remote_search
        self._debounce_seconds = debounce_seconds
        self._local_items: list[T] = list(local_items)
        self._tokens = itertools.count(1)
        self._latest_token = 0
        self.query = ""
        self.results: list[T] = list(self._local_items)

    @property
    def latest_token(self) -> int:
        return self._latest_token

    @property
    def local_items(self) -> list[T]:
        return list(self._local_items)

    def set_local_collection(self, items: Iterable[T]) -> None:
        """Replace the local collection; refreshes results for an empty query."""
        self._local_items = list(items)
        if not self.query.strip():
            self.results = list(self._local_items)

    def is_current(self, token: int) -> bool:
        """True if token belongs to the most recent search call."""
        return token == self._latest_token

    def _issue_token(self) -> int:
        self._latest_token = next(self._tokens)
        return self._latest_token

    async def search(self, query: str) -> bool:
        """
        Run a debounced search for query.

        Args:
            query: Free-text query as typed

        Returns:
            True if this call's results were applied, False if a newer
            search superseded it
        """
        token = self._issue_token()
        self.query = query or ""
        text = self.query.strip()

        if not text:
            self.results = list(self._local_items)
            return True

        if self._debounce_seconds > 0:
            await asyncio.sleep(self._debounce_seconds)
        if not self.is_current(token):
            logger.debug(
                "Search superseded during debounce",
                entity=self.entity_name,
                query=text,
                token=token,
            )
            return False

        try:
            found = list(await self._remote_search(text))
        except (ApiClientError, LookupFailure) as e:
            logger.warning(
                "Remote search failed, filtering local collection",
                entity=self.entity_name,
                query=text,
                error=str(e),
            )
            found = self.filter_local(text)

        if not self.is_current(token):
            logger.debug(
                "Discarding stale search response",
                entity=self.entity_name,
                query=text,
                token=token,
                latest_token=self._latest_token,
            )
            return False

        self.results = found
        return True

    def filter_local(self, text: str) -> list[T]:
        """Case-insensitive substring match on entity names."""
        needle = text.strip().casefold()
        return [
            item for item in self._local_items
            if needle in (item.name or "").casefold()
        ]

    def clear(self) -> None:
        """Reset the query to empty and supersede any pending search."""
        self._issue_token()
        self.query = ""
        self.results = list(self._local_items)


class CustomerResolver(EntityResolver[CustomerSnapshot]):
    """Customer search; disabled while an existing order is edited."""

    entity_name = "customer"

    def __init__(
        self,
        client: OrderDeskApiClient,
        local_items: Sequence[CustomerSnapshot] = (),
        debounce_seconds: Optional[float] = None,
    ):
        super().__init__(client.search_customers, local_items, debounce_seconds)
        self.enabled = True

    def disable(self) -> None:
        """Stop live search; pending lookups are superseded."""
        self.enabled = False
        self._issue_token()

    def enable(self) -> None:
        self.enabled = True

    async def search(self, query: str) -> bool:
        if not self.enabled:
            self.query = query or ""
            return False
        return await super().search(query)

    def find_local(self, customer_id) -> Optional[CustomerSnapshot]:
        """Look up a customer in the local collection by id."""
        for customer in self._local_items:
            if str(customer.id) == str(customer_id):
                return customer
        return None


class ProductResolver(EntityResolver[ProductSnapshot]):
    """Product search."""

    entity_name = "product"

    def __init__(
        self,
        client: OrderDeskApiClient,
        local_items: Sequence[ProductSnapshot] = (),
        debounce_seconds: Optional[float] = None,
    ):
        super().__init__(client.search_products, local_items, debounce_seconds)
