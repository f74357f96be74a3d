"""
Address cascade from the selected customer into the draft.

When delivery is on and a customer is selected, the customer's canonical
record is fetched and the draft's address is replaced as a whole. The cascade
runs once per customer selection: manual address edits stay authoritative
until a different customer is chosen, and toggling delivery off and on again
does not repeat it.
"""

import itertools
from typing import Optional

from orderdesk.core.exceptions import LookupFailure
from orderdesk.core.logging import get_logger
from orderdesk.schemas.orders import CustomerSnapshot, EntityId
from orderdesk.services.api.client import ApiClientError, OrderDeskApiClient
from orderdesk.services.cache.lookup_cache import LookupCache
from orderdesk.services.orders.draft import OrderDraft

logger = get_logger(__name__)


class AddressCascade:
    """Propagate a customer's canonical address into a draft."""

    def __init__(
        self,
        client: OrderDeskApiClient,
        cache: Optional[LookupCache] = None,
    ):
        self._client = client
        self._cache = cache or LookupCache()
        self._tokens = itertools.count(1)
        self._latest_token = 0
        self._applied_for: Optional[str] = None

    @property
    def applied_for(self) -> Optional[str]:
        """Customer id whose address was last cascaded, as a string."""
        return self._applied_for

    def mark_applied(self, customer_id: Optional[EntityId]) -> None:
        """Record that the draft already holds customer_id's address."""
        self._applied_for = None if customer_id is None else str(customer_id)

    def reset(self) -> None:
        """Forget the last cascade and supersede any pending fetch."""
        self._applied_for = None
        self._latest_token = next(self._tokens)

    async def fetch_customer(self, customer_id: EntityId) -> CustomerSnapshot:
        """
        Canonical customer record through the lookup cache.

        Raises:
            LookupFailure: If the fetch fails
        """
        try:
            return await self._cache.get_or_load(
                LookupCache.customer_key(customer_id),
                lambda: self._client.get_customer(customer_id),
            )
        except ApiClientError as e:
            raise LookupFailure(
                "Customer fetch failed",
                customer_id=str(customer_id),
                status_code=e.status_code,
            ) from e

    async def on_customer_changed(self, draft: OrderDraft) -> bool:
        """
        React to a new customer selection.

        Returns:
            True if the address was replaced
        """
        self._applied_for = None
        return await self._run(draft)

    async def on_delivery_toggled(self, draft: OrderDraft) -> bool:
        """
        React to the delivery flag changing.

        Only fires when delivery was switched on and the current customer
        has not had its address cascaded yet.

        Returns:
            True if the address was replaced
        """
        if not draft.is_delivery:
            return False
        if draft.customer_id is not None and self._applied_for == str(draft.customer_id):
            logger.debug(
                "Address already cascaded for customer",
                customer_id=str(draft.customer_id),
            )
            return False
        return await self._run(draft)

    async def _run(self, draft: OrderDraft) -> bool:
        self._latest_token = token = next(self._tokens)
        customer_id = draft.customer_id
        if not draft.is_delivery or customer_id is None:
            return False

        try:
            customer = await self.fetch_customer(customer_id)
        except LookupFailure as e:
            logger.warning(
                "Address cascade fetch failed, keeping current address",
                customer_id=str(customer_id),
                error=e.message,
            )
            return False

        if token != self._latest_token or str(draft.customer_id) != str(customer_id):
            logger.debug(
                "Discarding stale address cascade",
                customer_id=str(customer_id),
            )
            return False

        draft.address = customer.address
        if customer.phone:
            draft.customer_phone = customer.phone
        self._applied_for = str(customer_id)
        logger.info("Address cascaded from customer", customer_id=str(customer_id))
        return True
