"""
Outbound channels for printing and customer messaging.

Both services are external: printing is rendered by the API's print
endpoints and messages are delivered by the messaging app. These channels
only build the target link and hand it to an opener (a browser tab by
default).
"""

import webbrowser
from typing import Callable, Optional, Sequence
from urllib.parse import quote, urlencode

from orderdesk.core.config import get_settings
from orderdesk.core.exceptions import OrderDeskError
from orderdesk.core.logging import get_logger
from orderdesk.schemas.orders import EntityId

logger = get_logger(__name__)

Opener = Callable[[str], object]


class ChannelError(OrderDeskError):
    """Raised when a channel cannot hand its link to the opener."""

    def __init__(self, message: str, channel: str, **context):
        super().__init__(message, channel=channel, **context)
        self.channel = channel


class PrintChannel:
    """Builds print-service links for one or more orders."""

    PRINT_PATH = "/api/orders/print"
    KITCHEN_PRINT_PATH = "/api/orders/print/kitchen"

    def __init__(self, base_url: Optional[str] = None, opener: Optional[Opener] = None):
        self._base_url = (base_url or get_settings().api_base_url).rstrip("/")
        self._opener = opener or webbrowser.open

    def build_url(self, ids: Sequence[EntityId], kitchen: bool = False) -> str:
        """
        Print link for ids; an empty sequence yields a preview link.

        Example:
            >>> PrintChannel("http://api").build_url([3, 7])
            'http://api/api/orders/print?ids=3%2C7'
        """
        path = self.KITCHEN_PRINT_PATH if kitchen else self.PRINT_PATH
        if ids:
            query = urlencode({"ids": ",".join(str(i) for i in ids)})
        else:
            query = urlencode({"preview": "true"})
        return f"{self._base_url}{path}?{query}"

    def send(self, ids: Sequence[EntityId], kitchen: bool = False) -> str:
        """Open the print link and return it."""
        url = self.build_url(ids, kitchen=kitchen)
        _open(self._opener, url, channel="print")
        logger.info("Print requested", order_count=len(ids), kitchen=kitchen)
        return url


class MessagingChannel:
    """Builds customer messaging links (``base/<country><phone>?text=...``)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        country_code: Optional[str] = None,
        opener: Optional[Opener] = None,
    ):
        settings = get_settings()
        self._base_url = (base_url or settings.messaging_base_url).rstrip("/")
        self._country_code = settings.messaging_country_code if country_code is None else country_code
        self._opener = opener or webbrowser.open

    def build_url(self, phone: str, text: str) -> str:
        return f"{self._base_url}/{self._country_code}{phone}?text={quote(text, safe='')}"

    def send(self, phone: str, text: str) -> str:
        """Open the messaging link and return it."""
        url = self.build_url(phone, text)
        _open(self._opener, url, channel="messaging")
        logger.info("Customer message opened", phone_suffix=phone[-4:])
        return url


def _open(opener: Opener, url: str, channel: str) -> None:
    try:
        opener(url)
    except Exception as e:
        logger.warning("Could not open link", channel=channel, error=str(e))
        raise ChannelError(
            f"Could not open {channel} link", channel=channel, url=url
        ) from e
