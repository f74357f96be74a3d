"""
Delivery slot composition and validation.

The editor keeps delivery date and time as two local fields. At save time
they are composed into one naive local datetime and checked against the
clock. A slot in the past blocks the save; fields that cannot be composed
are logged and let through.
"""

import re
from datetime import datetime
from typing import Callable, Optional

from orderdesk.core.exceptions import OrderValidationError
from orderdesk.core.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"
WIRE_FORMAT = "%Y-%m-%dT%H:%M"

_BR_DATETIME = re.compile(r"^(\d{2})/(\d{2})/(\d{4})[ T](\d{2}):(\d{2})$")
_ISO_SHORT_DATETIME = re.compile(r"^(\d{4})-(\d{2})-(\d{2})[ T](\d{2}):(\d{2})$")


def parse_backend_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a delivery date as stored by the backend.

    Accepts ISO 8601 (aware values are converted to local time),
    ``dd/mm/yyyy HH:MM`` and ``yyyy-mm-dd HH:MM``.

    Returns:
        Naive local datetime, or None if value is blank or unparseable
    """
    if not value:
        return None
    text = str(value).strip()

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
    if parsed is not None:
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone().replace(tzinfo=None)
        return parsed

    match = _BR_DATETIME.match(text)
    if match:
        day, month, year, hour, minute = (int(g) for g in match.groups())
        return _safe_datetime(year, month, day, hour, minute)

    match = _ISO_SHORT_DATETIME.match(text)
    if match:
        year, month, day, hour, minute = (int(g) for g in match.groups())
        return _safe_datetime(year, month, day, hour, minute)

    return None


def _safe_datetime(year: int, month: int, day: int, hour: int, minute: int) -> Optional[datetime]:
    try:
        return datetime(year, month, day, hour, minute)
    except ValueError:
        return None


def split_slot(value: datetime) -> tuple[str, str]:
    """Split a datetime into the editor's date and time fields."""
    return value.strftime(DATE_FORMAT), value.strftime(TIME_FORMAT)


def compose_slot(date_field: str, time_field: str) -> datetime:
    """
    Compose the date and time fields into one local datetime.

    Raises:
        ValueError: If either field is malformed
    """
    date_part = datetime.strptime(date_field.strip(), DATE_FORMAT).date()
    time_part = datetime.strptime(time_field.strip(), TIME_FORMAT).time()
    return datetime.combine(date_part, time_part)


class DeliverySlotValidator:
    """Save-time check that the delivery slot is not in the past."""

    def __init__(self, clock: Optional[Clock] = None):
        """
        Args:
            clock: Returns the current local time (defaults to datetime.now)
        """
        self._clock = clock or datetime.now

    def now(self) -> datetime:
        return self._clock()

    def validate(
        self,
        date_field: Optional[str],
        time_field: Optional[str],
    ) -> Optional[datetime]:
        """
        Compose and validate the slot.

        Args:
            date_field: ``YYYY-MM-DD``
            time_field: ``HH:MM``

        Returns:
            The composed slot, or None when a field is missing or malformed

        Raises:
            OrderValidationError: If the slot is strictly before now
        """
        if not date_field or not time_field:
            return None

        try:
            slot = compose_slot(date_field, time_field)
        except (TypeError, ValueError) as e:
            logger.warning(
                "Could not compose delivery slot, skipping validation",
                date=date_field,
                time=time_field,
                error=str(e),
            )
            return None

        now = self.now()
        if slot < now:
            raise OrderValidationError(
                "A data/hora de entrega não pode estar no passado",
                field="delivery_date",
                slot=slot.isoformat(),
                now=now.isoformat(),
            )
        return slot

    @staticmethod
    def to_wire(slot: Optional[datetime]) -> Optional[str]:
        """Format a slot the way the upsert endpoint expects it."""
        return slot.strftime(WIRE_FORMAT) if slot else None
