import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

RESERVATION_ADDED = "reservation.added"
RESERVATION_UPDATED = "reservation.updated"
RESERVATION_REMOVED = "reservation.removed"
RESERVATION_CLEARED = "reservation.cleared"
BOOKING_CREATED = "booking.created"
BOOKING_TRANSITIONED = "booking.transitioned"
DATES_WITHDRAWN = "availability.withdrawn"
DATES_RESTORED = "availability.restored"

Handler = Callable[[Dict[str, Any]], None]


class EventBus:
    """
    In-process fan-out of domain events to notification/analytics layers.

    Delivery is best-effort: a failing subscriber is logged and does not
    break the operation that published the event.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        if handler in self._handlers.get(event_type, []):
            self._handlers[event_type].remove(handler)

    def publish(self, event_type: str, payload: Dict[str, Any]) -> None:
        event = {
            "type": event_type,
            "time": datetime.now(tz=timezone.utc).isoformat(),
            "data": payload,
        }
        for handler in list(self._handlers.get(event_type, [])) + list(self._handlers.get("*", [])):
            try:
                handler(event)
            except Exception as e:
                logger.warning("Event handler failed (type=%s): %s", event_type, e)


event_bus = EventBus()
