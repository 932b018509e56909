"""In-process event bus for deal transition events.

The DealStore publishes one event per successful mutation. Subscribers
(notifications, caches, audit sinks) register independently; adding one
never touches the store.

Delivery is synchronous and best-effort: a subscriber that raises is
logged and skipped, and the remaining subscribers still run. The
transition that produced the event stays committed either way.
"""

from __future__ import annotations

from typing import Callable

from connecto.log import get_logger
from connecto.models.deal import DealRequest
from connecto.models.notification import DealEventType


Subscriber = Callable[[DealEventType, DealRequest], None]

log = get_logger("events")


class EventBus:
    """Fan-out of (event_type, deal) pairs to registered subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register a subscriber. Returns a callable that unsubscribes it."""
        self._subscribers.append(subscriber)

        def _unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return _unsubscribe

    def publish(self, event_type: DealEventType, deal: DealRequest) -> int:
        """Deliver an event to every subscriber.

        Each subscriber receives its own copy of the deal. Returns the
        number of subscribers that failed.
        """
        failures = 0
        for subscriber in list(self._subscribers):
            try:
                subscriber(event_type, deal.copy())
            except Exception:
                failures += 1
                log.exception(
                    "Subscriber %r failed for %s on deal %s",
                    subscriber, event_type.value, deal.deal_id,
                )
        return failures

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
