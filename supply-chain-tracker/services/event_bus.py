"""
In-process event bus for lifecycle events.

Best-effort fan-out, keyed by EventType:
- Subscribers are invoked in subscription order. Catch-all subscribers run
  after the type-specific ones, also in subscription order.
- A failing subscriber is logged and recorded in its Delivery; the remaining
  subscribers still run and the triggering operation is not affected.
- Nothing is persisted. Events published before a restart are gone.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from domain.events import DomainEvent, EventType, describe

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], Any]


@dataclass(frozen=True, slots=True)
class Delivery:
    """
    Outcome of delivering one event to one subscriber.

    ok: False if the subscriber raised
    result: whatever the subscriber returned (None if it raised)
    error: the exception message if it raised
    """

    subscriber: str
    ok: bool
    result: Any = None
    error: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Subscription:
    subscriber: str
    event_type: Optional[EventType]
    handler: Handler


class EventBus:
    def __init__(self) -> None:
        self._by_type: Dict[EventType, List[Subscription]] = {}
        self._catch_all: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(
        self,
        event_type: Optional[EventType],
        handler: Handler,
        name: Optional[str] = None,
    ) -> Subscription:
        """
        Register `handler` for one event type, or for every event if
        event_type is None.
        """

        subscription = Subscription(
            subscriber=name or getattr(handler, "__qualname__", repr(handler)),
            event_type=event_type,
            handler=handler,
        )
        with self._lock:
            if event_type is None:
                self._catch_all.append(subscription)
            else:
                self._by_type.setdefault(event_type, []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription.event_type is None:
                bucket = self._catch_all
            else:
                bucket = self._by_type.get(subscription.event_type, [])
            if subscription in bucket:
                bucket.remove(subscription)

    def subscribers(self, event_type: EventType) -> Tuple[Subscription, ...]:
        with self._lock:
            return tuple(self._by_type.get(event_type, ())) + tuple(self._catch_all)

    def publish(self, event: DomainEvent) -> List[Delivery]:
        deliveries: List[Delivery] = []
        for subscription in self.subscribers(event.event_type):
            try:
                result = subscription.handler(event)
            except Exception as e:
                logger.exception(
                    "Subscriber %s failed on %s", subscription.subscriber, describe(event)
                )
                deliveries.append(Delivery(subscription.subscriber, ok=False, error=str(e)))
            else:
                deliveries.append(Delivery(subscription.subscriber, ok=True, result=result))
        logger.debug("Delivered %s to %d subscribers", describe(event), len(deliveries))
        return deliveries


__all__ = ["EventBus", "Delivery", "Subscription"]
