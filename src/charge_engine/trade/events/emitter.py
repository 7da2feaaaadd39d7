"""Dispatch of charge and refund events to in-process subscribers.

Orchestrators emit after the state change is saved and outside the record
locks, from whichever thread drove the change: an API worker, a platform
callback, the timeout scheduler or a refund executor. Subscribers therefore
run on those threads and must be thread-safe themselves.

A failing subscriber is logged and reported back to the emitter's caller; it
never undoes the committed transition or starves the other subscribers.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Protocol, TypeVar, runtime_checkable

from charge_engine.trade.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DomainEvent)


@runtime_checkable
class EventHandler(Protocol):
    """Callable receiving one committed domain event."""

    def __call__(self, event: DomainEvent) -> None:
        ...


@dataclass(frozen=True)
class Subscription:
    """A subscriber and the events it asked for."""

    handler: EventHandler
    event_types: frozenset[str] | None = None  # None = every type
    categories: frozenset[EventCategory] | None = None  # None = every category

    def wants(self, event: DomainEvent) -> bool:
        if self.event_types and event.event_type not in self.event_types:
            return False
        return not self.categories or event.category in self.categories


class EventEmitter:
    """Thread-safe synchronous emitter shared by a gateway's services.

    Usage:
        emitter = EventEmitter()
        emitter.on(ChargeSucceeded, fulfil_order)
        emitter.on_category(EventCategory.REFUND, notify_finance)
        emitter.on(LatePaymentDetected, page_operator)

        gateway = TradeGateway.build(..., emitter=emitter)

    Subscribing or unsubscribing replaces the subscription tuple, so a
    dispatch already running keeps the snapshot it started with.
    """

    def __init__(self) -> None:
        self._subscriptions: tuple[Subscription, ...] = ()
        self._lock = threading.Lock()

    def on(self, event_type: type[T] | list[type[T]], handler: EventHandler) -> None:
        """Subscribe to one event class or a list of them."""
        classes = event_type if isinstance(event_type, list) else [event_type]
        self._subscribe(Subscription(handler, event_types=frozenset(c.__name__ for c in classes)))

    def on_category(
        self,
        category: EventCategory | list[EventCategory],
        handler: EventHandler,
    ) -> None:
        """Subscribe to every event of one or more categories."""
        categories = category if isinstance(category, list) else [category]
        self._subscribe(Subscription(handler, categories=frozenset(categories)))

    def on_all(self, handler: EventHandler) -> None:
        self._subscribe(Subscription(handler))

    def off(self, handler: EventHandler) -> None:
        """Drop every subscription made with this exact handler object."""
        with self._lock:
            self._subscriptions = tuple(s for s in self._subscriptions if s.handler is not handler)

    def _subscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions = (*self._subscriptions, subscription)

    def emit(self, event: DomainEvent) -> list[Exception]:
        """Deliver an event to every interested subscriber.

        Returns:
            The exceptions raised by subscribers, in delivery order
        """
        with self._lock:
            subscriptions = self._subscriptions

        errors: list[Exception] = []
        for subscription in subscriptions:
            if not subscription.wants(event):
                continue
            try:
                subscription.handler(event)
            except Exception as e:
                logger.exception(
                    "Subscriber %r failed on %s for %s",
                    subscription.handler,
                    event.event_type,
                    event.metadata.correlation_id,
                )
                errors.append(e)
        return errors
