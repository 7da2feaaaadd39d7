"""Domain events for charge and refund lifecycle changes."""

from charge_engine.trade.events.emitter import EventEmitter, EventHandler
from charge_engine.trade.events.types import (
    ChargeClosed,
    ChargeCreated,
    ChargeFailed,
    ChargeSucceeded,
    DomainEvent,
    EventCategory,
    EventMetadata,
    LatePaymentDetected,
    NotificationRejected,
    RefundFailed,
    RefundRequested,
    RefundSucceeded,
)

__all__ = [
    # Types
    "DomainEvent",
    "EventCategory",
    "EventMetadata",
    # Charge events
    "ChargeCreated",
    "ChargeSucceeded",
    "ChargeClosed",
    "ChargeFailed",
    # Refund events
    "RefundRequested",
    "RefundSucceeded",
    "RefundFailed",
    # Notification events
    "NotificationRejected",
    "LatePaymentDetected",
    # Emitter
    "EventEmitter",
    "EventHandler",
]
