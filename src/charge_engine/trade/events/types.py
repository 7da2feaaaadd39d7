"""Domain event types for charge and refund operations.

All events are:
- Immutable (frozen dataclasses)
- Typed with explicit payloads
- Traceable via metadata
- Serializable for logging and downstream delivery

Success events are only emitted when a state machine reports a real
transition, so subscribers see each fulfilment at most once.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from charge_engine.trade.types import utcnow


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    CHARGE = "charge"
    REFUND = "refund"
    NOTIFICATION = "notification"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    app_id: int
    correlation_id: UUID  # Links related events
    actor_type: str  # 'caller', 'scheduler', 'webhook', 'query'
    source_service: str  # Service that emitted
    version: int = 1  # Schema version for evolution

    @classmethod
    def create(
        cls,
        app_id: int,
        correlation_id: UUID | None = None,
        actor_type: str = "caller",
        source_service: str = "trade",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=utcnow(),
            app_id=app_id,
            correlation_id=correlation_id or uuid4(),
            actor_type=actor_type,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = _serialize_dict(asdict(self))
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, datetime):
        return obj.isoformat()
    elif isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Charge Events
# =============================================================================


@dataclass(frozen=True)
class ChargeCreated(DomainEvent):
    """A charge was accepted by the platform and is waiting for payment."""

    charge_no: str
    order_no: str
    channel: str
    amount: int
    time_expire: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.CHARGE


@dataclass(frozen=True)
class ChargeSucceeded(DomainEvent):
    """A charge was paid. Emitted exactly once per charge."""

    charge_no: str
    order_no: str
    channel: str
    amount: int
    platform_trade_no: str | None
    paid_at: datetime | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.CHARGE


@dataclass(frozen=True)
class ChargeClosed(DomainEvent):
    """A charge was closed without payment."""

    charge_no: str
    order_no: str
    reason: str  # 'platform', 'expired'

    @property
    def category(self) -> EventCategory:
        return EventCategory.CHARGE


@dataclass(frozen=True)
class ChargeFailed(DomainEvent):
    """The platform reported the charge as failed."""

    charge_no: str
    order_no: str
    message: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.CHARGE


# =============================================================================
# Refund Events
# =============================================================================


@dataclass(frozen=True)
class RefundRequested(DomainEvent):
    """A refund was admitted and recorded."""

    refund_no: str
    charge_no: str
    amount: int
    reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.REFUND


@dataclass(frozen=True)
class RefundSucceeded(DomainEvent):
    """A refund was paid out. Emitted exactly once per refund."""

    refund_no: str
    charge_no: str
    amount: int
    platform_refund_id: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.REFUND


@dataclass(frozen=True)
class RefundFailed(DomainEvent):
    """A refund was rejected or failed at the platform."""

    refund_no: str
    charge_no: str
    amount: int
    failure_reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.REFUND


# =============================================================================
# Notification Events
# =============================================================================


@dataclass(frozen=True)
class NotificationRejected(DomainEvent):
    """A platform callback failed authentication and was ignored."""

    platform: str
    business_id: str
    is_refund: bool
    reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.NOTIFICATION


@dataclass(frozen=True)
class LatePaymentDetected(DomainEvent):
    """A verified payment arrived for a charge that is already closed or failed.

    The money has moved on the platform side but the local charge is terminal;
    an operator has to reconcile (usually by refunding the payer).
    """

    charge_no: str
    order_no: str
    local_status: str
    platform_trade_no: str | None
    amount: int | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.NOTIFICATION
