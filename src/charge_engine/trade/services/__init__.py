"""Trade services: state machines, orchestrators and notification routing."""

from charge_engine.trade.services.charge_orchestrator import ChargeOrchestrator
from charge_engine.trade.services.locking import KeyedLock
from charge_engine.trade.services.notification_router import NotificationRouter
from charge_engine.trade.services.refund_orchestrator import RefundOrchestrator
from charge_engine.trade.services.state_machine import (
    ChargeStateMachine,
    InvalidTransitionError,
    RefundStateMachine,
    Transition,
)

__all__ = [
    "ChargeOrchestrator",
    "ChargeStateMachine",
    "InvalidTransitionError",
    "KeyedLock",
    "NotificationRouter",
    "RefundOrchestrator",
    "RefundStateMachine",
    "Transition",
]
