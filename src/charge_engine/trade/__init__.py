"""Charge and refund reconciliation engine.

Public API:
    TradeGateway: Facade wiring orchestrators, adapters and persistence
    TradeConfig / ChannelConfig: Explicit engine configuration
    ChannelType / PlatformType: Supported platform products
    ChargeView / RefundView: What callers see of charges and refunds
"""

from charge_engine.trade.config import (
    ChannelConfig,
    TradeConfig,
    create_sandbox_config,
    validate_production_config,
)
from charge_engine.trade.errors import (
    ChannelNotConfigured,
    ChannelRejected,
    ChannelTransportError,
    ChargeNotFound,
    ChargeNotRefundable,
    ConcurrentModification,
    OrderAlreadyPaid,
    RefundNotFound,
    TradeError,
    UnverifiedNotification,
    ValidationError,
)
from charge_engine.trade.gateway import TradeGateway
from charge_engine.trade.scheduler import InMemoryScheduler, TimeoutScheduler, compute_delay_level
from charge_engine.trade.types import (
    ChannelType,
    ChargeStatus,
    ChargeView,
    PlatformType,
    RefundStatus,
    RefundView,
    Signal,
)

__all__ = [
    # Facade
    "TradeGateway",
    # Config
    "ChannelConfig",
    "TradeConfig",
    "create_sandbox_config",
    "validate_production_config",
    # Types
    "ChannelType",
    "ChargeStatus",
    "ChargeView",
    "PlatformType",
    "RefundStatus",
    "RefundView",
    "Signal",
    # Scheduling
    "InMemoryScheduler",
    "TimeoutScheduler",
    "compute_delay_level",
    # Errors
    "TradeError",
    "ValidationError",
    "OrderAlreadyPaid",
    "ChannelRejected",
    "ChannelTransportError",
    "ChannelNotConfigured",
    "ChargeNotFound",
    "RefundNotFound",
    "ChargeNotRefundable",
    "ConcurrentModification",
    "UnverifiedNotification",
]
