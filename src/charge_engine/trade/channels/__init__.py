"""Payment channel adapters."""

from charge_engine.trade.channels.base import (
    ChannelAdapter,
    NotifyResult,
    PayRequest,
    PayResult,
    PlatformClient,
    QueryResult,
    RefundRequest,
    RefundResult,
)
from charge_engine.trade.channels.alipay import AlipayChannelAdapter
from charge_engine.trade.channels.unionpay import UnionpayChannelAdapter
from charge_engine.trade.channels.registry import ChannelRegistry
from charge_engine.trade.channels.sandbox import SandboxPlatform

__all__ = [
    "ChannelAdapter",
    "NotifyResult",
    "PayRequest",
    "PayResult",
    "PlatformClient",
    "QueryResult",
    "RefundRequest",
    "RefundResult",
    "AlipayChannelAdapter",
    "UnionpayChannelAdapter",
    "ChannelRegistry",
    "SandboxPlatform",
]
