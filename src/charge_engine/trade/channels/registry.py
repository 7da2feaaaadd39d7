"""Channel adapter registry.

Built once at startup from TradeConfig; resolves the adapter for a ChannelType
at call time.
"""

from __future__ import annotations

from typing import Callable

from charge_engine.trade.channels.alipay import AlipayChannelAdapter
from charge_engine.trade.channels.base import ChannelAdapter, PlatformClient
from charge_engine.trade.channels.unionpay import UnionpayChannelAdapter
from charge_engine.trade.config import ChannelConfig, TradeConfig
from charge_engine.trade.errors import ChannelNotConfigured
from charge_engine.trade.types import ChannelType, PlatformType

AdapterFactory = Callable[[ChannelType, PlatformClient, ChannelConfig], ChannelAdapter]

ADAPTER_FACTORIES: dict[PlatformType, AdapterFactory] = {
    PlatformType.ALIPAY: AlipayChannelAdapter,
    PlatformType.UNIONPAY: UnionpayChannelAdapter,
}


class ChannelRegistry:
    """Maps each configured ChannelType to its adapter."""

    def __init__(self, adapters: dict[ChannelType, ChannelAdapter] | None = None):
        self._adapters: dict[ChannelType, ChannelAdapter] = dict(adapters or {})

    @classmethod
    def from_config(
        cls,
        config: TradeConfig,
        client_for: Callable[[PlatformType], PlatformClient],
    ) -> ChannelRegistry:
        """Build adapters for every configured channel.

        Args:
            config: Trade configuration listing the enabled channels
            client_for: Returns the transport to use for a platform
        """
        registry = cls()
        for channel_config in config.channels:
            channel = channel_config.channel_type
            factory = ADAPTER_FACTORIES[channel.platform]
            registry.register(factory(channel, client_for(channel.platform), channel_config))
        return registry

    def register(self, adapter: ChannelAdapter) -> None:
        self._adapters[adapter.channel] = adapter

    def get(self, channel: ChannelType) -> ChannelAdapter:
        adapter = self._adapters.get(channel)
        if adapter is None:
            raise ChannelNotConfigured(f"Channel {channel.value} is not configured")
        return adapter
