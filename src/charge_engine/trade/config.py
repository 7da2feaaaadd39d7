"""Trade Configuration Objects.

Explicit configuration for the trade engine.

Pattern:
    gateway = TradeGateway.build(
        config=TradeConfig(
            channels=[
                ChannelConfig(channel_type=ChannelType.ALIPAY_WAP, secret=...),
                ChannelConfig(channel_type=ChannelType.UNIONPAY_WAP, secret=...),
            ],
        ),
        repository=...,
        scheduler=...,
        client_factory=...,
    )

Rules:
    1. No env vars. Configuration is explicit.
    2. No globals. Each gateway instance has its own config.
    3. Immutable after creation (frozen dataclasses).
"""

from __future__ import annotations

from dataclasses import dataclass

from charge_engine.trade.types import ChannelType, PlatformType


@dataclass(frozen=True)
class ChannelConfig:
    """
    Per-channel configuration.

    Attributes:
        channel_type: The platform product this entry configures.
        secret: Key used to sign requests and verify notifications.
        sandbox: If True, the channel talks to a sandbox platform. Default True.
        timeout_seconds: Timeout for each platform call. Default 10.
        notify_url: Callback URL handed to the platform with pay calls.
        refund_notify_url: Callback URL for asynchronous refund outcomes.
    """

    channel_type: ChannelType
    secret: str
    sandbox: bool = True
    timeout_seconds: float = 10.0
    notify_url: str | None = None
    refund_notify_url: str | None = None

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not self.secret:
            raise ValueError("secret is required")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if self.timeout_seconds > 60:
            raise ValueError("timeout_seconds cannot exceed 60")

    @property
    def platform(self) -> PlatformType:
        return self.channel_type.platform


@dataclass(frozen=True)
class TradeConfig:
    """
    Complete trade engine configuration.

    Attributes:
        channels: Channel configurations; one per enabled ChannelType.
        default_expire_minutes: Charge lifetime when the caller gives none.
        max_expire_minutes: Upper bound on a requested charge lifetime.
        close_grace_seconds: Extra wait past expiry before a charge is closed
            locally, so a payment completed at the last second can still land.
    """

    channels: list[ChannelConfig]
    default_expire_minutes: int = 30
    max_expire_minutes: int = 1440
    close_grace_seconds: int = 60

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not self.channels:
            raise ValueError("At least one channel is required")

        kinds = [c.channel_type for c in self.channels]
        if len(kinds) != len(set(kinds)):
            raise ValueError("Channel types must be unique")

        if self.default_expire_minutes < 1:
            raise ValueError("default_expire_minutes must be at least 1")
        if self.max_expire_minutes < self.default_expire_minutes:
            raise ValueError("max_expire_minutes cannot be below default_expire_minutes")
        if self.close_grace_seconds < 0:
            raise ValueError("close_grace_seconds cannot be negative")

    def get_channel(self, channel_type: ChannelType) -> ChannelConfig | None:
        """Get channel config by type."""
        for channel in self.channels:
            if channel.channel_type == channel_type:
                return channel
        return None

    def get_channels_by_platform(self, platform: PlatformType) -> list[ChannelConfig]:
        """Get all channels belonging to a platform."""
        return [c for c in self.channels if c.platform == platform]


# =============================================================================
# Configuration Builders (Optional Convenience)
# =============================================================================


def create_sandbox_config(
    secret: str,
    notify_base_url: str | None = None,
) -> TradeConfig:
    """
    Create a sandbox configuration enabling every channel.

    Use this only for development and testing.

    Args:
        secret: Signing secret shared with the sandbox platform
        notify_base_url: Base URL the sandbox should call back, if any

    Returns:
        TradeConfig with every ChannelType configured against the sandbox
    """
    channels = []
    for channel_type in ChannelType:
        notify_url = refund_notify_url = None
        if notify_base_url:
            base = f"{notify_base_url.rstrip('/')}/notify/{channel_type.platform.value}"
            notify_url = f"{base}/charge"
            refund_notify_url = f"{base}/refund"
        channels.append(
            ChannelConfig(
                channel_type=channel_type,
                secret=secret,
                sandbox=True,
                notify_url=notify_url,
                refund_notify_url=refund_notify_url,
            )
        )
    return TradeConfig(channels=channels)


def validate_production_config(config: TradeConfig) -> list[str]:
    """
    Validate that a configuration is safe for production.

    Returns a list of warnings/errors. Empty list = safe.
    """
    issues: list[str] = []

    sandbox_channels = [c.channel_type.value for c in config.channels if c.sandbox]
    if sandbox_channels:
        issues.append(f"WARNING: Sandbox channels enabled: {sandbox_channels}")

    for channel in config.channels:
        if not channel.sandbox and not channel.notify_url:
            issues.append(f"WARNING: Channel '{channel.channel_type.value}' has no notify_url")
        if not channel.sandbox and len(channel.secret) < 16:
            issues.append(f"CRITICAL: Channel '{channel.channel_type.value}' has a short secret")

    # UnionPay settles refunds by callback only
    for channel in config.get_channels_by_platform(PlatformType.UNIONPAY):
        if not channel.sandbox and not channel.refund_notify_url:
            issues.append(
                f"WARNING: Channel '{channel.channel_type.value}' has no refund_notify_url"
            )

    return issues
