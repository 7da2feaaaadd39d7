"""Tests for trade and application configuration."""

import pytest

from charge_engine.config import Settings
from charge_engine.trade.config import (
    ChannelConfig,
    TradeConfig,
    create_sandbox_config,
    validate_production_config,
)
from charge_engine.trade.types import ChannelType, PlatformType

from ..conftest import SECRET


class TestChannelConfig:
    """Test per-channel configuration validation."""

    def test_defaults(self):
        """Channels default to sandbox with a 10 second timeout."""
        config = ChannelConfig(channel_type=ChannelType.ALIPAY_WAP, secret=SECRET)

        assert config.sandbox is True
        assert config.timeout_seconds == 10.0
        assert config.platform == PlatformType.ALIPAY

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"secret": ""},
            {"secret": SECRET, "timeout_seconds": 0},
            {"secret": SECRET, "timeout_seconds": 61},
        ],
    )
    def test_invalid(self, kwargs):
        """Bad channel settings are rejected at construction."""
        with pytest.raises(ValueError):
            ChannelConfig(channel_type=ChannelType.ALIPAY_WAP, **kwargs)


class TestTradeConfig:
    """Test engine configuration validation."""

    def channel(self, channel_type=ChannelType.ALIPAY_WAP):
        return ChannelConfig(channel_type=channel_type, secret=SECRET)

    def test_requires_a_channel(self):
        """An engine without channels is useless."""
        with pytest.raises(ValueError, match="At least one channel"):
            TradeConfig(channels=[])

    def test_rejects_duplicate_channels(self):
        """Each channel type is configured once."""
        with pytest.raises(ValueError, match="unique"):
            TradeConfig(channels=[self.channel(), self.channel()])

    def test_expiry_bounds(self):
        """The maximum lifetime cannot be below the default."""
        with pytest.raises(ValueError):
            TradeConfig(channels=[self.channel()], default_expire_minutes=60, max_expire_minutes=30)
        with pytest.raises(ValueError):
            TradeConfig(channels=[self.channel()], default_expire_minutes=0)
        with pytest.raises(ValueError):
            TradeConfig(channels=[self.channel()], close_grace_seconds=-1)

    def test_lookup(self):
        """Channels are found by type and by platform."""
        config = TradeConfig(
            channels=[
                self.channel(ChannelType.ALIPAY_WAP),
                self.channel(ChannelType.ALIPAY_APP),
                self.channel(ChannelType.UNIONPAY_PC),
            ]
        )

        assert config.get_channel(ChannelType.UNIONPAY_PC).channel_type == ChannelType.UNIONPAY_PC
        assert config.get_channel(ChannelType.UNIONPAY_WAP) is None
        assert len(config.get_channels_by_platform(PlatformType.ALIPAY)) == 2


class TestSandboxConfig:
    """Test the sandbox configuration builder."""

    def test_enables_every_channel(self):
        """Every channel type is configured."""
        config = create_sandbox_config(SECRET)

        assert {c.channel_type for c in config.channels} == set(ChannelType)
        assert all(c.notify_url is None for c in config.channels)

    def test_notify_urls_per_platform(self):
        """Callback URLs point at the platform's notify endpoints."""
        config = create_sandbox_config(SECRET, "https://engine.example/")

        channel = config.get_channel(ChannelType.UNIONPAY_WAP)
        assert channel.notify_url == "https://engine.example/notify/unionpay/charge"
        assert channel.refund_notify_url == "https://engine.example/notify/unionpay/refund"

    def test_sandbox_not_production_safe(self):
        """Sandbox channels are flagged."""
        issues = validate_production_config(create_sandbox_config(SECRET))

        assert any("Sandbox channels enabled" in i for i in issues)

    def test_production_checks(self):
        """Live channels need a notify URL and a long secret."""
        config = TradeConfig(
            channels=[ChannelConfig(channel_type=ChannelType.ALIPAY_WAP, secret="short", sandbox=False)]
        )

        issues = validate_production_config(config)

        assert any("no notify_url" in i for i in issues)
        assert any("CRITICAL" in i for i in issues)

    def test_clean_production_config(self):
        """A live channel with notify URL and long secret passes."""
        config = TradeConfig(
            channels=[
                ChannelConfig(
                    channel_type=ChannelType.ALIPAY_WAP,
                    secret=SECRET,
                    sandbox=False,
                    notify_url="https://engine.example/notify/alipay/charge",
                )
            ]
        )

        assert validate_production_config(config) == []

    def test_unionpay_needs_refund_notify_url(self):
        """Live UnionPay channels learn refund outcomes by callback only."""
        config = TradeConfig(
            channels=[
                ChannelConfig(
                    channel_type=ChannelType.UNIONPAY_WAP,
                    secret=SECRET,
                    sandbox=False,
                    notify_url="https://engine.example/notify/unionpay/charge",
                )
            ]
        )

        assert validate_production_config(config) == [
            "WARNING: Channel 'unionpay_wap' has no refund_notify_url"
        ]


class TestSettings:
    """Test environment-driven application settings."""

    def test_from_env(self, monkeypatch):
        """Settings are read from the environment."""
        monkeypatch.setenv("DATABASE_URL", "sqlite:///trade.db")
        monkeypatch.setenv("PORT", "9000")
        monkeypatch.setenv("DEBUG", "true")
        monkeypatch.setenv("SCHEDULER_POLL_SECONDS", "0")

        settings = Settings.from_env()

        assert settings.database_url == "sqlite:///trade.db"
        assert settings.PORT == 9000
        assert settings.DEBUG is True
        assert settings.uses_database is True
        assert settings.scheduler_poll_seconds == 0

    def test_memory_by_default(self, monkeypatch):
        """Without DATABASE_URL records live in memory."""
        monkeypatch.setenv("DATABASE_URL", "")

        assert Settings.from_env().uses_database is False
