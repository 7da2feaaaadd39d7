"""Core trade types: channels, platforms, charges, refunds, statuses and signals.

A ChannelType identifies one product on one platform (e.g. Alipay mobile-web).
A PlatformType identifies the owning platform; inbound notifications are routed
by platform before the specific charge or refund is known.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from charge_engine.trade.errors import ValidationError


class PlatformType(str, Enum):
    """Payment platforms."""

    ALIPAY = "alipay"
    UNIONPAY = "unionpay"

    @property
    def charge_notify_field(self) -> str:
        """Notify parameter carrying the charge number."""
        return _CHARGE_NOTIFY_FIELDS[self]

    @property
    def refund_notify_field(self) -> str | None:
        """Notify parameter carrying the refund number, if refunds notify at all."""
        return _REFUND_NOTIFY_FIELDS.get(self)

    @property
    def supports_refund_notify(self) -> bool:
        return self.refund_notify_field is not None


_CHARGE_NOTIFY_FIELDS: dict[PlatformType, str] = {
    PlatformType.ALIPAY: "out_trade_no",
    PlatformType.UNIONPAY: "orderId",
}

# Alipay settles refunds synchronously and never calls back for them.
_REFUND_NOTIFY_FIELDS: dict[PlatformType, str] = {
    PlatformType.UNIONPAY: "orderId",
}


class ChannelType(str, Enum):
    """Platform products a charge can be paid through."""

    ALIPAY_WAP = "alipay_wap"
    ALIPAY_PAGE = "alipay_page"
    ALIPAY_APP = "alipay_app"
    UNIONPAY_WAP = "unionpay_wap"
    UNIONPAY_PC = "unionpay_pc"

    @property
    def platform(self) -> PlatformType:
        return _CHANNEL_PLATFORMS[self]

    @property
    def product_code(self) -> str:
        """Product code sent to the platform with each pay request."""
        return _PRODUCT_CODES[self]

    @property
    def required_extra(self) -> tuple[str, ...]:
        """Extra parameters the caller must supply when creating a charge."""
        return _REQUIRED_EXTRA.get(self, ())

    def check_extra(self, extra: dict[str, Any] | None) -> None:
        """Raise ValidationError if a required extra parameter is missing."""
        extra = extra or {}
        missing = [key for key in self.required_extra if not extra.get(key)]
        if missing:
            raise ValidationError(
                f"Channel {self.value} requires extra parameter(s): {', '.join(missing)}",
                field="extra",
            )


_CHANNEL_PLATFORMS: dict[ChannelType, PlatformType] = {
    ChannelType.ALIPAY_WAP: PlatformType.ALIPAY,
    ChannelType.ALIPAY_PAGE: PlatformType.ALIPAY,
    ChannelType.ALIPAY_APP: PlatformType.ALIPAY,
    ChannelType.UNIONPAY_WAP: PlatformType.UNIONPAY,
    ChannelType.UNIONPAY_PC: PlatformType.UNIONPAY,
}

_PRODUCT_CODES: dict[ChannelType, str] = {
    ChannelType.ALIPAY_WAP: "QUICK_WAP_WAY",
    ChannelType.ALIPAY_PAGE: "FAST_INSTANT_TRADE_PAY",
    ChannelType.ALIPAY_APP: "QUICK_MSECURITY_PAY",
    ChannelType.UNIONPAY_WAP: "000201",
    ChannelType.UNIONPAY_PC: "000201",
}

_REQUIRED_EXTRA: dict[ChannelType, tuple[str, ...]] = {
    ChannelType.ALIPAY_WAP: ("return_url",),
    ChannelType.ALIPAY_PAGE: ("return_url",),
    ChannelType.UNIONPAY_WAP: ("front_url",),
    ChannelType.UNIONPAY_PC: ("front_url",),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_charge_no() -> str:
    return f"ch_{uuid4().hex}"


def new_refund_no() -> str:
    return f"re_{uuid4().hex}"


class ChargeStatus(str, Enum):
    """Charge status values."""

    CREATED = "created"
    WAIT_PAY = "wait_pay"
    SUCCESS = "success"
    CLOSED = "closed"
    FAILED = "failed"


class RefundStatus(str, Enum):
    """Refund status values."""

    REQUESTED = "requested"
    SUCCESS = "success"
    FAILED = "failed"


class Signal(str, Enum):
    """Normalized platform outcome from a notify or a pull query.

    For refunds PAID means the refund was paid out.
    """

    PAID = "paid"
    PENDING = "pending"
    CLOSED = "closed"
    FAILED = "failed"
    UNKNOWN = "unknown"


@dataclass
class Charge:
    """A request to collect an amount from a payer through one channel."""

    app_id: int
    charge_no: str
    order_no: str
    channel: ChannelType
    amount: int  # minor units
    subject: str
    status: ChargeStatus
    time_expire: int  # minutes
    body: str = ""
    credential: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    platform_trade_no: str | None = None
    paid_at: datetime | None = None
    version: int = 0

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(minutes=self.time_expire)


@dataclass
class Refund:
    """A reversal of part or all of a settled charge."""

    app_id: int
    refund_no: str
    charge_no: str
    channel: ChannelType
    amount: int  # minor units
    status: RefundStatus
    reason: str = ""
    platform_refund_id: str | None = None
    failure_reason: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    succeeded_at: datetime | None = None
    version: int = 0


@dataclass(frozen=True)
class ChargeView:
    """What callers see of a charge.

    The credential is only exposed while the charge is waiting for payment.
    """

    app_id: int
    charge_no: str
    order_no: str
    channel: ChannelType
    amount: int
    subject: str
    body: str
    status: ChargeStatus
    time_expire: int
    credential: dict[str, Any] | None
    extra: dict[str, Any]
    created_at: datetime
    platform_trade_no: str | None
    paid_at: datetime | None

    @classmethod
    def of(cls, charge: Charge) -> ChargeView:
        credential = charge.credential if charge.status == ChargeStatus.WAIT_PAY else None
        return cls(
            app_id=charge.app_id,
            charge_no=charge.charge_no,
            order_no=charge.order_no,
            channel=charge.channel,
            amount=charge.amount,
            subject=charge.subject,
            body=charge.body,
            status=charge.status,
            time_expire=charge.time_expire,
            credential=dict(credential) if credential else None,
            extra=dict(charge.extra),
            created_at=charge.created_at,
            platform_trade_no=charge.platform_trade_no,
            paid_at=charge.paid_at,
        )


@dataclass(frozen=True)
class RefundView:
    """What callers see of a refund."""

    app_id: int
    refund_no: str
    charge_no: str
    channel: ChannelType
    amount: int
    status: RefundStatus
    reason: str
    platform_refund_id: str | None
    failure_reason: str | None
    created_at: datetime
    succeeded_at: datetime | None

    @classmethod
    def of(cls, refund: Refund) -> RefundView:
        return cls(
            app_id=refund.app_id,
            refund_no=refund.refund_no,
            charge_no=refund.charge_no,
            channel=refund.channel,
            amount=refund.amount,
            status=refund.status,
            reason=refund.reason,
            platform_refund_id=refund.platform_refund_id,
            failure_reason=refund.failure_reason,
            created_at=refund.created_at,
            succeeded_at=refund.succeeded_at,
        )
