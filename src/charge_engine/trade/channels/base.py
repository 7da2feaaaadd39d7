"""Base protocol and types for payment channel adapters.

All channel adapters must implement the ChannelAdapter protocol. Adapters are
stateless translators between generic trade requests and a platform's wire
dialect; the remote call itself goes through a PlatformClient.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from charge_engine.trade.types import ChannelType, Signal


@dataclass(frozen=True)
class PayRequest:
    """Generic pay request handed to an adapter."""

    charge_no: str
    amount: int  # minor units
    subject: str
    body: str = ""
    time_expire: int = 30  # minutes
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PayResult:
    """Result of a successful pay call."""

    credential: dict[str, Any]
    platform_ref: str


@dataclass(frozen=True)
class QueryResult:
    """Result of a pull query or a parsed notification for a charge."""

    signal: Signal
    platform_trade_no: str | None = None
    amount: int | None = None
    paid_at: datetime | None = None
    message: str = ""


@dataclass(frozen=True)
class RefundRequest:
    """Generic refund request handed to an adapter."""

    charge_no: str
    refund_no: str
    amount: int
    charge_amount: int
    platform_trade_no: str | None = None
    reason: str = ""


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund call or refund query."""

    signal: Signal
    platform_refund_id: str | None = None
    message: str = ""


@dataclass(frozen=True)
class NotifyResult:
    """A parsed, authenticated (or not) platform callback."""

    business_id: str
    signal: Signal
    verified: bool
    platform_ref: str | None = None
    amount: int | None = None
    paid_at: datetime | None = None
    is_refund: bool = False
    message: str = ""

    def as_query_result(self) -> QueryResult:
        return QueryResult(
            signal=self.signal,
            platform_trade_no=self.platform_ref,
            amount=self.amount,
            paid_at=self.paid_at,
            message=self.message,
        )

    def as_refund_result(self) -> RefundResult:
        return RefundResult(
            signal=self.signal,
            platform_refund_id=self.platform_ref,
            message=self.message,
        )


class PlatformClient(Protocol):
    """Transport to a payment platform.

    Real implementations wrap the platform SDK and sign/send HTTP requests.
    ``execute`` must give up after ``timeout`` seconds and raise
    ChannelTransportError on any transport failure.
    """

    def execute(self, method: str, params: dict[str, str], timeout: float) -> dict[str, str]:
        ...


class ChannelAdapter(Protocol):
    """Protocol for payment channel adapters.

    One adapter exists per platform product. The orchestrators use adapters
    without knowing anything about the platform's wire format.
    """

    channel: ChannelType

    def pay(self, request: PayRequest) -> PayResult:
        """Create the platform-side trade and return the payer credential.

        Raises:
            ChannelRejected: the platform refused or could not be reached.
        """
        ...

    def query(self, charge_no: str) -> QueryResult:
        """Pull the current trade state from the platform.

        Raises:
            ChannelTransportError: the platform could not be reached.
        """
        ...

    def refund(self, request: RefundRequest) -> RefundResult:
        """Ask the platform to refund part or all of a settled trade.

        Raises:
            ChannelRejected: the platform refused the refund.
            ChannelTransportError: the platform could not be reached.
        """
        ...

    def query_refund(self, charge_no: str, refund_no: str) -> RefundResult:
        """Pull the current state of a refund."""
        ...

    def parse_notify(self, params: dict[str, str]) -> NotifyResult:
        """Authenticate and normalize a platform callback.

        Never raises on tampered input; returns ``verified=False`` instead.
        """
        ...
