"""Charge and refund models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from charge_engine.models.base import Base, VersionedMixin


class ChargeRecord(Base, VersionedMixin):
    """Persisted charge."""

    __tablename__ = "charge"

    charge_no: Mapped[str] = mapped_column(String(64), primary_key=True)
    app_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    order_no: Mapped[str] = mapped_column(String(64), nullable=False)
    channel: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    subject: Mapped[str] = mapped_column(String(256), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    time_expire: Mapped[int] = mapped_column(BigInteger, nullable=False)
    credential: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    extra: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    platform_trade_no: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("charge_app_order_idx", "app_id", "order_no"),
        CheckConstraint("amount > 0", name="charge_amount_positive"),
        CheckConstraint(
            "status IN ('created', 'wait_pay', 'success', 'closed', 'failed')",
            name="charge_status_check",
        ),
    )


class RefundRecord(Base, VersionedMixin):
    """Persisted refund."""

    __tablename__ = "refund"

    refund_no: Mapped[str] = mapped_column(String(64), primary_key=True)
    app_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    charge_no: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("charge.charge_no", ondelete="RESTRICT"),
        nullable=False,
    )
    channel: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    platform_refund_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    succeeded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("refund_app_charge_idx", "app_id", "charge_no"),
        CheckConstraint("amount > 0", name="refund_amount_positive"),
        CheckConstraint(
            "status IN ('requested', 'success', 'failed')",
            name="refund_status_check",
        ),
    )
