"""SQLAlchemy-backed trade repository.

Each call runs in its own short session so the repository can be shared by
concurrent request threads. Updates are conditional on the stored version:

    UPDATE charge SET ..., version = version + 1
    WHERE charge_no = :charge_no AND version = :expected

A zero row count means another writer got there first.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from charge_engine.models.trade import ChargeRecord, RefundRecord
from charge_engine.trade.errors import ConcurrentModification
from charge_engine.trade.types import (
    Charge,
    ChannelType,
    ChargeStatus,
    Refund,
    RefundStatus,
)


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo; everything is stored in UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_charge(row: ChargeRecord) -> Charge:
    return Charge(
        app_id=row.app_id,
        charge_no=row.charge_no,
        order_no=row.order_no,
        channel=ChannelType(row.channel),
        amount=row.amount,
        subject=row.subject,
        body=row.body,
        status=ChargeStatus(row.status),
        time_expire=row.time_expire,
        credential=dict(row.credential) if row.credential else None,
        extra=dict(row.extra or {}),
        created_at=_aware(row.created_at),
        platform_trade_no=row.platform_trade_no,
        paid_at=_aware(row.paid_at),
        version=row.version,
    )


def _to_refund(row: RefundRecord) -> Refund:
    return Refund(
        app_id=row.app_id,
        refund_no=row.refund_no,
        charge_no=row.charge_no,
        channel=ChannelType(row.channel),
        amount=row.amount,
        status=RefundStatus(row.status),
        reason=row.reason,
        platform_refund_id=row.platform_refund_id,
        failure_reason=row.failure_reason,
        created_at=_aware(row.created_at),
        succeeded_at=_aware(row.succeeded_at),
        version=row.version,
    )


def _charge_values(charge: Charge) -> dict[str, Any]:
    return {
        "status": charge.status.value,
        "credential": charge.credential,
        "extra": charge.extra,
        "platform_trade_no": charge.platform_trade_no,
        "paid_at": charge.paid_at,
    }


def _refund_values(refund: Refund) -> dict[str, Any]:
    return {
        "status": refund.status.value,
        "platform_refund_id": refund.platform_refund_id,
        "failure_reason": refund.failure_reason,
        "succeeded_at": refund.succeeded_at,
    }


class SqlAlchemyTradeRepository:
    """Trade repository over a synchronous SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Charges
    # ------------------------------------------------------------------

    def load_charge(self, app_id: int, charge_no: str) -> Charge | None:
        with self.session_factory() as session:
            row = session.scalars(
                select(ChargeRecord).where(
                    ChargeRecord.charge_no == charge_no,
                    ChargeRecord.app_id == app_id,
                )
            ).first()
            return _to_charge(row) if row else None

    def find_charge(self, charge_no: str) -> Charge | None:
        with self.session_factory() as session:
            row = session.get(ChargeRecord, charge_no)
            return _to_charge(row) if row else None

    def list_charges(self, app_id: int, order_no: str) -> list[Charge]:
        with self.session_factory() as session:
            rows = session.scalars(
                select(ChargeRecord)
                .where(ChargeRecord.app_id == app_id, ChargeRecord.order_no == order_no)
                .order_by(ChargeRecord.created_at)
            ).all()
            return [_to_charge(row) for row in rows]

    def save_charge(self, charge: Charge, expected_version: int | None) -> Charge:
        with self.session_factory() as session:
            if expected_version is None:
                record = ChargeRecord(
                    charge_no=charge.charge_no,
                    app_id=charge.app_id,
                    order_no=charge.order_no,
                    channel=charge.channel.value,
                    amount=charge.amount,
                    subject=charge.subject,
                    body=charge.body,
                    time_expire=charge.time_expire,
                    created_at=charge.created_at,
                    version=0,
                    **_charge_values(charge),
                )
                session.add(record)
                try:
                    session.commit()
                except IntegrityError as e:
                    session.rollback()
                    raise ConcurrentModification("Charge", charge.charge_no, None) from e
                return _to_charge(record)

            result = session.execute(
                update(ChargeRecord)
                .where(
                    ChargeRecord.charge_no == charge.charge_no,
                    ChargeRecord.version == expected_version,
                )
                .values(version=ChargeRecord.version + 1, **_charge_values(charge))
            )
            if result.rowcount == 0:
                session.rollback()
                raise ConcurrentModification("Charge", charge.charge_no, expected_version)
            session.commit()
            row = session.get(ChargeRecord, charge.charge_no, populate_existing=True)
            return _to_charge(row)

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------

    def load_refund(self, app_id: int, refund_no: str) -> Refund | None:
        with self.session_factory() as session:
            row = session.scalars(
                select(RefundRecord).where(
                    RefundRecord.refund_no == refund_no,
                    RefundRecord.app_id == app_id,
                )
            ).first()
            return _to_refund(row) if row else None

    def find_refund(self, refund_no: str) -> Refund | None:
        with self.session_factory() as session:
            row = session.get(RefundRecord, refund_no)
            return _to_refund(row) if row else None

    def list_refunds(self, app_id: int, charge_no: str) -> list[Refund]:
        with self.session_factory() as session:
            rows = session.scalars(
                select(RefundRecord)
                .where(RefundRecord.app_id == app_id, RefundRecord.charge_no == charge_no)
                .order_by(RefundRecord.created_at)
            ).all()
            return [_to_refund(row) for row in rows]

    def save_refund(self, refund: Refund, expected_version: int | None) -> Refund:
        with self.session_factory() as session:
            if expected_version is None:
                record = RefundRecord(
                    refund_no=refund.refund_no,
                    app_id=refund.app_id,
                    charge_no=refund.charge_no,
                    channel=refund.channel.value,
                    amount=refund.amount,
                    reason=refund.reason,
                    created_at=refund.created_at,
                    version=0,
                    **_refund_values(refund),
                )
                session.add(record)
                try:
                    session.commit()
                except IntegrityError as e:
                    session.rollback()
                    raise ConcurrentModification("Refund", refund.refund_no, None) from e
                return _to_refund(record)

            result = session.execute(
                update(RefundRecord)
                .where(
                    RefundRecord.refund_no == refund.refund_no,
                    RefundRecord.version == expected_version,
                )
                .values(version=RefundRecord.version + 1, **_refund_values(refund))
            )
            if result.rowcount == 0:
                session.rollback()
                raise ConcurrentModification("Refund", refund.refund_no, expected_version)
            session.commit()
            row = session.get(RefundRecord, refund.refund_no, populate_existing=True)
            return _to_refund(row)
