"""SQLAlchemy ORM models."""

from charge_engine.models.base import Base, VersionedMixin
from charge_engine.models.trade import ChargeRecord, RefundRecord

__all__ = [
    "Base",
    "VersionedMixin",
    "ChargeRecord",
    "RefundRecord",
]
