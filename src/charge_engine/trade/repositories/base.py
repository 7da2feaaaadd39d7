"""Repository protocol for charges and refunds.

Saves are optimistic: ``expected_version`` must match the stored version or
the save fails with ConcurrentModification. ``expected_version=None`` inserts
and fails if the record already exists. A successful save returns the record
with its new version.
"""

from __future__ import annotations

from typing import Protocol

from charge_engine.trade.types import Charge, Refund


class TradeRepository(Protocol):
    """Persistence collaborator used by the orchestrators."""

    def load_charge(self, app_id: int, charge_no: str) -> Charge | None:
        ...

    def find_charge(self, charge_no: str) -> Charge | None:
        """Load a charge by number alone (notifications carry no app id)."""
        ...

    def list_charges(self, app_id: int, order_no: str) -> list[Charge]:
        ...

    def save_charge(self, charge: Charge, expected_version: int | None) -> Charge:
        ...

    def load_refund(self, app_id: int, refund_no: str) -> Refund | None:
        ...

    def find_refund(self, refund_no: str) -> Refund | None:
        ...

    def list_refunds(self, app_id: int, charge_no: str) -> list[Refund]:
        ...

    def save_refund(self, refund: Refund, expected_version: int | None) -> Refund:
        ...
