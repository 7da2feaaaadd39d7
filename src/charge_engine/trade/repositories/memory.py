"""In-memory repository for development and tests."""

from __future__ import annotations

import threading
from copy import deepcopy
from dataclasses import replace

from charge_engine.trade.errors import ConcurrentModification
from charge_engine.trade.types import Charge, Refund


class InMemoryTradeRepository:
    """Thread-safe dict-backed repository.

    Records are copied on the way in and out so callers never share mutable
    state with the store.
    """

    def __init__(self) -> None:
        self._charges: dict[str, Charge] = {}
        self._refunds: dict[str, Refund] = {}
        self._lock = threading.Lock()

    def load_charge(self, app_id: int, charge_no: str) -> Charge | None:
        with self._lock:
            charge = self._charges.get(charge_no)
            if charge is None or charge.app_id != app_id:
                return None
            return deepcopy(charge)

    def find_charge(self, charge_no: str) -> Charge | None:
        with self._lock:
            charge = self._charges.get(charge_no)
            return deepcopy(charge) if charge else None

    def list_charges(self, app_id: int, order_no: str) -> list[Charge]:
        with self._lock:
            return [
                deepcopy(c)
                for c in sorted(self._charges.values(), key=lambda c: c.created_at)
                if c.app_id == app_id and c.order_no == order_no
            ]

    def save_charge(self, charge: Charge, expected_version: int | None) -> Charge:
        with self._lock:
            current = self._charges.get(charge.charge_no)
            current_version = current.version if current else None
            if current_version != expected_version:
                raise ConcurrentModification("Charge", charge.charge_no, expected_version)
            stored = replace(deepcopy(charge), version=0 if current is None else current.version + 1)
            self._charges[charge.charge_no] = stored
            return deepcopy(stored)

    def load_refund(self, app_id: int, refund_no: str) -> Refund | None:
        with self._lock:
            refund = self._refunds.get(refund_no)
            if refund is None or refund.app_id != app_id:
                return None
            return deepcopy(refund)

    def find_refund(self, refund_no: str) -> Refund | None:
        with self._lock:
            refund = self._refunds.get(refund_no)
            return deepcopy(refund) if refund else None

    def list_refunds(self, app_id: int, charge_no: str) -> list[Refund]:
        with self._lock:
            return [
                deepcopy(r)
                for r in sorted(self._refunds.values(), key=lambda r: r.created_at)
                if r.app_id == app_id and r.charge_no == charge_no
            ]

    def save_refund(self, refund: Refund, expected_version: int | None) -> Refund:
        with self._lock:
            current = self._refunds.get(refund.refund_no)
            current_version = current.version if current else None
            if current_version != expected_version:
                raise ConcurrentModification("Refund", refund.refund_no, expected_version)
            stored = replace(deepcopy(refund), version=0 if current is None else current.version + 1)
            self._refunds[refund.refund_no] = stored
            return deepcopy(stored)
