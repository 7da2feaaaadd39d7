"""Charge and refund state machines with transition tables.

Both machines are pure: they take a current status and a platform signal and
return the next status plus whether anything changed. Callers use ``changed``
to decide whether to persist and whether to fire downstream effects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from charge_engine.trade.types import ChargeStatus, RefundStatus, Signal

S = TypeVar("S", ChargeStatus, RefundStatus)


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


@dataclass(frozen=True)
class Transition(Generic[S]):
    """Outcome of applying a signal."""

    status: S
    changed: bool
    previous: S


class ChargeStateMachine:
    """State machine for charge status transitions.

    Allowed transitions:
    - created → wait_pay (credential issued)
    - created → success / closed / failed
    - wait_pay → success / closed / failed
    - success, closed, failed are terminal
    """

    VALID_TRANSITIONS: dict[ChargeStatus, list[ChargeStatus]] = {
        ChargeStatus.CREATED: [
            ChargeStatus.WAIT_PAY,
            ChargeStatus.SUCCESS,
            ChargeStatus.CLOSED,
            ChargeStatus.FAILED,
        ],
        ChargeStatus.WAIT_PAY: [
            ChargeStatus.SUCCESS,
            ChargeStatus.CLOSED,
            ChargeStatus.FAILED,
        ],
        ChargeStatus.SUCCESS: [],
        ChargeStatus.CLOSED: [],
        ChargeStatus.FAILED: [],
    }

    # PENDING and UNKNOWN have no target: they never move a charge
    SIGNAL_TARGETS: dict[Signal, ChargeStatus] = {
        Signal.PAID: ChargeStatus.SUCCESS,
        Signal.CLOSED: ChargeStatus.CLOSED,
        Signal.FAILED: ChargeStatus.FAILED,
    }

    TERMINAL = {ChargeStatus.SUCCESS, ChargeStatus.CLOSED, ChargeStatus.FAILED}

    REFUNDABLE = {ChargeStatus.SUCCESS}

    @classmethod
    def can_transition(cls, from_status: ChargeStatus, to_status: ChargeStatus) -> bool:
        """Check if a transition is valid."""
        return to_status in cls.VALID_TRANSITIONS.get(from_status, [])

    @classmethod
    def validate_transition(cls, from_status: ChargeStatus, to_status: ChargeStatus) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status.value, to_status.value)

    @classmethod
    def is_terminal(cls, status: ChargeStatus) -> bool:
        return status in cls.TERMINAL

    @classmethod
    def can_refund(cls, status: ChargeStatus) -> bool:
        return status in cls.REFUNDABLE

    @classmethod
    def credential_issued(cls, current: ChargeStatus) -> Transition[ChargeStatus]:
        """Move a freshly created charge to wait_pay."""
        cls.validate_transition(current, ChargeStatus.WAIT_PAY)
        return Transition(status=ChargeStatus.WAIT_PAY, changed=True, previous=current)

    @classmethod
    def apply_refresh(cls, current: ChargeStatus, signal: Signal) -> Transition[ChargeStatus]:
        """Return the status a charge moves to given a platform signal.

        Terminal states absorb every signal unchanged.
        """
        target = cls.SIGNAL_TARGETS.get(signal)
        if target is None or not cls.can_transition(current, target):
            return Transition(status=current, changed=False, previous=current)
        return Transition(status=target, changed=True, previous=current)

    @classmethod
    def is_late_payment(cls, current: ChargeStatus, signal: Signal) -> bool:
        """A payment reported for a charge already closed or failed locally."""
        return signal == Signal.PAID and current in (ChargeStatus.CLOSED, ChargeStatus.FAILED)


class RefundStateMachine:
    """State machine for refund status transitions.

    Allowed transitions:
    - requested → success
    - requested → failed
    """

    VALID_TRANSITIONS: dict[RefundStatus, list[RefundStatus]] = {
        RefundStatus.REQUESTED: [RefundStatus.SUCCESS, RefundStatus.FAILED],
        RefundStatus.SUCCESS: [],
        RefundStatus.FAILED: [],
    }

    SIGNAL_TARGETS: dict[Signal, RefundStatus] = {
        Signal.PAID: RefundStatus.SUCCESS,
        Signal.CLOSED: RefundStatus.FAILED,
        Signal.FAILED: RefundStatus.FAILED,
    }

    TERMINAL = {RefundStatus.SUCCESS, RefundStatus.FAILED}

    # Refunds that still count against the charge's refundable headroom
    HOLDS_HEADROOM = {RefundStatus.REQUESTED, RefundStatus.SUCCESS}

    @classmethod
    def can_transition(cls, from_status: RefundStatus, to_status: RefundStatus) -> bool:
        return to_status in cls.VALID_TRANSITIONS.get(from_status, [])

    @classmethod
    def validate_transition(cls, from_status: RefundStatus, to_status: RefundStatus) -> None:
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status.value, to_status.value)

    @classmethod
    def is_terminal(cls, status: RefundStatus) -> bool:
        return status in cls.TERMINAL

    @classmethod
    def holds_headroom(cls, status: RefundStatus) -> bool:
        return status in cls.HOLDS_HEADROOM

    @classmethod
    def apply_refresh(cls, current: RefundStatus, signal: Signal) -> Transition[RefundStatus]:
        target = cls.SIGNAL_TARGETS.get(signal)
        if target is None or not cls.can_transition(current, target):
            return Transition(status=current, changed=False, previous=current)
        return Transition(status=target, changed=True, previous=current)
