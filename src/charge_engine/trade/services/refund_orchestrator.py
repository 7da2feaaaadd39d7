"""Refund Orchestrator - refund admission, issuance and reconciliation.

A refund is admitted under the charge lock against the charge's remaining
headroom (amount minus every refund still requested or already paid out),
persisted as REQUESTED, and only then sent to the platform. Platform calls
run outside the record locks, optionally on an executor.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future
from dataclasses import replace
from functools import partial

from charge_engine.trade.channels.base import NotifyResult, RefundRequest, RefundResult
from charge_engine.trade.channels.registry import ChannelRegistry
from charge_engine.trade.errors import (
    ChannelRejected,
    ChannelTransportError,
    ChargeNotFound,
    ChargeNotRefundable,
    ConcurrentModification,
    RefundNotFound,
    UnverifiedNotification,
    ValidationError,
)
from charge_engine.trade.events.emitter import EventEmitter
from charge_engine.trade.events.types import (
    EventMetadata,
    RefundFailed,
    RefundRequested,
    RefundSucceeded,
)
from charge_engine.trade.repositories.base import TradeRepository
from charge_engine.trade.services.charge_orchestrator import charge_correlation_id
from charge_engine.trade.services.locking import KeyedLock
from charge_engine.trade.services.state_machine import ChargeStateMachine, RefundStateMachine
from charge_engine.trade.types import (
    Charge,
    Refund,
    RefundStatus,
    Signal,
    new_refund_no,
    utcnow,
)

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 256


class RefundOrchestrator:
    """Refund orchestration service.

    Args:
        repository: Charge and refund persistence
        registry: Channel adapters
        emitter: Domain event sink
        locks: Shared with the ChargeOrchestrator so refund admission and
            charge refresh serialize on the same charge key
        executor: Runs platform refund calls; None runs them inline
    """

    def __init__(
        self,
        repository: TradeRepository,
        registry: ChannelRegistry,
        emitter: EventEmitter | None = None,
        locks: KeyedLock | None = None,
        executor: Executor | None = None,
    ):
        self.repository = repository
        self.registry = registry
        self.emitter = emitter or EventEmitter()
        self.locks = locks or KeyedLock()
        self.executor = executor

    def request_refund(
        self,
        app_id: int,
        charge_no: str,
        amount: int,
        reason: str = "",
    ) -> Refund:
        """Admit a refund against a paid charge and send it to the platform.

        Returns:
            The refund; REQUESTED while the platform outcome is pending, or
            already SUCCESS/FAILED when the platform answered synchronously

        Raises:
            ValidationError: Bad amount or reason
            ChargeNotFound: No such charge for this app
            ChargeNotRefundable: The charge is unpaid or lacks headroom
            ChannelRejected: The platform refused (inline issuance only);
                the refund is recorded as FAILED first
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("amount must be a positive integer", field="amount")
        if len(reason) > MAX_REASON_LENGTH:
            raise ValidationError(
                f"reason cannot exceed {MAX_REASON_LENGTH} characters", field="reason"
            )

        with self.locks.hold(("charge", charge_no)):
            charge = self.repository.load_charge(app_id, charge_no)
            if charge is None:
                raise ChargeNotFound(charge_no)
            if not ChargeStateMachine.can_refund(charge.status):
                raise ChargeNotRefundable(charge_no, f"charge is {charge.status.value}")

            remaining = charge.amount - self._held_amount(charge)
            if amount > remaining:
                raise ChargeNotRefundable(
                    charge_no,
                    f"requested {amount} exceeds refundable {remaining}",
                )

            refund = self.repository.save_refund(
                Refund(
                    app_id=app_id,
                    refund_no=new_refund_no(),
                    charge_no=charge_no,
                    channel=charge.channel,
                    amount=amount,
                    status=RefundStatus.REQUESTED,
                    reason=reason,
                ),
                expected_version=None,
            )

        logger.info(
            "Refund %s requested on charge %s (amount=%d, remaining=%d)",
            refund.refund_no,
            charge_no,
            amount,
            remaining - amount,
        )
        self.emitter.emit(
            RefundRequested(
                metadata=self._metadata(refund, "caller"),
                refund_no=refund.refund_no,
                charge_no=charge_no,
                amount=amount,
                reason=reason,
            )
        )

        request = self._refund_request(charge, refund)
        if self.executor is None:
            return self._issue(refund, request)

        future = self.executor.submit(self._issue, refund, request)
        future.add_done_callback(partial(self._log_background_failure, refund.refund_no))
        return refund

    def _refund_request(self, charge: Charge, refund: Refund) -> RefundRequest:
        return RefundRequest(
            charge_no=charge.charge_no,
            refund_no=refund.refund_no,
            amount=refund.amount,
            charge_amount=charge.amount,
            platform_trade_no=charge.platform_trade_no,
            reason=refund.reason,
        )

    def _log_background_failure(self, refund_no: str, future: Future) -> None:
        if future.cancelled():
            logger.warning("Background issuance of refund %s was cancelled", refund_no)
            return
        error = future.exception()
        if error is None or isinstance(error, ChannelRejected):
            return
        logger.error(
            "Background issuance of refund %s failed, left requested",
            refund_no,
            exc_info=error,
        )

    def _held_amount(self, charge: Charge) -> int:
        return sum(
            r.amount
            for r in self.repository.list_refunds(charge.app_id, charge.charge_no)
            if RefundStateMachine.holds_headroom(r.status)
        )

    def _issue(self, refund: Refund, request: RefundRequest) -> Refund:
        adapter = self.registry.get(refund.channel)
        try:
            result = adapter.refund(request)
        except ChannelRejected as e:
            logger.warning("Platform rejected refund %s: %s", refund.refund_no, e.message)
            self._apply(
                refund.refund_no,
                RefundResult(signal=Signal.FAILED, message=e.message),
                actor_type="caller",
            )
            raise
        except ChannelTransportError as e:
            logger.warning(
                "Refund %s left requested, platform unreachable: %s",
                refund.refund_no,
                e.message,
            )
            return refund

        return self._apply(refund.refund_no, result, actor_type="caller")

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def get(self, app_id: int, refund_no: str) -> Refund:
        refund = self.repository.load_refund(app_id, refund_no)
        if refund is None:
            raise RefundNotFound(refund_no)
        return refund

    def list_for_charge(self, app_id: int, charge_no: str) -> list[Refund]:
        if self.repository.load_charge(app_id, charge_no) is None:
            raise ChargeNotFound(charge_no)
        return self.repository.list_refunds(app_id, charge_no)

    def query_and_refresh(self, app_id: int, refund_no: str) -> Refund:
        """Return the latest state of a refund, asking the platform if it is pending.

        A refund the platform never acknowledged (no platform reference yet)
        is sent again under the same refund number instead of queried; both
        platforms treat a repeated refund number as the same refund.
        """
        refund = self.get(app_id, refund_no)
        if RefundStateMachine.is_terminal(refund.status):
            return refund
        if refund.platform_refund_id is None:
            return self._resend(refund)

        adapter = self.registry.get(refund.channel)
        try:
            result = adapter.query_refund(refund.charge_no, refund.refund_no)
        except ChannelTransportError as e:
            logger.warning(
                "Query for refund %s failed, returning stored state: %s",
                refund_no,
                e.message,
            )
            return refund

        return self._apply(refund_no, result, actor_type="query")

    def _resend(self, refund: Refund) -> Refund:
        charge = self.repository.load_charge(refund.app_id, refund.charge_no)
        if charge is None:
            raise ChargeNotFound(refund.charge_no)

        logger.info("Refund %s has no platform reference, sending it again", refund.refund_no)
        try:
            return self._issue(refund, self._refund_request(charge, refund))
        except ChannelRejected:
            # Recorded as FAILED by _issue
            return self.get(refund.app_id, refund.refund_no)

    def apply_notify(self, refund: Refund, notify: NotifyResult) -> Refund:
        """Apply a parsed platform refund notification.

        Raises:
            UnverifiedNotification: The payload failed authentication
        """
        if not notify.verified:
            raise UnverifiedNotification(refund.refund_no, notify.message or "signature check failed")
        if notify.business_id != refund.refund_no:
            raise UnverifiedNotification(refund.refund_no, "notification names another refund")
        return self._apply(refund.refund_no, notify.as_refund_result(), actor_type="webhook")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _apply(self, refund_no: str, result: RefundResult, actor_type: str) -> Refund:
        try:
            return self._apply_once(refund_no, result, actor_type)
        except ConcurrentModification:
            logger.info("Refund %s changed concurrently, retrying refresh", refund_no)
            return self._apply_once(refund_no, result, actor_type)

    def _apply_once(self, refund_no: str, result: RefundResult, actor_type: str) -> Refund:
        with self.locks.hold(("refund", refund_no)):
            refund = self.repository.find_refund(refund_no)
            if refund is None:
                raise RefundNotFound(refund_no)

            transition = RefundStateMachine.apply_refresh(refund.status, result.signal)
            if not transition.changed:
                if result.platform_refund_id and not refund.platform_refund_id:
                    # Accepted but still pending: keep the platform reference
                    return self.repository.save_refund(
                        replace(refund, platform_refund_id=result.platform_refund_id),
                        expected_version=refund.version,
                    )
                return refund

            updated = replace(
                refund,
                status=transition.status,
                platform_refund_id=result.platform_refund_id or refund.platform_refund_id,
            )
            if transition.status == RefundStatus.SUCCESS:
                updated.succeeded_at = utcnow()
            else:
                updated.failure_reason = result.message or "refund failed"
            saved = self.repository.save_refund(updated, expected_version=refund.version)

        logger.info(
            "Refund %s moved %s -> %s (%s)",
            refund_no,
            transition.previous.value,
            transition.status.value,
            actor_type,
        )
        metadata = self._metadata(saved, actor_type)
        if saved.status == RefundStatus.SUCCESS:
            self.emitter.emit(
                RefundSucceeded(
                    metadata=metadata,
                    refund_no=saved.refund_no,
                    charge_no=saved.charge_no,
                    amount=saved.amount,
                    platform_refund_id=saved.platform_refund_id,
                )
            )
        else:
            self.emitter.emit(
                RefundFailed(
                    metadata=metadata,
                    refund_no=saved.refund_no,
                    charge_no=saved.charge_no,
                    amount=saved.amount,
                    failure_reason=saved.failure_reason or "",
                )
            )
        return saved

    def _metadata(self, refund: Refund, actor_type: str) -> EventMetadata:
        return EventMetadata.create(
            app_id=refund.app_id,
            correlation_id=charge_correlation_id(refund.charge_no),
            actor_type=actor_type,
            source_service="refund_orchestrator",
        )
