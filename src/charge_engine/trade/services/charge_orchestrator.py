"""Charge Orchestrator - charge creation and status reconciliation.

Orchestrates the charge lifecycle through:
1. Idempotent creation per (app, order, channel)
2. Credential issuance by the channel adapter
3. Status refresh from pull queries and push notifications
4. Timeout closing of charges nobody paid

Every status change goes through ChargeStateMachine under a per-charge lock
and an optimistic version check, so two concurrent PAID signals can never both
observe WAIT_PAY and fulfil the order twice.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any
from uuid import NAMESPACE_URL, UUID, uuid5

from charge_engine.trade.channels.base import NotifyResult, PayRequest, QueryResult
from charge_engine.trade.channels.registry import ChannelRegistry
from charge_engine.trade.config import TradeConfig
from charge_engine.trade.errors import (
    ChannelRejected,
    ChannelTransportError,
    ChargeNotFound,
    ConcurrentModification,
    OrderAlreadyPaid,
    UnverifiedNotification,
    ValidationError,
)
from charge_engine.trade.events.emitter import EventEmitter
from charge_engine.trade.events.types import (
    ChargeClosed,
    ChargeCreated,
    ChargeFailed,
    ChargeSucceeded,
    EventMetadata,
    LatePaymentDetected,
)
from charge_engine.trade.repositories.base import TradeRepository
from charge_engine.trade.scheduler import TimeoutScheduler
from charge_engine.trade.services.locking import KeyedLock
from charge_engine.trade.services.state_machine import ChargeStateMachine, Transition
from charge_engine.trade.types import (
    Charge,
    ChannelType,
    ChargeStatus,
    Signal,
    new_charge_no,
    utcnow,
)

logger = logging.getLogger(__name__)

MAX_ORDER_NO_LENGTH = 64
MAX_SUBJECT_LENGTH = 256

# Message on the local signal that closes an expired charge
EXPIRED = "expired"


def charge_correlation_id(charge_no: str) -> UUID:
    """Stable correlation id linking every event of one charge."""
    return uuid5(NAMESPACE_URL, f"charge:{charge_no}")


class ChargeOrchestrator:
    """Charge orchestration service.

    Coordinates:
    - Charge creation and reuse of in-flight charges
    - Pull-query refresh through the channel adapter
    - Notification-driven refresh
    - Timeout close of expired charges
    """

    def __init__(
        self,
        repository: TradeRepository,
        registry: ChannelRegistry,
        scheduler: TimeoutScheduler,
        config: TradeConfig,
        emitter: EventEmitter | None = None,
        locks: KeyedLock | None = None,
    ):
        self.repository = repository
        self.registry = registry
        self.scheduler = scheduler
        self.config = config
        self.emitter = emitter or EventEmitter()
        self.locks = locks or KeyedLock()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(
        self,
        app_id: int,
        order_no: str,
        channel: ChannelType | str,
        amount: int,
        subject: str,
        extra: dict[str, Any] | None = None,
        expire_minutes: int | None = None,
        body: str = "",
    ) -> Charge:
        """Create a charge for an order, or return the in-flight one.

        Args:
            app_id: Merchant application
            order_no: Merchant order number
            channel: Channel the payer will use
            amount: Amount in minor units
            subject: Short description shown to the payer
            extra: Channel-specific parameters (e.g. ``return_url``)
            expire_minutes: Lifetime of the charge; defaults from config
            body: Longer description

        Returns:
            The persisted charge, in WAIT_PAY with its credential

        Raises:
            ValidationError: Bad parameters; raised before any platform call
            OrderAlreadyPaid: A charge for this order was already paid
            ChannelRejected: The platform would not issue a credential
        """
        channel = self._coerce_channel(channel)
        expire = self._validate_create(app_id, order_no, channel, amount, subject, extra, expire_minutes)
        adapter = self.registry.get(channel)

        with self.locks.hold(("order", app_id, order_no)):
            existing = self.repository.list_charges(app_id, order_no)
            if any(c.status == ChargeStatus.SUCCESS for c in existing):
                raise OrderAlreadyPaid(app_id, order_no)

            for charge in existing:
                if charge.channel == channel and not ChargeStateMachine.is_terminal(charge.status):
                    logger.info(
                        "Reusing charge %s for order %s/%s on %s",
                        charge.charge_no,
                        app_id,
                        order_no,
                        channel.value,
                    )
                    return charge

            charge_no = new_charge_no()
            # Nothing is persisted unless the platform hands back a credential
            try:
                result = adapter.pay(
                    PayRequest(
                        charge_no=charge_no,
                        amount=amount,
                        subject=subject,
                        body=body,
                        time_expire=expire,
                        extra=dict(extra or {}),
                    )
                )
            except ChannelRejected as e:
                logger.warning(
                    "Channel %s rejected charge for order %s/%s: %s",
                    channel.value,
                    app_id,
                    order_no,
                    e.message,
                )
                raise

            charge = Charge(
                app_id=app_id,
                charge_no=charge_no,
                order_no=order_no,
                channel=channel,
                amount=amount,
                subject=subject,
                body=body,
                status=ChargeStatus.CREATED,
                time_expire=expire,
                extra=dict(extra or {}),
            )
            transition = ChargeStateMachine.credential_issued(charge.status)
            charge.status = transition.status
            charge.credential = dict(result.credential)
            saved = self.repository.save_charge(charge, expected_version=None)

            self.scheduler.schedule_at(timedelta(minutes=expire), saved.charge_no)

        logger.info(
            "Created charge %s for order %s/%s on %s (amount=%d, expires in %dm)",
            saved.charge_no,
            app_id,
            order_no,
            channel.value,
            amount,
            expire,
        )
        self.emitter.emit(
            ChargeCreated(
                metadata=self._metadata(saved, "caller"),
                charge_no=saved.charge_no,
                order_no=saved.order_no,
                channel=saved.channel.value,
                amount=saved.amount,
                time_expire=saved.time_expire,
            )
        )
        return saved

    def _coerce_channel(self, channel: ChannelType | str) -> ChannelType:
        if isinstance(channel, ChannelType):
            return channel
        try:
            return ChannelType(channel)
        except ValueError:
            raise ValidationError(f"Unknown channel: {channel}", field="channel") from None

    def _validate_create(
        self,
        app_id: int,
        order_no: str,
        channel: ChannelType,
        amount: int,
        subject: str,
        extra: dict[str, Any] | None,
        expire_minutes: int | None,
    ) -> int:
        """Check create parameters and return the effective lifetime in minutes."""
        if not isinstance(app_id, int) or app_id <= 0:
            raise ValidationError("app_id must be a positive integer", field="app_id")
        if not order_no or not order_no.strip():
            raise ValidationError("order_no is required", field="order_no")
        if len(order_no) > MAX_ORDER_NO_LENGTH:
            raise ValidationError(
                f"order_no cannot exceed {MAX_ORDER_NO_LENGTH} characters", field="order_no"
            )
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("amount must be a positive integer", field="amount")
        if not subject or not subject.strip():
            raise ValidationError("subject is required", field="subject")
        if len(subject) > MAX_SUBJECT_LENGTH:
            raise ValidationError(
                f"subject cannot exceed {MAX_SUBJECT_LENGTH} characters", field="subject"
            )

        expire = self.config.default_expire_minutes if expire_minutes is None else expire_minutes
        if expire < 1 or expire > self.config.max_expire_minutes:
            raise ValidationError(
                f"expire_minutes must be between 1 and {self.config.max_expire_minutes}",
                field="expire_minutes",
            )

        channel.check_extra(extra)
        return expire

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def get(self, app_id: int, charge_no: str) -> Charge:
        charge = self.repository.load_charge(app_id, charge_no)
        if charge is None:
            raise ChargeNotFound(charge_no)
        return charge

    def query_and_refresh(self, app_id: int, charge_no: str) -> Charge:
        """Return the latest state of a charge, asking the platform if it is unsettled.

        Terminal charges are returned without a platform call. A platform that
        cannot be reached leaves the persisted state as the answer.
        """
        charge = self.get(app_id, charge_no)
        return self._refresh(charge, actor_type="query")

    def _refresh(self, charge: Charge, actor_type: str) -> Charge:
        if ChargeStateMachine.is_terminal(charge.status):
            return charge

        adapter = self.registry.get(charge.channel)
        try:
            result = adapter.query(charge.charge_no)
        except ChannelTransportError as e:
            logger.warning(
                "Query for charge %s failed, returning stored state: %s",
                charge.charge_no,
                e.message,
            )
            return charge

        return self._apply(charge.charge_no, result, actor_type)

    def apply_notify(self, charge: Charge, notify: NotifyResult) -> Charge:
        """Apply a parsed platform notification to a charge.

        Idempotent: a notification for a charge that has already reached the
        notified state returns the current state unchanged.

        Raises:
            UnverifiedNotification: The payload failed authentication or
                names a different charge; nothing is changed
        """
        if not notify.verified:
            raise UnverifiedNotification(charge.charge_no, notify.message or "signature check failed")
        if notify.business_id != charge.charge_no:
            raise UnverifiedNotification(charge.charge_no, "notification names another charge")

        updated = self._apply(charge.charge_no, notify.as_query_result(), "webhook")

        if ChargeStateMachine.is_late_payment(updated.status, notify.signal):
            logger.error(
                "Payment notified for %s charge %s (platform trade %s)",
                updated.status.value,
                updated.charge_no,
                notify.platform_ref,
            )
            self.emitter.emit(
                LatePaymentDetected(
                    metadata=self._metadata(updated, "webhook"),
                    charge_no=updated.charge_no,
                    order_no=updated.order_no,
                    local_status=updated.status.value,
                    platform_trade_no=notify.platform_ref,
                    amount=notify.amount,
                )
            )
        return updated

    def close_if_expired(self, charge_no: str, now: datetime | None = None) -> Charge | None:
        """Timeout path: refresh the charge and close it if still unpaid past expiry.

        Safe to call late or more than once. Fired early (delay queues round
        delays), it reschedules itself for the remaining time.

        Returns:
            The charge after the check, or None if it does not exist
        """
        charge = self.repository.find_charge(charge_no)
        if charge is None:
            logger.warning("Timeout fired for unknown charge %s", charge_no)
            return None

        charge = self._refresh(charge, actor_type="scheduler")
        if ChargeStateMachine.is_terminal(charge.status):
            return charge

        now = now or utcnow()
        deadline = charge.expires_at + timedelta(seconds=self.config.close_grace_seconds)
        if now < deadline:
            logger.info("Charge %s not expired yet, rescheduling close", charge_no)
            self.scheduler.schedule_at(deadline - now, charge_no)
            return charge

        return self._apply(
            charge_no,
            QueryResult(signal=Signal.CLOSED, message=EXPIRED),
            actor_type="scheduler",
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _checked_signal(self, charge: Charge, result: QueryResult) -> Signal:
        if (
            result.signal == Signal.PAID
            and result.amount is not None
            and result.amount != charge.amount
        ):
            logger.error(
                "Platform reported %d paid for charge %s of %d; ignoring",
                result.amount,
                charge.charge_no,
                charge.amount,
            )
            return Signal.UNKNOWN
        return result.signal

    def _apply(self, charge_no: str, result: QueryResult, actor_type: str) -> Charge:
        """Run a platform signal through the state machine and persist it.

        A version conflict (another process wrote in between) is retried once
        with fresh state.
        """
        try:
            return self._apply_once(charge_no, result, actor_type)
        except ConcurrentModification:
            logger.info("Charge %s changed concurrently, retrying refresh", charge_no)
            return self._apply_once(charge_no, result, actor_type)

    def _apply_once(self, charge_no: str, result: QueryResult, actor_type: str) -> Charge:
        with self.locks.hold(("charge", charge_no)):
            charge = self.repository.find_charge(charge_no)
            if charge is None:
                raise ChargeNotFound(charge_no)

            signal = self._checked_signal(charge, result)
            transition = ChargeStateMachine.apply_refresh(charge.status, signal)
            if not transition.changed:
                return charge

            updated = replace(charge, status=transition.status)
            if transition.status == ChargeStatus.SUCCESS:
                updated.platform_trade_no = result.platform_trade_no or charge.platform_trade_no
                updated.paid_at = result.paid_at or utcnow()
            saved = self.repository.save_charge(updated, expected_version=charge.version)

        logger.info(
            "Charge %s moved %s -> %s (%s)",
            charge_no,
            transition.previous.value,
            transition.status.value,
            actor_type,
        )
        self._emit_transition(saved, transition, result, actor_type)
        return saved

    def _emit_transition(
        self,
        charge: Charge,
        transition: Transition[ChargeStatus],
        result: QueryResult,
        actor_type: str,
    ) -> None:
        metadata = self._metadata(charge, actor_type)
        if transition.status == ChargeStatus.SUCCESS:
            self.emitter.emit(
                ChargeSucceeded(
                    metadata=metadata,
                    charge_no=charge.charge_no,
                    order_no=charge.order_no,
                    channel=charge.channel.value,
                    amount=charge.amount,
                    platform_trade_no=charge.platform_trade_no,
                    paid_at=charge.paid_at,
                )
            )
        elif transition.status == ChargeStatus.CLOSED:
            self.emitter.emit(
                ChargeClosed(
                    metadata=metadata,
                    charge_no=charge.charge_no,
                    order_no=charge.order_no,
                    reason="expired" if result.message == EXPIRED else "platform",
                )
            )
        elif transition.status == ChargeStatus.FAILED:
            self.emitter.emit(
                ChargeFailed(
                    metadata=metadata,
                    charge_no=charge.charge_no,
                    order_no=charge.order_no,
                    message=result.message,
                )
            )

    def _metadata(self, charge: Charge, actor_type: str) -> EventMetadata:
        return EventMetadata.create(
            app_id=charge.app_id,
            correlation_id=charge_correlation_id(charge.charge_no),
            actor_type=actor_type,
            source_service="charge_orchestrator",
        )
