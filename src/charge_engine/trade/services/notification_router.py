"""Inbound platform notification routing.

Platforms call back with a flat parameter map and no knowledge of our app
ids. The router finds the business record from the platform's reference
field, authenticates the payload through the record's channel adapter and
hands the parsed signal to the owning orchestrator.

The boolean result tells the web layer which acknowledgement to send: True
once the record is settled successfully (or a late payment has been
reported), so platforms keep retrying anything else according to their own
policy.
"""

from __future__ import annotations

import logging

from charge_engine.trade.channels.base import NotifyResult
from charge_engine.trade.channels.registry import ChannelRegistry
from charge_engine.trade.errors import TradeError
from charge_engine.trade.events.emitter import EventEmitter
from charge_engine.trade.events.types import EventMetadata, NotificationRejected
from charge_engine.trade.repositories.base import TradeRepository
from charge_engine.trade.services.charge_orchestrator import ChargeOrchestrator
from charge_engine.trade.services.refund_orchestrator import RefundOrchestrator
from charge_engine.trade.services.state_machine import ChargeStateMachine
from charge_engine.trade.types import ChargeStatus, PlatformType, RefundStatus

logger = logging.getLogger(__name__)


def resolve_platform(platform: PlatformType | str) -> PlatformType | None:
    if isinstance(platform, PlatformType):
        return platform
    try:
        return PlatformType(str(platform).lower())
    except ValueError:
        return None


class NotificationRouter:
    """Dispatches platform callbacks to the charge and refund orchestrators."""

    def __init__(
        self,
        repository: TradeRepository,
        registry: ChannelRegistry,
        charges: ChargeOrchestrator,
        refunds: RefundOrchestrator,
        emitter: EventEmitter | None = None,
    ):
        self.repository = repository
        self.registry = registry
        self.charges = charges
        self.refunds = refunds
        self.emitter = emitter or EventEmitter()

    def handle_charge_notify(self, platform: PlatformType | str, params: dict[str, str]) -> bool:
        """Process a charge callback.

        Returns:
            True if the charge is (now) paid, or the payment arrived after
            the charge was closed and has been reported as late
        """
        resolved = resolve_platform(platform)
        if resolved is None:
            logger.warning("Charge notify from unknown platform %r ignored", platform)
            return False

        charge_no = params.get(resolved.charge_notify_field, "")
        if not charge_no:
            logger.warning("Charge notify from %s without %s", resolved.value, resolved.charge_notify_field)
            return False

        charge = self.repository.find_charge(charge_no)
        if charge is None or charge.channel.platform != resolved:
            logger.warning("Charge notify from %s for unknown charge %s", resolved.value, charge_no)
            return False

        if charge.status == ChargeStatus.SUCCESS:
            return True

        notify = self.registry.get(charge.channel).parse_notify(params)
        if not notify.verified or notify.is_refund:
            self._reject(resolved, charge.app_id, notify)
            return False

        try:
            updated = self.charges.apply_notify(charge, notify)
        except TradeError as e:
            logger.warning("Charge notify for %s not applied: %s", charge_no, e)
            return False

        logger.info(
            "Charge notify for %s handled (signal=%s, status=%s)",
            charge_no,
            notify.signal.value,
            updated.status.value,
        )
        if ChargeStateMachine.is_late_payment(updated.status, notify.signal):
            # Recorded for operators; nothing further can change locally
            return True
        return updated.status == ChargeStatus.SUCCESS

    def handle_refund_notify(self, platform: PlatformType | str, params: dict[str, str]) -> bool:
        """Process a refund callback.

        Only platforms that settle refunds asynchronously send these.

        Returns:
            True if the refund is (now) paid out
        """
        resolved = resolve_platform(platform)
        if resolved is None or not resolved.supports_refund_notify:
            logger.warning("Refund notify from %r ignored: platform sends none", platform)
            return False

        refund_no = params.get(resolved.refund_notify_field or "", "")
        if not refund_no:
            logger.warning("Refund notify from %s without %s", resolved.value, resolved.refund_notify_field)
            return False

        refund = self.repository.find_refund(refund_no)
        if refund is None or refund.channel.platform != resolved:
            logger.warning("Refund notify from %s for unknown refund %s", resolved.value, refund_no)
            return False

        if refund.status == RefundStatus.SUCCESS:
            return True

        notify = self.registry.get(refund.channel).parse_notify(params)
        if not notify.verified or not notify.is_refund:
            self._reject(resolved, refund.app_id, notify)
            return False

        try:
            updated = self.refunds.apply_notify(refund, notify)
        except TradeError as e:
            logger.warning("Refund notify for %s not applied: %s", refund_no, e)
            return False

        logger.info(
            "Refund notify for %s handled (signal=%s, status=%s)",
            refund_no,
            notify.signal.value,
            updated.status.value,
        )
        return updated.status == RefundStatus.SUCCESS

    def _reject(self, platform: PlatformType, app_id: int, notify: NotifyResult) -> None:
        reason = notify.message if not notify.verified else "notification type mismatch"
        logger.warning(
            "Rejected %s notify for %s: %s",
            platform.value,
            notify.business_id,
            reason,
        )
        self.emitter.emit(
            NotificationRejected(
                metadata=EventMetadata.create(
                    app_id=app_id,
                    actor_type="webhook",
                    source_service="notification_router",
                ),
                platform=platform.value,
                business_id=notify.business_id,
                is_refund=notify.is_refund,
                reason=reason or "signature check failed",
            )
        )
