"""Trade Gateway - single integration path for the trade engine.

Usage:
    gateway = TradeGateway.build(
        config=create_sandbox_config(secret),
        repository=InMemoryTradeRepository(),
        scheduler=InMemoryScheduler(),
        client_for=lambda platform: sandbox,
    )

    # Create (or resume) a charge for an order
    view = gateway.pay(app_id=1, order_no="O1", channel="alipay_wap", amount=1000,
                       subject="Order O1", extra={"return_url": "https://..."})

    # Refresh from the platform
    view = gateway.query_payment(1, view.charge_no)

    # Platform callbacks
    ok = gateway.handle_charge_notify("alipay", params)

The gateway:
- Wires repository, registry, scheduler and emitter into the orchestrators
- Shares one lock table between them
- Returns read-only views (credential hidden once a charge leaves WAIT_PAY)
"""

from __future__ import annotations

from concurrent.futures import Executor
from datetime import datetime
from typing import Any, Callable

from charge_engine.trade.channels.base import PlatformClient
from charge_engine.trade.channels.registry import ChannelRegistry
from charge_engine.trade.config import TradeConfig
from charge_engine.trade.events.emitter import EventEmitter
from charge_engine.trade.repositories.base import TradeRepository
from charge_engine.trade.scheduler import TimeoutScheduler
from charge_engine.trade.services.charge_orchestrator import ChargeOrchestrator
from charge_engine.trade.services.locking import KeyedLock
from charge_engine.trade.services.notification_router import NotificationRouter
from charge_engine.trade.services.refund_orchestrator import RefundOrchestrator
from charge_engine.trade.types import ChannelType, ChargeView, PlatformType, RefundView


class TradeGateway:
    """Synchronous trade facade."""

    def __init__(
        self,
        config: TradeConfig,
        repository: TradeRepository,
        registry: ChannelRegistry,
        scheduler: TimeoutScheduler,
        emitter: EventEmitter | None = None,
        executor: Executor | None = None,
    ) -> None:
        self.config = config
        self.repository = repository
        self.registry = registry
        self.scheduler = scheduler
        self.emitter = emitter or EventEmitter()
        self.locks = KeyedLock()

        self.charges = ChargeOrchestrator(
            repository=repository,
            registry=registry,
            scheduler=scheduler,
            config=config,
            emitter=self.emitter,
            locks=self.locks,
        )
        self.refunds = RefundOrchestrator(
            repository=repository,
            registry=registry,
            emitter=self.emitter,
            locks=self.locks,
            executor=executor,
        )
        self.router = NotificationRouter(
            repository=repository,
            registry=registry,
            charges=self.charges,
            refunds=self.refunds,
            emitter=self.emitter,
        )

    @classmethod
    def build(
        cls,
        config: TradeConfig,
        repository: TradeRepository,
        scheduler: TimeoutScheduler,
        client_for: Callable[[PlatformType], PlatformClient],
        emitter: EventEmitter | None = None,
        executor: Executor | None = None,
    ) -> TradeGateway:
        """Build a gateway with adapters for every configured channel."""
        registry = ChannelRegistry.from_config(config, client_for)
        return cls(
            config=config,
            repository=repository,
            registry=registry,
            scheduler=scheduler,
            emitter=emitter,
            executor=executor,
        )

    # ------------------------------------------------------------------
    # Charges
    # ------------------------------------------------------------------

    def pay(
        self,
        app_id: int,
        order_no: str,
        channel: ChannelType | str,
        amount: int,
        subject: str,
        body: str = "",
        extra: dict[str, Any] | None = None,
        expire_minutes: int | None = None,
    ) -> ChargeView:
        charge = self.charges.create(
            app_id=app_id,
            order_no=order_no,
            channel=channel,
            amount=amount,
            subject=subject,
            extra=extra,
            expire_minutes=expire_minutes,
            body=body,
        )
        return ChargeView.of(charge)

    def query_payment(self, app_id: int, charge_no: str) -> ChargeView:
        return ChargeView.of(self.charges.query_and_refresh(app_id, charge_no))

    def close_charge(self, charge_no: str, now: datetime | None = None) -> ChargeView | None:
        """Timeout entry point called by the scheduler."""
        charge = self.charges.close_if_expired(charge_no, now=now)
        return ChargeView.of(charge) if charge else None

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------

    def refund(self, app_id: int, charge_no: str, amount: int, reason: str = "") -> RefundView:
        return RefundView.of(self.refunds.request_refund(app_id, charge_no, amount, reason))

    def query_refund(self, app_id: int, refund_no: str) -> RefundView:
        return RefundView.of(self.refunds.query_and_refresh(app_id, refund_no))

    def list_refunds(self, app_id: int, charge_no: str) -> list[RefundView]:
        return [RefundView.of(r) for r in self.refunds.list_for_charge(app_id, charge_no)]

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def handle_charge_notify(self, platform: PlatformType | str, params: dict[str, str]) -> bool:
        return self.router.handle_charge_notify(platform, params)

    def handle_refund_notify(self, platform: PlatformType | str, params: dict[str, str]) -> bool:
        return self.router.handle_refund_notify(platform, params)
