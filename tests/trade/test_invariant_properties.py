"""Property-based tests for trade invariants.

Hypothesis generates random signal sequences and refund amounts; whatever
the order, a charge settles at most once, terminal states never move, and
refunds never exceed what was paid.
"""

from __future__ import annotations

from hypothesis import given, settings, strategies as st

from charge_engine.trade.channels.sandbox import SandboxPlatform
from charge_engine.trade.config import create_sandbox_config
from charge_engine.trade.errors import ChargeNotRefundable
from charge_engine.trade.events import EventEmitter
from charge_engine.trade.gateway import TradeGateway
from charge_engine.trade.repositories import InMemoryTradeRepository
from charge_engine.trade.scheduler import InMemoryScheduler
from charge_engine.trade.services.state_machine import ChargeStateMachine, RefundStateMachine
from charge_engine.trade.types import ChargeStatus, RefundStatus, Signal

from ..conftest import APP_ID, SECRET

signals = st.lists(st.sampled_from(list(Signal)), max_size=20)


def build_gateway():
    sandbox = SandboxPlatform(secret=SECRET)
    events = []
    emitter = EventEmitter()
    emitter.on_all(events.append)
    gateway = TradeGateway.build(
        config=create_sandbox_config(SECRET),
        repository=InMemoryTradeRepository(),
        scheduler=InMemoryScheduler(),
        client_for=lambda platform: sandbox,
        emitter=emitter,
    )
    return gateway, sandbox, events


class TestChargeStateInvariants:
    """State machine properties over arbitrary signal sequences."""

    @given(sequence=signals)
    def test_terminal_states_absorb(self, sequence):
        """Once terminal, a charge never changes again."""
        status = ChargeStatus.WAIT_PAY
        terminal_at = None
        for signal in sequence:
            transition = ChargeStateMachine.apply_refresh(status, signal)
            if terminal_at is not None:
                assert transition.status == terminal_at
                assert not transition.changed
            status = transition.status
            if ChargeStateMachine.is_terminal(status):
                terminal_at = status

    @given(sequence=signals)
    def test_success_reached_at_most_once(self, sequence):
        """At most one transition into success."""
        status = ChargeStatus.WAIT_PAY
        successes = 0
        for signal in sequence:
            transition = ChargeStateMachine.apply_refresh(status, signal)
            if transition.changed and transition.status == ChargeStatus.SUCCESS:
                successes += 1
            status = transition.status
        assert successes <= 1

    @given(sequence=signals)
    def test_pending_and_unknown_never_move(self, sequence):
        """Only PAID, CLOSED and FAILED change a charge."""
        status = ChargeStatus.WAIT_PAY
        for signal in sequence:
            transition = ChargeStateMachine.apply_refresh(status, signal)
            if signal in (Signal.PENDING, Signal.UNKNOWN):
                assert not transition.changed
            status = transition.status

    @given(sequence=signals)
    def test_refund_terminal_states_absorb(self, sequence):
        """Refunds settle once."""
        status = RefundStatus.REQUESTED
        changes = 0
        for signal in sequence:
            transition = RefundStateMachine.apply_refresh(status, signal)
            changes += transition.changed
            status = transition.status
        assert changes <= 1


class TestGatewayInvariants:
    """Properties of the full engine."""

    @settings(max_examples=30, deadline=None)
    @given(notifies=st.integers(min_value=1, max_value=5), queries=st.integers(min_value=0, max_value=5))
    def test_charge_succeeds_once(self, notifies, queries):
        """Any mix of notifications and queries fulfils the order once."""
        gateway, sandbox, events = build_gateway()
        view = gateway.pay(APP_ID, "O1", "alipay_app", 1000, "Order O1")
        sandbox.simulate_payment(view.charge_no)
        params = sandbox.build_charge_notify(view.charge_no)

        for _ in range(notifies):
            assert gateway.handle_charge_notify("alipay", params)
        for _ in range(queries):
            gateway.query_payment(APP_ID, view.charge_no)

        assert [e.event_type for e in events].count("ChargeSucceeded") == 1

    @settings(max_examples=30, deadline=None)
    @given(
        amount=st.integers(min_value=1, max_value=10_000),
        refunds=st.lists(st.integers(min_value=1, max_value=5_000), max_size=8),
    )
    def test_refunds_never_exceed_charge(self, amount, refunds):
        """Admitted refunds add up to at most the charge amount."""
        gateway, sandbox, _ = build_gateway()
        view = gateway.pay(APP_ID, "O1", "alipay_app", amount, "Order O1")
        sandbox.simulate_payment(view.charge_no)
        gateway.query_payment(APP_ID, view.charge_no)

        admitted = 0
        for refund_amount in refunds:
            try:
                gateway.refund(APP_ID, view.charge_no, refund_amount)
            except ChargeNotRefundable:
                assert admitted + refund_amount > amount
            else:
                admitted += refund_amount

        held = sum(
            r.amount
            for r in gateway.list_refunds(APP_ID, view.charge_no)
            if r.status in (RefundStatus.REQUESTED, RefundStatus.SUCCESS)
        )
        assert held == admitted <= amount
