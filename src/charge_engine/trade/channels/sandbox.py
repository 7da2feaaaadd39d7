"""Sandbox platform for local development and testing.

Plays the remote side of both platform dialects: it accepts signed requests
from the adapters, keeps its own trade book, and produces signed notify
payloads. The adapters stay stateless; all simulated platform state lives here.

Replace with real SDK-backed PlatformClient implementations for production.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from charge_engine.trade.channels.signing import (
    canonical_string,
    sign_params,
    to_major_units,
    to_minor_units,
    verify_params,
)
from charge_engine.trade.errors import ChannelTransportError


@dataclass
class SandboxTrade:
    """A trade as the platform sees it."""

    order_id: str
    platform: str
    amount: int
    status: str = "created"  # created/paid/closed/failed
    trade_no: str = field(default_factory=lambda: uuid.uuid4().hex[:24])
    paid_at: datetime | None = None
    refunded: int = 0


@dataclass
class SandboxRefund:
    """A refund as the platform sees it."""

    refund_no: str
    order_id: str
    platform: str
    amount: int
    status: str = "processing"  # processing/success/failed
    refund_id: str = field(default_factory=lambda: uuid.uuid4().hex[:24])


class SandboxPlatform:
    """In-memory stand-in for the Alipay and UnionPay gateways.

    Args:
        secret: Signing secret shared with the configured channels.
        auto_settle: If True, trades report as paid as soon as they are created.
        latency_seconds: Simulated response time; calls whose timeout is
            shorter fail with ChannelTransportError.
    """

    def __init__(self, secret: str, auto_settle: bool = False, latency_seconds: float = 0.0):
        self.secret = secret
        self.auto_settle = auto_settle
        self.latency_seconds = latency_seconds
        self.offline = False
        self.reject_next_pay: str | None = None
        self.calls: list[tuple[str, dict[str, str]]] = []
        self._trades: dict[str, SandboxTrade] = {}
        self._refunds: dict[str, SandboxRefund] = {}
        self._lock = threading.Lock()
        self._handlers: dict[str, Callable[[dict[str, str]], dict[str, str]]] = {
            "alipay.trade.wap.pay": self._alipay_pay,
            "alipay.trade.page.pay": self._alipay_pay,
            "alipay.trade.app.pay": self._alipay_app_pay,
            "alipay.trade.query": self._alipay_query,
            "alipay.trade.refund": self._alipay_refund,
            "alipay.trade.fastpay.refund.query": self._alipay_refund_query,
            "unionpay.frontTransReq": self._unionpay_consume,
            "unionpay.queryTrans": self._unionpay_query,
            "unionpay.backTransReq": self._unionpay_refund,
        }

    # ------------------------------------------------------------------
    # PlatformClient
    # ------------------------------------------------------------------

    def execute(self, method: str, params: dict[str, str], timeout: float) -> dict[str, str]:
        if self.offline:
            raise ChannelTransportError(f"sandbox platform unreachable for {method}")
        if self.latency_seconds > timeout:
            raise ChannelTransportError(f"{method} timed out after {timeout}s")

        handler = self._handlers.get(method)
        if handler is None:
            raise ChannelTransportError(f"unknown platform method {method}")

        with self._lock:
            self.calls.append((method, dict(params)))
            if method.startswith("alipay."):
                if not verify_params(params, self.secret, "sign"):
                    return {"code": "40002", "sub_code": "isv.invalid-signature", "sub_msg": "invalid signature"}
            elif not verify_params(params, self.secret, "signature"):
                return {"respCode": "11", "respMsg": "signature error"}
            return handler(params)

    # ------------------------------------------------------------------
    # Alipay dialect
    # ------------------------------------------------------------------

    def _open_trade(self, order_id: str, platform: str, amount: int) -> SandboxTrade:
        trade = self._trades.get(order_id)
        if trade is None:
            trade = SandboxTrade(order_id=order_id, platform=platform, amount=amount)
            if self.auto_settle:
                trade.status = "paid"
                trade.paid_at = datetime.now(timezone.utc)
            self._trades[order_id] = trade
        return trade

    def _take_rejection(self) -> str | None:
        reason, self.reject_next_pay = self.reject_next_pay, None
        return reason

    def _alipay_pay(self, params: dict[str, str]) -> dict[str, str]:
        rejection = self._take_rejection()
        if rejection:
            return {"code": "40004", "sub_code": "ACQ.TRADE_HAS_CLOSE", "sub_msg": rejection}
        amount = to_minor_units(params.get("total_amount")) or 0
        self._open_trade(params["out_trade_no"], "alipay", amount)
        return {
            "code": "10000",
            "pay_url": f"https://sandbox.alipay.invalid/gateway.do?{canonical_string(params, ('sign',))}",
        }

    def _alipay_app_pay(self, params: dict[str, str]) -> dict[str, str]:
        response = self._alipay_pay(params)
        if response.get("code") == "10000":
            return {"code": "10000", "order_string": canonical_string(params)}
        return response

    def _alipay_query(self, params: dict[str, str]) -> dict[str, str]:
        trade = self._trades.get(params.get("out_trade_no", ""))
        if trade is None:
            return {"code": "40004", "sub_code": "ACQ.TRADE_NOT_EXIST", "sub_msg": "trade not exist"}
        response = {
            "code": "10000",
            "out_trade_no": trade.order_id,
            "trade_no": trade.trade_no,
            "total_amount": to_major_units(trade.amount),
            "trade_status": {
                "created": "WAIT_BUYER_PAY",
                "paid": "TRADE_SUCCESS",
                "closed": "TRADE_CLOSED",
                "failed": "TRADE_CLOSED",
            }[trade.status],
        }
        if trade.paid_at:
            response["send_pay_date"] = trade.paid_at.strftime("%Y-%m-%d %H:%M:%S")
        return response

    def _alipay_refund(self, params: dict[str, str]) -> dict[str, str]:
        trade = self._trades.get(params.get("out_trade_no", ""))
        if trade is None or trade.status != "paid":
            return {"code": "40004", "sub_code": "ACQ.TRADE_STATUS_ERROR", "sub_msg": "trade not paid"}

        refund_no = params["out_request_no"]
        existing = self._refunds.get(refund_no)
        if existing is not None:
            # Alipay treats a repeated out_request_no as the same refund
            return {"code": "10000", "trade_no": trade.trade_no, "fund_change": "N"}

        amount = to_minor_units(params.get("refund_amount")) or 0
        if trade.refunded + amount > trade.amount:
            return {
                "code": "40004",
                "sub_code": "ACQ.REFUND_AMT_NOT_EQUAL_TOTAL",
                "sub_msg": "refund amount exceeds trade amount",
            }
        trade.refunded += amount
        self._refunds[refund_no] = SandboxRefund(
            refund_no=refund_no,
            order_id=trade.order_id,
            platform="alipay",
            amount=amount,
            status="success",
        )
        return {"code": "10000", "trade_no": trade.trade_no, "fund_change": "Y"}

    def _alipay_refund_query(self, params: dict[str, str]) -> dict[str, str]:
        refund = self._refunds.get(params.get("out_request_no", ""))
        if refund is None:
            return {"code": "10000"}
        return {
            "code": "10000",
            "trade_no": self._trades[refund.order_id].trade_no,
            "refund_status": "REFUND_SUCCESS" if refund.status == "success" else "",
        }

    # ------------------------------------------------------------------
    # UnionPay dialect
    # ------------------------------------------------------------------

    def _unionpay_consume(self, params: dict[str, str]) -> dict[str, str]:
        rejection = self._take_rejection()
        if rejection:
            return {"respCode": "12", "respMsg": rejection}
        self._open_trade(params["orderId"], "unionpay", int(params.get("txnAmt", "0")))
        return {
            "respCode": "00",
            "form": (
                '<form id="pay_form" action="https://sandbox.unionpay.invalid/frontTransReq.do" '
                f'method="post"><input type="hidden" name="orderId" value="{params["orderId"]}"/></form>'
            ),
        }

    def _unionpay_query(self, params: dict[str, str]) -> dict[str, str]:
        order_id = params.get("orderId", "")
        refund = self._refunds.get(order_id)
        if refund is not None:
            return {
                "respCode": "00",
                "origRespCode": {"processing": "05", "success": "00", "failed": "01"}[refund.status],
                "queryId": refund.refund_id,
                "txnAmt": str(refund.amount),
            }

        trade = self._trades.get(order_id)
        if trade is None:
            return {"respCode": "34", "respMsg": "order not exist"}
        response = {
            "respCode": "00",
            "origRespCode": {"created": "05", "paid": "00", "closed": "12", "failed": "01"}[trade.status],
            "queryId": trade.trade_no,
            "txnAmt": str(trade.amount),
        }
        if trade.paid_at:
            response["traceTime"] = trade.paid_at.strftime("%Y%m%d%H%M%S")
        return response

    def _unionpay_refund(self, params: dict[str, str]) -> dict[str, str]:
        trade = next(
            (t for t in self._trades.values() if t.trade_no == params.get("origQryId")),
            None,
        )
        if trade is None or trade.status != "paid":
            return {"respCode": "35", "respMsg": "original trade not found"}

        refund_no = params["orderId"]
        existing = self._refunds.get(refund_no)
        if existing is not None:
            return {"respCode": "00", "queryId": existing.refund_id}

        amount = int(params.get("txnAmt", "0"))
        if trade.refunded + amount > trade.amount:
            return {"respCode": "37", "respMsg": "refund amount exceeds original amount"}
        trade.refunded += amount
        refund = SandboxRefund(
            refund_no=refund_no,
            order_id=trade.order_id,
            platform="unionpay",
            amount=amount,
        )
        self._refunds[refund_no] = refund
        return {"respCode": "00", "queryId": refund.refund_id}

    # ------------------------------------------------------------------
    # Simulation helpers (for tests and demos)
    # ------------------------------------------------------------------

    def get_trade(self, order_id: str) -> SandboxTrade | None:
        return self._trades.get(order_id)

    def get_refund(self, refund_no: str) -> SandboxRefund | None:
        return self._refunds.get(refund_no)

    def simulate_payment(self, order_id: str) -> None:
        """Mark a trade as paid by the payer."""
        with self._lock:
            trade = self._trades[order_id]
            trade.status = "paid"
            trade.paid_at = datetime.now(timezone.utc).replace(microsecond=0)

    def simulate_close(self, order_id: str) -> None:
        """Close an unpaid trade platform-side (e.g. the payer abandoned it)."""
        with self._lock:
            self._trades[order_id].status = "closed"

    def simulate_failure(self, order_id: str) -> None:
        with self._lock:
            self._trades[order_id].status = "failed"

    def simulate_refund_result(self, refund_no: str, success: bool = True) -> None:
        """Settle an asynchronous (UnionPay) refund."""
        with self._lock:
            refund = self._refunds[refund_no]
            refund.status = "success" if success else "failed"
            if not success:
                self._trades[refund.order_id].refunded -= refund.amount

    def build_charge_notify(self, order_id: str, secret: str | None = None) -> dict[str, str]:
        """Build the signed callback the platform would send for a trade.

        Pass a different ``secret`` to produce a payload that fails verification.
        """
        trade = self._trades[order_id]
        key = secret or self.secret
        if trade.platform == "alipay":
            params = {
                "notify_id": uuid.uuid4().hex,
                "out_trade_no": trade.order_id,
                "trade_no": trade.trade_no,
                "total_amount": to_major_units(trade.amount),
                "trade_status": {
                    "created": "WAIT_BUYER_PAY",
                    "paid": "TRADE_SUCCESS",
                    "closed": "TRADE_CLOSED",
                    "failed": "TRADE_CLOSED",
                }[trade.status],
                "sign_type": "HMAC-SHA256",
            }
            if trade.paid_at:
                params["gmt_payment"] = trade.paid_at.strftime("%Y-%m-%d %H:%M:%S")
            params["sign"] = sign_params(params, key, exclude=("sign_type",))
            return params

        params = {
            "orderId": trade.order_id,
            "txnType": "01",
            "respCode": {"created": "05", "paid": "00", "closed": "12", "failed": "01"}[trade.status],
            "respMsg": trade.status,
            "queryId": trade.trade_no,
            "txnAmt": str(trade.amount),
        }
        if trade.paid_at:
            params["traceTime"] = trade.paid_at.strftime("%Y%m%d%H%M%S")
        params["signature"] = sign_params(params, key)
        return params

    def build_refund_notify(self, refund_no: str, secret: str | None = None) -> dict[str, str]:
        """Build the signed UnionPay refund callback."""
        refund = self._refunds[refund_no]
        params = {
            "orderId": refund.refund_no,
            "txnType": "04",
            "respCode": {"processing": "05", "success": "00", "failed": "01"}[refund.status],
            "respMsg": refund.status,
            "queryId": refund.refund_id,
            "origQryId": self._trades[refund.order_id].trade_no,
            "txnAmt": str(refund.amount),
        }
        params["signature"] = sign_params(params, secret or self.secret)
        return params
