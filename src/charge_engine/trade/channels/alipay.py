"""Alipay channel adapter.

Covers the mobile-web, desktop-page and in-app products. All three share the
query, refund and notify dialect; only the pay method and credential differ.
"""

from __future__ import annotations

from datetime import datetime, timezone

from charge_engine.trade.channels.base import (
    NotifyResult,
    PayRequest,
    PayResult,
    PlatformClient,
    QueryResult,
    RefundRequest,
    RefundResult,
)
from charge_engine.trade.channels.signing import (
    sign_params,
    to_major_units,
    to_minor_units,
    verify_params,
)
from charge_engine.trade.config import ChannelConfig
from charge_engine.trade.errors import ChannelRejected, ChannelTransportError
from charge_engine.trade.types import ChannelType, PlatformType, Signal

SUCCESS_CODE = "10000"
TRADE_NOT_EXIST = "ACQ.TRADE_NOT_EXIST"
RETRYABLE_SUB_CODES = {"ACQ.SYSTEM_ERROR", "aop.ACQ.SYSTEM_ERROR"}

PAY_METHODS: dict[ChannelType, str] = {
    ChannelType.ALIPAY_WAP: "alipay.trade.wap.pay",
    ChannelType.ALIPAY_PAGE: "alipay.trade.page.pay",
    ChannelType.ALIPAY_APP: "alipay.trade.app.pay",
}

TRADE_STATUS_SIGNALS: dict[str, Signal] = {
    "WAIT_BUYER_PAY": Signal.PENDING,
    "TRADE_SUCCESS": Signal.PAID,
    "TRADE_FINISHED": Signal.PAID,
    "TRADE_CLOSED": Signal.CLOSED,
}


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.strptime(value, "%Y-%m-%d %H:%M:%S").replace(tzinfo=timezone.utc)


class AlipayChannelAdapter:
    """Adapter for the Alipay open-API dialect.

    Amounts travel as two-decimal strings, the merchant reference is
    ``out_trade_no`` (our charge number), and refunds complete synchronously.
    """

    platform = PlatformType.ALIPAY

    def __init__(self, channel: ChannelType, client: PlatformClient, config: ChannelConfig):
        if channel.platform != PlatformType.ALIPAY:
            raise ValueError(f"{channel.value} is not an Alipay channel")
        self.channel = channel
        self.client = client
        self.config = config

    def _call(self, method: str, params: dict[str, str]) -> dict[str, str]:
        signed = dict(params, method=method)
        signed["sign"] = sign_params(signed, self.config.secret)
        return self.client.execute(method, signed, self.config.timeout_seconds)

    def pay(self, request: PayRequest) -> PayResult:
        params = {
            "out_trade_no": request.charge_no,
            "total_amount": to_major_units(request.amount),
            "subject": request.subject,
            "body": request.body,
            "product_code": self.channel.product_code,
            "timeout_express": f"{request.time_expire}m",
        }
        if self.config.notify_url:
            params["notify_url"] = self.config.notify_url
        if request.extra.get("return_url"):
            params["return_url"] = str(request.extra["return_url"])

        try:
            response = self._call(PAY_METHODS[self.channel], params)
        except ChannelTransportError as e:
            raise ChannelRejected(f"Alipay pay call failed: {e.message}") from e

        if response.get("code") != SUCCESS_CODE:
            raise ChannelRejected(
                response.get("sub_msg") or response.get("msg") or "Alipay rejected the trade",
                platform_code=response.get("sub_code"),
                retryable=response.get("sub_code") in RETRYABLE_SUB_CODES,
            )

        if self.channel == ChannelType.ALIPAY_APP:
            credential = {"order_string": response.get("order_string", "")}
        else:
            credential = {"pay_url": response.get("pay_url", "")}
        if not any(credential.values()):
            raise ChannelRejected("Alipay returned no payment credential")

        return PayResult(credential=credential, platform_ref=request.charge_no)

    def query(self, charge_no: str) -> QueryResult:
        response = self._call("alipay.trade.query", {"out_trade_no": charge_no})

        if response.get("code") != SUCCESS_CODE:
            # The platform only creates the trade once the payer opens the page
            if response.get("sub_code") == TRADE_NOT_EXIST:
                return QueryResult(signal=Signal.PENDING, message="trade not opened yet")
            return QueryResult(signal=Signal.UNKNOWN, message=response.get("sub_msg", ""))

        trade_status = response.get("trade_status", "")
        return QueryResult(
            signal=TRADE_STATUS_SIGNALS.get(trade_status, Signal.UNKNOWN),
            platform_trade_no=response.get("trade_no") or None,
            amount=to_minor_units(response.get("total_amount")),
            paid_at=_parse_time(response.get("send_pay_date")),
            message=trade_status,
        )

    def refund(self, request: RefundRequest) -> RefundResult:
        params = {
            "out_trade_no": request.charge_no,
            "out_request_no": request.refund_no,
            "refund_amount": to_major_units(request.amount),
            "refund_reason": request.reason,
        }
        if request.platform_trade_no:
            params["trade_no"] = request.platform_trade_no

        response = self._call("alipay.trade.refund", params)
        if response.get("code") != SUCCESS_CODE:
            raise ChannelRejected(
                response.get("sub_msg") or "Alipay rejected the refund",
                platform_code=response.get("sub_code"),
                retryable=response.get("sub_code") in RETRYABLE_SUB_CODES,
            )
        return RefundResult(
            signal=Signal.PAID,
            platform_refund_id=response.get("trade_no") or None,
            message="refund accepted",
        )

    def query_refund(self, charge_no: str, refund_no: str) -> RefundResult:
        response = self._call(
            "alipay.trade.fastpay.refund.query",
            {"out_trade_no": charge_no, "out_request_no": refund_no},
        )
        if response.get("code") != SUCCESS_CODE:
            return RefundResult(signal=Signal.UNKNOWN, message=response.get("sub_msg", ""))
        if response.get("refund_status") == "REFUND_SUCCESS":
            return RefundResult(signal=Signal.PAID, platform_refund_id=response.get("trade_no") or None)
        return RefundResult(signal=Signal.PENDING)

    def parse_notify(self, params: dict[str, str]) -> NotifyResult:
        business_id = params.get("out_trade_no", "")
        if not verify_params(params, self.config.secret, "sign", exclude=("sign_type",)):
            return NotifyResult(
                business_id=business_id,
                signal=Signal.UNKNOWN,
                verified=False,
                message="signature mismatch",
            )

        trade_status = params.get("trade_status", "")
        return NotifyResult(
            business_id=business_id,
            signal=TRADE_STATUS_SIGNALS.get(trade_status, Signal.UNKNOWN),
            verified=True,
            platform_ref=params.get("trade_no") or None,
            amount=to_minor_units(params.get("total_amount")),
            paid_at=_parse_time(params.get("gmt_payment")),
            message=trade_status,
        )
