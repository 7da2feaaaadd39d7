"""UnionPay channel adapter.

UnionPay identifies a trade by ``orderId`` (our charge or refund number),
carries amounts as integer fen in ``txnAmt`` and completes refunds
asynchronously through a back-channel notification.
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
from charge_engine.trade.channels.signing import sign_params, verify_params
from charge_engine.trade.config import ChannelConfig
from charge_engine.trade.errors import ChannelRejected, ChannelTransportError
from charge_engine.trade.types import ChannelType, PlatformType, Signal

VERSION = "5.1.0"
CURRENCY_CNY = "156"

TXN_CONSUME = "01"
TXN_QUERY = "00"
TXN_REFUND = "04"

FRONT_TRANS = "unionpay.frontTransReq"
BACK_TRANS = "unionpay.backTransReq"
QUERY_TRANS = "unionpay.queryTrans"

RESP_SUCCESS = "00"
# Outcome not known yet; the platform asks to query again later
RESP_IN_PROGRESS = {"03", "04", "05"}
RESP_ORDER_NOT_EXIST = "34"

ACCESS_CHANNELS: dict[ChannelType, str] = {
    ChannelType.UNIONPAY_WAP: "08",
    ChannelType.UNIONPAY_PC: "07",
}


def _txn_time(moment: datetime | None = None) -> str:
    return (moment or datetime.now(timezone.utc)).strftime("%Y%m%d%H%M%S")


def _parse_txn_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.strptime(value, "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)


def _parse_amount(value: str | None) -> int | None:
    return int(value) if value else None


def _resp_signal(code: str | None) -> Signal:
    if code == RESP_SUCCESS:
        return Signal.PAID
    if code in RESP_IN_PROGRESS:
        return Signal.PENDING
    if code is None:
        return Signal.UNKNOWN
    return Signal.FAILED


class UnionpayChannelAdapter:
    """Adapter for the UnionPay gateway dialect (mobile-web and desktop)."""

    platform = PlatformType.UNIONPAY

    def __init__(self, channel: ChannelType, client: PlatformClient, config: ChannelConfig):
        if channel.platform != PlatformType.UNIONPAY:
            raise ValueError(f"{channel.value} is not a UnionPay channel")
        self.channel = channel
        self.client = client
        self.config = config

    def _base_params(self, txn_type: str) -> dict[str, str]:
        return {
            "version": VERSION,
            "encoding": "UTF-8",
            "txnType": txn_type,
            "txnSubType": "01" if txn_type != TXN_QUERY else "00",
            "bizType": self.channel.product_code,
            "channelType": ACCESS_CHANNELS[self.channel],
            "txnTime": _txn_time(),
        }

    def _call(self, method: str, params: dict[str, str]) -> dict[str, str]:
        signed = dict(params)
        signed["signature"] = sign_params(signed, self.config.secret)
        return self.client.execute(method, signed, self.config.timeout_seconds)

    def pay(self, request: PayRequest) -> PayResult:
        params = self._base_params(TXN_CONSUME)
        params.update(
            {
                "orderId": request.charge_no,
                "txnAmt": str(request.amount),
                "currencyCode": CURRENCY_CNY,
                "orderDesc": request.subject,
                "payTimeout": str(request.time_expire * 60),
                "frontUrl": str(request.extra.get("front_url", "")),
            }
        )
        if self.config.notify_url:
            params["backUrl"] = self.config.notify_url

        try:
            response = self._call(FRONT_TRANS, params)
        except ChannelTransportError as e:
            raise ChannelRejected(f"UnionPay pay call failed: {e.message}") from e

        if response.get("respCode") != RESP_SUCCESS or not response.get("form"):
            raise ChannelRejected(
                response.get("respMsg") or "UnionPay rejected the trade",
                platform_code=response.get("respCode"),
                retryable=response.get("respCode") in RESP_IN_PROGRESS,
            )
        return PayResult(credential={"form": response["form"]}, platform_ref=request.charge_no)

    def _query_order(self, order_id: str) -> dict[str, str]:
        params = self._base_params(TXN_QUERY)
        params["orderId"] = order_id
        return self._call(QUERY_TRANS, params)

    def query(self, charge_no: str) -> QueryResult:
        response = self._query_order(charge_no)
        resp_code = response.get("respCode")

        if resp_code == RESP_ORDER_NOT_EXIST:
            return QueryResult(signal=Signal.PENDING, message="order not opened yet")
        if resp_code != RESP_SUCCESS:
            return QueryResult(signal=Signal.UNKNOWN, message=response.get("respMsg", ""))

        return QueryResult(
            signal=_resp_signal(response.get("origRespCode")),
            platform_trade_no=response.get("queryId") or None,
            amount=_parse_amount(response.get("txnAmt")),
            paid_at=_parse_txn_time(response.get("traceTime")),
            message=response.get("origRespMsg", ""),
        )

    def refund(self, request: RefundRequest) -> RefundResult:
        if not request.platform_trade_no:
            raise ChannelRejected(
                "UnionPay refund needs the original queryId", retryable=False
            )
        params = self._base_params(TXN_REFUND)
        params.update(
            {
                "orderId": request.refund_no,
                "origQryId": request.platform_trade_no,
                "txnAmt": str(request.amount),
            }
        )
        if self.config.refund_notify_url:
            params["backUrl"] = self.config.refund_notify_url

        response = self._call(BACK_TRANS, params)
        resp_code = response.get("respCode")
        if resp_code == RESP_SUCCESS or resp_code in RESP_IN_PROGRESS:
            # Accepted; the outcome arrives later by notify or query
            return RefundResult(
                signal=Signal.PENDING,
                platform_refund_id=response.get("queryId") or None,
                message=response.get("respMsg", ""),
            )
        raise ChannelRejected(
            response.get("respMsg") or "UnionPay rejected the refund",
            platform_code=resp_code,
            retryable=False,
        )

    def query_refund(self, charge_no: str, refund_no: str) -> RefundResult:
        response = self._query_order(refund_no)
        resp_code = response.get("respCode")
        if resp_code == RESP_ORDER_NOT_EXIST:
            return RefundResult(signal=Signal.PENDING)
        if resp_code != RESP_SUCCESS:
            return RefundResult(signal=Signal.UNKNOWN, message=response.get("respMsg", ""))
        return RefundResult(
            signal=_resp_signal(response.get("origRespCode")),
            platform_refund_id=response.get("queryId") or None,
            message=response.get("origRespMsg", ""),
        )

    def parse_notify(self, params: dict[str, str]) -> NotifyResult:
        business_id = params.get("orderId", "")
        is_refund = params.get("txnType") == TXN_REFUND
        if not verify_params(params, self.config.secret, "signature"):
            return NotifyResult(
                business_id=business_id,
                signal=Signal.UNKNOWN,
                verified=False,
                is_refund=is_refund,
                message="signature mismatch",
            )

        return NotifyResult(
            business_id=business_id,
            signal=_resp_signal(params.get("respCode")),
            verified=True,
            platform_ref=params.get("queryId") or None,
            amount=_parse_amount(params.get("txnAmt")),
            paid_at=_parse_txn_time(params.get("traceTime")),
            is_refund=is_refund,
            message=params.get("respMsg", ""),
        )
