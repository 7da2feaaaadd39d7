"""Charge API endpoints.

Handlers are plain functions: the gateway blocks on platform calls, so
FastAPI runs them in its worker threadpool.
"""

from typing import Annotated

from fastapi import APIRouter, Path, status

from charge_engine.api.dependencies import AppId, Gateway
from charge_engine.api.schemas import (
    ChargeCreate,
    ChargeResponse,
    ErrorResponse,
    RefundCreate,
    RefundListResponse,
    RefundResponse,
)

router = APIRouter(prefix="/charges", tags=["charges"])

ChargeNo = Annotated[str, Path(min_length=1, max_length=64)]


@router.post(
    "",
    response_model=ChargeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
def create_charge(
    gateway: Gateway,
    app_id: AppId,
    payload: ChargeCreate,
) -> ChargeResponse:
    """Create a charge for an order, or return the one already in flight."""
    view = gateway.pay(
        app_id=app_id,
        order_no=payload.order_no,
        channel=payload.channel,
        amount=payload.amount,
        subject=payload.subject,
        body=payload.body,
        extra=payload.extra,
        expire_minutes=payload.expire_minutes,
    )
    return ChargeResponse.model_validate(view)


@router.get(
    "/{charge_no}",
    response_model=ChargeResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_charge(gateway: Gateway, app_id: AppId, charge_no: ChargeNo) -> ChargeResponse:
    """Get a charge, refreshed from the platform while unpaid."""
    return ChargeResponse.model_validate(gateway.query_payment(app_id, charge_no))


@router.post(
    "/{charge_no}/refunds",
    response_model=RefundResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
def create_refund(
    gateway: Gateway,
    app_id: AppId,
    charge_no: ChargeNo,
    payload: RefundCreate,
) -> RefundResponse:
    """Refund part or all of a paid charge."""
    view = gateway.refund(app_id, charge_no, payload.amount, payload.reason)
    return RefundResponse.model_validate(view)


@router.get(
    "/{charge_no}/refunds",
    response_model=RefundListResponse,
    responses={404: {"model": ErrorResponse}},
)
def list_refunds(gateway: Gateway, app_id: AppId, charge_no: ChargeNo) -> RefundListResponse:
    """List the refunds of a charge, oldest first."""
    views = gateway.list_refunds(app_id, charge_no)
    return RefundListResponse(
        items=[RefundResponse.model_validate(v) for v in views],
        total=len(views),
    )
