"""Refund API endpoints."""

from fastapi import APIRouter

from charge_engine.api.dependencies import AppId, Gateway
from charge_engine.api.schemas import ErrorResponse, RefundResponse

router = APIRouter(prefix="/refunds", tags=["refunds"])


@router.get(
    "/{refund_no}",
    response_model=RefundResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_refund(gateway: Gateway, app_id: AppId, refund_no: str) -> RefundResponse:
    """Get a refund, refreshed from the platform while pending."""
    return RefundResponse.model_validate(gateway.query_refund(app_id, refund_no))
