"""Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from charge_engine.trade.types import ChannelType, ChargeStatus, RefundStatus


# ============================================================================
# Charge schemas
# ============================================================================


class ChargeCreate(BaseModel):
    """Schema for creating a charge."""

    order_no: str = Field(min_length=1, max_length=64)
    channel: ChannelType
    amount: int = Field(gt=0, description="Amount in minor units")
    subject: str = Field(min_length=1, max_length=256)
    body: str = ""
    extra: dict[str, Any] = Field(default_factory=dict)
    expire_minutes: int | None = Field(default=None, ge=1)


class ChargeResponse(BaseModel):
    """Schema for charge response.

    ``credential`` is only present while the charge is waiting for payment.
    """

    model_config = ConfigDict(from_attributes=True)

    app_id: int
    charge_no: str
    order_no: str
    channel: ChannelType
    amount: int
    subject: str
    body: str
    status: ChargeStatus
    time_expire: int
    credential: dict[str, Any] | None = None
    extra: dict[str, Any]
    created_at: datetime
    platform_trade_no: str | None = None
    paid_at: datetime | None = None


# ============================================================================
# Refund schemas
# ============================================================================


class RefundCreate(BaseModel):
    """Schema for requesting a refund."""

    amount: int = Field(gt=0, description="Amount in minor units")
    reason: str = Field(default="", max_length=256)


class RefundResponse(BaseModel):
    """Schema for refund response."""

    model_config = ConfigDict(from_attributes=True)

    app_id: int
    refund_no: str
    charge_no: str
    channel: ChannelType
    amount: int
    status: RefundStatus
    reason: str
    platform_refund_id: str | None = None
    failure_reason: str | None = None
    created_at: datetime
    succeeded_at: datetime | None = None


class RefundListResponse(BaseModel):
    """Schema for listing the refunds of a charge."""

    items: list[RefundResponse]
    total: int


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Error response schema."""

    detail: str
    code: str
