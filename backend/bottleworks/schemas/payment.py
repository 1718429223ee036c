"""Pydantic schemas for captured payments."""

from typing import Literal

from pydantic import BaseModel, Field


class CaptureConfirmation(BaseModel):
    """What a payment gateway reports back after capturing a payment."""
    capture_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    # COMPLETED | PENDING | DECLINED ...
    status: str = "COMPLETED"
    method: Literal["paypal", "cashapp", "btcpay", "manual"] = "paypal"
    payer_email: str | None = None
    metadata: dict | None = None


class CaptureRecordRequest(BaseModel):
    """Payload for POST /api/payments/captures (gateway webhook relay)."""
    order_id: str
    payment_type: Literal["deposit", "final"]
    confirmation: CaptureConfirmation


class CaptureRecordOut(BaseModel):
    transaction_id: str | None
    capture_id: str
    duplicate: bool
    deposit_status: str
    invoice_paid: bool
