"""Payments router — relay of gateway capture confirmations.

Endpoints:
    POST   /api/payments/captures   Record a completed capture (idempotent)
"""

from fastapi import APIRouter, Depends

from bottleworks.deps import get_actor, get_payment_service
from bottleworks.schemas.payment import CaptureRecordOut, CaptureRecordRequest
from bottleworks.services.payments import PaymentService

router = APIRouter()


@router.post("/captures", response_model=CaptureRecordOut)
async def record_capture(
    body: CaptureRecordRequest,
    service: PaymentService = Depends(get_payment_service),
    actor: str | None = Depends(get_actor),
):
    """Record a capture reported by the gateway.

    Replaying the same ``capture_id`` returns ``duplicate: true`` and
    writes nothing.
    """
    result = await service.record_capture(
        body.order_id, body.payment_type, body.confirmation, actor=actor,
    )
    return CaptureRecordOut(
        transaction_id=result.transaction.id if result.transaction else None,
        capture_id=result.capture_id,
        duplicate=result.duplicate,
        deposit_status=result.deposit_status,
        invoice_paid=result.invoice_paid,
    )
