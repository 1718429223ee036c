"""Captured payments against sales orders.

Two entry points:

  capture_payment(gateway, order_id, "deposit" | "final")
      ask the gateway to capture the amount due, then record it
  record_capture(order_id, "deposit" | "final", confirmation)
      record a capture the gateway already reported (webhook relay)

Recording is idempotent on the gateway ``capture_id``.  Payments never
move the order status; staff do that through the state machine once the
deposit shows as paid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from bottleworks.errors import InvalidOrderState, PaymentNotCompleted
from bottleworks.models.order import DepositStatus, SalesOrder
from bottleworks.models.payment import Invoice, PaymentTransaction
from bottleworks.schemas.payment import CaptureConfirmation
from bottleworks.services.audit import AuditSink
from bottleworks.services.orders import ORDER_ENTITY
from bottleworks.services.store import RecordStore, require

logger = logging.getLogger(__name__)

PAYMENT_TYPES = ("deposit", "final")


class PaymentGateway(Protocol):
    async def capture(
        self, order_id: str, payment_type: str, amount: float,
    ) -> CaptureConfirmation: ...


@dataclass
class CaptureResult:
    transaction: PaymentTransaction | None
    capture_id: str
    duplicate: bool
    deposit_status: str
    invoice_paid: bool = False


class PaymentService:
    def __init__(self, store: RecordStore, audit: AuditSink):
        self.store = store
        self.audit = audit

    async def amount_due(self, order: SalesOrder, payment_type: str) -> float:
        if payment_type == "deposit":
            if not order.deposit_required or not order.deposit_amount:
                raise InvalidOrderState(f"Order {order.human_uid} has no deposit to collect")
            return order.deposit_amount

        invoice = await self._open_final_invoice(order.id)
        if invoice is not None:
            return invoice.total
        return order.subtotal

    async def _open_final_invoice(self, order_id: str) -> Invoice | None:
        invoices = await self.store.query(
            Invoice,
            {"so_id": order_id, "type": "final", "status": "unpaid"},
            order=("-created_at",),
        )
        return invoices[0] if invoices else None

    async def capture_payment(
        self,
        gateway: PaymentGateway,
        order_id: str,
        payment_type: str,
        *,
        actor: str | None = None,
    ) -> CaptureResult:
        if payment_type not in PAYMENT_TYPES:
            raise ValueError(f"Unknown payment type: {payment_type}")
        order = await require(self.store, SalesOrder, order_id)
        amount = await self.amount_due(order, payment_type)

        confirmation = await gateway.capture(order.id, payment_type, amount)
        if confirmation.status != "COMPLETED":
            logger.warning(
                "Capture for %s %s returned %s", order.human_uid, payment_type, confirmation.status,
            )
            raise PaymentNotCompleted(confirmation.status)

        return await self.record_capture(order.id, payment_type, confirmation, actor=actor)

    async def record_capture(
        self,
        order_id: str,
        payment_type: str,
        confirmation: CaptureConfirmation,
        *,
        actor: str | None = None,
    ) -> CaptureResult:
        """Persist a completed capture and update deposit / invoice state."""
        if confirmation.status != "COMPLETED":
            raise PaymentNotCompleted(confirmation.status)
        order = await require(self.store, SalesOrder, order_id)
        if payment_type == "deposit" and (not order.deposit_required or not order.deposit_amount):
            raise InvalidOrderState(f"Order {order.human_uid} has no deposit to collect")

        existing = await self.store.query(
            PaymentTransaction, {"capture_id": confirmation.capture_id},
        )
        if existing:
            logger.info("Capture %s already recorded; skipping", confirmation.capture_id)
            return CaptureResult(
                transaction=existing[0],
                capture_id=confirmation.capture_id,
                duplicate=True,
                deposit_status=order.deposit_status,
            )

        txn = await self.store.insert(PaymentTransaction, {
            "so_id": order.id,
            "capture_id": confirmation.capture_id,
            "amount": confirmation.amount,
            "payment_method": confirmation.method,
            "payment_type": payment_type,
            "status": "completed",
            "customer_email": confirmation.payer_email,
            "metadata_json": confirmation.metadata,
        })

        deposit_status = order.deposit_status
        invoice_paid = False
        if payment_type == "deposit":
            deposits = await self.store.query(
                PaymentTransaction, {"so_id": order.id, "payment_type": "deposit"},
            )
            received = sum(p.amount for p in deposits)
            due = order.deposit_amount or 0.0
            deposit_status = (
                DepositStatus.PAID.value if received >= due else DepositStatus.PARTIAL.value
            )
            await self.store.update(SalesOrder, order.id, {"deposit_status": deposit_status})
        else:
            invoice = await self._open_final_invoice(order.id)
            if invoice is not None:
                await self.store.update(
                    Invoice, invoice.id, {"status": "paid", "paid_at": datetime.utcnow()},
                    expected={"status": "unpaid"},
                )
                invoice_paid = True

        await self.audit.record(
            ORDER_ENTITY, order.id, "payment_captured", actor=actor,
            after={
                "capture_id": confirmation.capture_id,
                "payment_type": payment_type,
                "amount": confirmation.amount,
                "deposit_status": deposit_status,
            },
        )
        logger.info(
            "Recorded %s payment %.2f for %s (capture %s)",
            payment_type, confirmation.amount, order.human_uid, confirmation.capture_id,
        )
        return CaptureResult(
            transaction=txn,
            capture_id=confirmation.capture_id,
            duplicate=False,
            deposit_status=deposit_status,
            invoice_paid=invoice_paid,
        )
