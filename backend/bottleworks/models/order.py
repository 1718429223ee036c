"""SalesOrder — the top-level object customers and staff observe.

An order is created in ``draft``, quoted to the customer (who can accept
the quote through an unauthenticated link carrying ``quote_link_token``),
then moves through deposit, production, packing, invoicing and shipping.

Terminal states: shipped | cancelled (stocked for internal orders)

The legal-transition rules are owned by the database function
``validate_order_status_transition``; this table only stores the result.
"""

import enum
import secrets
import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bottleworks.database import Base


class OrderStatus(str, enum.Enum):
    DRAFT = "draft"
    QUOTED = "quoted"
    DEPOSIT_DUE = "deposit_due"
    IN_QUEUE = "in_queue"
    IN_PRODUCTION = "in_production"
    PACKED = "packed"
    INVOICED = "invoiced"
    PAYMENT_DUE = "payment_due"
    READY_TO_SHIP = "ready_to_ship"
    SHIPPED = "shipped"
    CANCELLED = "cancelled"
    ON_HOLD_CUSTOMER = "on_hold_customer"
    ON_HOLD_INTERNAL = "on_hold_internal"
    ON_HOLD_MATERIALS = "on_hold_materials"
    IN_LABELING = "in_labeling"
    IN_PACKING = "in_packing"
    AWAITING_INVOICE = "awaiting_invoice"
    AWAITING_PAYMENT = "awaiting_payment"
    AWAITING_APPROVAL = "awaiting_approval"
    READY_TO_STOCK = "ready_to_stock"
    ON_HOLD = "on_hold"
    STOCKED = "stocked"


class DepositStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


def _quote_token() -> str:
    return secrets.token_urlsafe(24)


class SalesOrder(Base):
    __tablename__ = "sales_orders"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # Display code, e.g. SO-20260301-004
    human_uid: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )
    # Capability token for the customer quote-approval link
    quote_link_token: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, default=_quote_token
    )

    # ── Status ───────────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(30), default=OrderStatus.DRAFT.value, nullable=False, index=True
    )
    hold_reason: Mapped[str | None] = mapped_column(Text)

    # ── Money ────────────────────────────────────────────────
    subtotal: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    deposit_required: Mapped[bool] = mapped_column(Boolean, default=False)
    deposit_amount: Mapped[float | None] = mapped_column(Float)
    # unpaid | partial | paid
    deposit_status: Mapped[str] = mapped_column(
        String(20), default=DepositStatus.UNPAID.value, nullable=False
    )

    # ── Dates ────────────────────────────────────────────────
    quote_expires_at: Mapped[datetime | None] = mapped_column(DateTime)
    promised_date: Mapped[date | None] = mapped_column(Date)
    eta_date: Mapped[date | None] = mapped_column(Date)

    # ── Production flags ─────────────────────────────────────
    label_required: Mapped[bool] = mapped_column(Boolean, default=True)
    is_internal: Mapped[bool] = mapped_column(Boolean, default=False)

    # ── Metadata ─────────────────────────────────────────────
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    batches = relationship(
        "ProductionBatch", back_populates="order",
        order_by="ProductionBatch.created_at",
        passive_deletes=True,
    )
