"""PaymentTransaction and Invoice — money received against an order.

A PaymentTransaction is written once per captured gateway payment
(PayPal / CashApp / BTCPay / manual).  ``capture_id`` is unique so the
same capture can never be recorded twice.

Invoice lifecycle:  unpaid → paid
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from bottleworks.database import Base


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    so_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sales_orders.id"), nullable=False, index=True
    )
    # Gateway capture / transaction reference
    capture_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    amount: Mapped[float] = mapped_column(Float, nullable=False)
    # paypal | cashapp | btcpay | manual
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)
    # deposit | final
    payment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="completed")
    customer_email: Mapped[str | None] = mapped_column(String(255))
    # Raw gateway identifiers: {"paypal_order_id": ..., "payer_id": ...}
    metadata_json: Mapped[dict | None] = mapped_column("metadata", JSON)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    so_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sales_orders.id"), nullable=False, index=True
    )
    # deposit | final
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    # unpaid | paid
    status: Mapped[str] = mapped_column(String(20), default="unpaid", index=True)
    total: Mapped[float] = mapped_column(Float, nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
