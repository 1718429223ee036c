"""Pydantic schemas for sales orders and status transitions."""

from datetime import date, datetime

from pydantic import BaseModel, Field

from bottleworks.models.order import OrderStatus


# ── Validator result ─────────────────────────────────────────

class ValidationResult(BaseModel):
    """Answer from ``validate_order_status_transition``.

    The database function omits ``new_status`` and ``requires_override``
    when the order is already in the requested status, so both default.
    """
    valid: bool
    current_status: str | None = None
    new_status: str | None = None
    warnings: list[str] = Field(default_factory=list)
    blockers: list[str] = Field(default_factory=list)
    requires_override: bool = False


# ── Create ───────────────────────────────────────────────────

class OrderCreate(BaseModel):
    subtotal: float = Field(0.0, ge=0)
    deposit_required: bool = False
    deposit_amount: float | None = Field(None, ge=0)
    label_required: bool = True
    is_internal: bool = False
    promised_date: date | None = None
    eta_date: date | None = None
    notes: str | None = None


class QuoteIssueRequest(BaseModel):
    expiration_days: int | None = Field(None, ge=1, le=365)


# ── Status change ────────────────────────────────────────────

class StatusChangeRequest(BaseModel):
    """Payload for POST /api/orders/{order_id}/status.

    ``expected_status`` lets the client pin the status it last saw; the
    write is rejected with 409 if someone else changed it meanwhile.
    """
    new_status: OrderStatus
    override_note: str | None = None
    expected_status: OrderStatus | None = None


class StatusChangeResponse(BaseModel):
    order: "OrderOut"
    previous_status: str
    warnings: list[str]
    flagged_for_review: bool
    notified: bool


# ── Response ─────────────────────────────────────────────────

class OrderOut(BaseModel):
    id: str
    human_uid: str
    status: str
    subtotal: float
    deposit_required: bool
    deposit_amount: float | None
    deposit_status: str
    quote_expires_at: datetime | None
    promised_date: date | None
    eta_date: date | None
    label_required: bool
    is_internal: bool
    hold_reason: str | None
    notes: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrderCreatedOut(OrderOut):
    """Create response — the only place the quote link token is returned."""
    quote_link_token: str


class OrderQuantitiesOut(BaseModel):
    planned: int
    good: int
    scrap: int
    batches: int
    complete_batches: int


StatusChangeResponse.model_rebuild()
