"""Sales order router — creation, quotes and status transitions.

Endpoints:
    POST   /api/orders/                        Create a draft order
    GET    /api/orders/{order_id}              Single order
    POST   /api/orders/{order_id}/quote        Issue quote (→ quoted)
    POST   /api/orders/{order_id}/quote/renew  Extend an open quote
    POST   /api/orders/{order_id}/status       Request a status transition
    GET    /api/orders/{order_id}/quantities   Bottle totals across batches
    GET    /api/orders/{order_id}/batches      Batches of the order
    POST   /api/orders/quote/{token}/accept    Customer accepts quote
    POST   /api/orders/quote/{token}/reject    Customer rejects quote
"""

from fastapi import APIRouter, Depends, status

from bottleworks.deps import get_actor, get_state_machine, get_store
from bottleworks.models.batch import ProductionBatch
from bottleworks.models.order import SalesOrder
from bottleworks.schemas.batch import BatchOut
from bottleworks.schemas.order import (
    OrderCreate,
    OrderCreatedOut,
    OrderOut,
    OrderQuantitiesOut,
    QuoteIssueRequest,
    StatusChangeRequest,
    StatusChangeResponse,
)
from bottleworks.services.ledger import QuantityLedger
from bottleworks.services.orders import OrderStateMachine, TransitionOutcome
from bottleworks.services.store import SqlStore, require

router = APIRouter()


def _outcome_response(outcome: TransitionOutcome) -> StatusChangeResponse:
    return StatusChangeResponse(
        order=OrderOut.model_validate(outcome.order),
        previous_status=outcome.previous_status,
        warnings=outcome.warnings,
        flagged_for_review=outcome.flagged_for_review,
        notified=outcome.notified,
    )


# ── Create / read ────────────────────────────────────────────

@router.post("/", response_model=OrderCreatedOut, status_code=status.HTTP_201_CREATED)
async def create_order(
    body: OrderCreate,
    machine: OrderStateMachine = Depends(get_state_machine),
    actor: str | None = Depends(get_actor),
):
    order = await machine.create_order(actor=actor, **body.model_dump())
    return OrderCreatedOut.model_validate(order)


@router.get("/{order_id}", response_model=OrderOut)
async def get_order(order_id: str, store: SqlStore = Depends(get_store)):
    return OrderOut.model_validate(await require(store, SalesOrder, order_id))


@router.get("/{order_id}/quantities", response_model=OrderQuantitiesOut)
async def get_order_quantities(order_id: str, store: SqlStore = Depends(get_store)):
    await require(store, SalesOrder, order_id)
    summary = await QuantityLedger(store).order_summary(order_id)
    return OrderQuantitiesOut(
        planned=summary.planned,
        good=summary.good,
        scrap=summary.scrap,
        batches=summary.batches,
        complete_batches=summary.complete_batches,
    )


@router.get("/{order_id}/batches", response_model=list[BatchOut])
async def list_order_batches(order_id: str, store: SqlStore = Depends(get_store)):
    await require(store, SalesOrder, order_id)
    batches = await store.query(
        ProductionBatch, {"so_id": order_id}, order=("priority_index", "created_at", "uid"),
    )
    return [BatchOut.model_validate(b) for b in batches]


# ── Transitions ──────────────────────────────────────────────

@router.post("/{order_id}/quote", response_model=StatusChangeResponse)
async def issue_quote(
    order_id: str,
    body: QuoteIssueRequest | None = None,
    machine: OrderStateMachine = Depends(get_state_machine),
    actor: str | None = Depends(get_actor),
):
    outcome = await machine.issue_quote(
        order_id, actor=actor,
        expiration_days=body.expiration_days if body else None,
    )
    return _outcome_response(outcome)


@router.post("/{order_id}/quote/renew", response_model=OrderOut)
async def renew_quote(
    order_id: str,
    body: QuoteIssueRequest | None = None,
    machine: OrderStateMachine = Depends(get_state_machine),
    actor: str | None = Depends(get_actor),
):
    order = await machine.renew_quote(
        order_id, actor=actor, days=body.expiration_days if body else None,
    )
    return OrderOut.model_validate(order)


@router.post("/{order_id}/status", response_model=StatusChangeResponse)
async def change_status(
    order_id: str,
    body: StatusChangeRequest,
    machine: OrderStateMachine = Depends(get_state_machine),
    actor: str | None = Depends(get_actor),
):
    """Apply a status change after validation.

    409 with ``details.blockers`` when blocked; 422 with
    ``details.warnings`` when a justification note is required.
    """
    outcome = await machine.request_transition(
        order_id,
        body.new_status,
        actor=actor,
        override_note=body.override_note,
        expected_status=body.expected_status.value if body.expected_status else None,
    )
    return _outcome_response(outcome)


# ── Public quote link ────────────────────────────────────────

@router.post("/quote/{token}/accept", response_model=StatusChangeResponse)
async def accept_quote(token: str, machine: OrderStateMachine = Depends(get_state_machine)):
    return _outcome_response(await machine.accept_quote(token, approved=True))


@router.post("/quote/{token}/reject", response_model=StatusChangeResponse)
async def reject_quote(token: str, machine: OrderStateMachine = Depends(get_state_machine)):
    return _outcome_response(await machine.accept_quote(token, approved=False))
