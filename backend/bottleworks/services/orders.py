"""Order state machine.

Gatekeeper for ``sales_orders.status``.  A transition request goes:

    validator → blockers?            → BlockedTransition (nothing written)
              → requires_override?   → OverrideRequired unless a note is given
              → write status (conditional on the status that was read)
              → one audit entry (with the note, if any)
              → customer notification for milestone statuses

The legal-transition graph is owned by the validator; the only rule
enforced locally is that an order cannot reach a shipping status while
any of its batches is unfinished.

Concurrent requests on the same order are resolved optimistically: the
second writer gets ConflictingUpdate and must retry with fresh state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from bottleworks.config import settings
from bottleworks.errors import (
    BlockedTransition,
    ConflictingUpdate,
    InvalidOrderState,
    OverrideRequired,
    QuoteExpired,
)
from bottleworks.models.order import DepositStatus, OrderStatus, SalesOrder
from bottleworks.services.audit import AuditSink
from bottleworks.services.ledger import QuantityLedger
from bottleworks.services.notifier import (
    ORDER_STATUS_EVENT,
    QUOTE_EXPIRED_EVENT,
    QUOTE_EXPIRING_EVENT,
    Notifier,
    should_notify,
)
from bottleworks.services.store import RecordStore, require
from bottleworks.services.validator import TransitionValidator
from bottleworks.utils.numbering import CodeGenerator

logger = logging.getLogger(__name__)

ORDER_ENTITY = "sales_order"

# Statuses that require every production batch to be complete
SHIPPING_STATUSES = frozenset({
    OrderStatus.PACKED.value,
    OrderStatus.READY_TO_SHIP.value,
    OrderStatus.SHIPPED.value,
})

CUSTOMER_ACCEPTANCE_NOTE = "Customer accepted quote via quote link"
CUSTOMER_REJECTION_NOTE = "Customer rejected quote via quote link"
QUOTE_EXPIRED_NOTE = "Quote expired without customer approval"

SYSTEM_ACTOR = "system"


@dataclass
class TransitionOutcome:
    order: SalesOrder
    previous_status: str
    warnings: list[str] = field(default_factory=list)
    # Allowed, but the validator raised warnings worth a second look
    flagged_for_review: bool = False
    notified: bool = False
    changed: bool = True


@dataclass
class QuoteSweep:
    expired: list[TransitionOutcome] = field(default_factory=list)
    expiring_soon: list[SalesOrder] = field(default_factory=list)
    # human_uid -> reason the quote could not be moved back to draft
    failed: dict[str, str] = field(default_factory=dict)


class OrderStateMachine:
    def __init__(
        self,
        store: RecordStore,
        validator: TransitionValidator,
        audit: AuditSink,
        notifier: Notifier,
        codes: CodeGenerator | None = None,
    ):
        self.store = store
        self.validator = validator
        self.audit = audit
        self.notifier = notifier
        self.codes = codes
        self.ledger = QuantityLedger(store)

    # ── Create / quote ───────────────────────────────────────

    async def create_order(
        self,
        *,
        actor: str | None = None,
        subtotal: float = 0.0,
        deposit_required: bool = False,
        deposit_amount: float | None = None,
        label_required: bool = True,
        is_internal: bool = False,
        promised_date: date | None = None,
        eta_date: date | None = None,
        notes: str | None = None,
    ) -> SalesOrder:
        if self.codes is None:
            raise RuntimeError("OrderStateMachine needs a CodeGenerator to create orders")
        human_uid = await self.codes.next("order")
        order = await self.store.insert(SalesOrder, {
            "human_uid": human_uid,
            "status": OrderStatus.DRAFT.value,
            "subtotal": subtotal,
            "deposit_required": deposit_required,
            "deposit_amount": deposit_amount,
            "deposit_status": DepositStatus.UNPAID.value,
            "label_required": label_required,
            "is_internal": is_internal,
            "promised_date": promised_date,
            "eta_date": eta_date,
            "notes": notes,
        })
        await self.audit.record(
            ORDER_ENTITY, order.id, "created", actor=actor,
            after={"uid": human_uid, "subtotal": subtotal},
        )
        return order

    async def issue_quote(
        self,
        order_id: str,
        *,
        actor: str | None = None,
        expiration_days: int | None = None,
        override_note: str | None = None,
    ) -> TransitionOutcome:
        """Stamp the quote expiry and move the order to ``quoted``."""
        days = settings.quote_expiration_days if expiration_days is None else expiration_days
        order = await require(self.store, SalesOrder, order_id)
        outcome = await self.request_transition(
            order.id, OrderStatus.QUOTED, actor=actor,
            override_note=override_note, expected_status=order.status,
        )
        outcome.order = await self.store.update(
            SalesOrder, order.id,
            {"quote_expires_at": datetime.utcnow() + timedelta(days=days)},
        )
        return outcome

    async def accept_quote(self, token: str, *, approved: bool = True) -> TransitionOutcome:
        """Customer answer from the quote link.

        Approval moves the order to ``deposit_due`` (or straight to
        ``in_queue`` when no deposit is required); rejection cancels it.
        """
        matches = await self.store.query(SalesOrder, {"quote_link_token": token})
        if not matches:
            raise InvalidOrderState("Quote link is invalid")
        order = matches[0]

        if order.status != OrderStatus.QUOTED:
            raise InvalidOrderState("Order is not in quoted status")
        if approved and order.quote_expires_at and order.quote_expires_at < datetime.utcnow():
            raise QuoteExpired(order.human_uid)

        if approved:
            target = OrderStatus.DEPOSIT_DUE if order.deposit_required else OrderStatus.IN_QUEUE
        else:
            target = OrderStatus.CANCELLED

        outcome = await self._transition(
            order, target.value, actor="customer",
            override_note=None,
            auto_note=CUSTOMER_ACCEPTANCE_NOTE if approved else CUSTOMER_REJECTION_NOTE,
            action="quote_accepted" if approved else "quote_rejected",
        )
        if approved:
            outcome.order = await self.store.update(
                SalesOrder, order.id, {"deposit_status": DepositStatus.UNPAID.value},
            )
        return outcome

    async def renew_quote(
        self,
        order_id: str,
        *,
        actor: str | None = None,
        days: int | None = None,
    ) -> SalesOrder:
        """Push the expiry of an open quote ``days`` out from now."""
        order = await require(self.store, SalesOrder, order_id)
        if order.status != OrderStatus.QUOTED:
            raise InvalidOrderState(f"Order {order.human_uid} has no open quote to renew")
        days = settings.quote_expiration_days if days is None else days

        previous = order.quote_expires_at
        renewed = await self.store.update(
            SalesOrder, order.id,
            {"quote_expires_at": datetime.utcnow() + timedelta(days=days)},
            expected={"status": OrderStatus.QUOTED.value},
        )
        await self.audit.record(
            ORDER_ENTITY, order.id, "quote_renewed", actor=actor,
            before={"quote_expires_at": previous.isoformat() if previous else None},
            after={"quote_expires_at": renewed.quote_expires_at.isoformat(), "days": days},
        )
        logger.info("Quote %s renewed until %s", renewed.human_uid, renewed.quote_expires_at)
        return renewed

    async def expire_quotes(
        self,
        now: datetime | None = None,
        *,
        reminder_days: int | None = None,
    ) -> QuoteSweep:
        """Send past-due quotes back to ``draft`` and flag those about to lapse.

        Each expiry goes through the validator like any other transition.
        A quote the validator blocks, or that changed under us, is left
        as it is and reported in ``failed``; the sweep carries on.
        """
        now = now or datetime.utcnow()
        if reminder_days is None:
            reminder_days = settings.quote_reminder_days
        reminder_cutoff = now + timedelta(days=reminder_days)

        sweep = QuoteSweep()
        quoted = await self.store.query(
            SalesOrder, {"status": OrderStatus.QUOTED.value}, order=("quote_expires_at",),
        )
        for order in quoted:
            expires_at = order.quote_expires_at
            if expires_at is None:
                continue
            payload = {
                "order_id": order.id,
                "order_uid": order.human_uid,
                "quote_expires_at": expires_at.isoformat(),
            }

            if expires_at < now:
                try:
                    outcome = await self._transition(
                        order, OrderStatus.DRAFT.value, actor=SYSTEM_ACTOR,
                        override_note=None, auto_note=QUOTE_EXPIRED_NOTE, action="quote_expired",
                    )
                except (BlockedTransition, ConflictingUpdate) as exc:
                    logger.warning("Could not expire quote %s: %s", order.human_uid, exc.message)
                    sweep.failed[order.human_uid] = exc.message
                    continue
                sweep.expired.append(outcome)
                await self.notifier.notify(QUOTE_EXPIRED_EVENT, payload)
            elif expires_at < reminder_cutoff:
                sweep.expiring_soon.append(order)
                await self.notifier.notify(QUOTE_EXPIRING_EVENT, payload)

        logger.info(
            "Quote sweep: %d expired, %d expiring soon, %d failed",
            len(sweep.expired), len(sweep.expiring_soon), len(sweep.failed),
        )
        return sweep

    # ── Transitions ──────────────────────────────────────────

    async def request_transition(
        self,
        order_id: str,
        new_status: OrderStatus | str,
        *,
        actor: str | None = None,
        override_note: str | None = None,
        expected_status: str | None = None,
    ) -> TransitionOutcome:
        """Validate and apply a status change requested by staff.

        Raises:
            ValueError: unknown status value
            ResourceNotFoundError: order does not exist
            BlockedTransition: validator (or batch guard) reported blockers
            OverrideRequired: validator wants a justification note
            ConflictingUpdate: status changed since it was read
        """
        new_status = OrderStatus(new_status).value
        order = await require(self.store, SalesOrder, order_id)
        if expected_status is not None and order.status != expected_status:
            raise ConflictingUpdate("SalesOrder", order.id, {"status": expected_status})

        return await self._transition(order, new_status, actor=actor, override_note=override_note)

    async def _transition(
        self,
        order: SalesOrder,
        new_status: str,
        *,
        actor: str | None,
        override_note: str | None,
        auto_note: str | None = None,
        action: str | None = None,
    ) -> TransitionOutcome:
        previous = order.status
        if previous == new_status:
            return TransitionOutcome(order=order, previous_status=previous, changed=False)

        result = await self.validator.validate(order.id, new_status)

        blockers = list(result.blockers)
        if new_status in SHIPPING_STATUSES:
            unfinished = await self.ledger.incomplete_batches(order.id)
            if unfinished:
                blockers.append(
                    "All production batches must be complete before "
                    f"{new_status} ({', '.join(b.human_uid for b in unfinished)} unfinished)"
                )
        if blockers:
            logger.warning(
                "Blocked %s: %s -> %s: %s", order.human_uid, previous, new_status, blockers,
            )
            raise BlockedTransition(previous, new_status, blockers)

        note = (override_note or "").strip() or None
        if result.requires_override and note is None:
            if auto_note is None:
                raise OverrideRequired(previous, new_status, result.warnings)
            note = auto_note

        updated = await self.store.update(
            SalesOrder, order.id, {"status": new_status},
            expected={"status": previous},
        )

        if action is None:
            action = "status_changed_override" if note else "status_changed"
        await self.audit.record(
            ORDER_ENTITY, order.id, action,
            actor=actor,
            before={"status": previous},
            after={"status": new_status, "override_note": note, "warnings": result.warnings},
        )
        logger.info("Order %s: %s -> %s", updated.human_uid, previous, new_status)

        notified = False
        if should_notify(new_status):
            await self.notifier.notify(ORDER_STATUS_EVENT, {
                "order_id": updated.id,
                "order_uid": updated.human_uid,
                "old_status": previous,
                "new_status": new_status,
            })
            notified = True

        return TransitionOutcome(
            order=updated,
            previous_status=previous,
            warnings=list(result.warnings),
            flagged_for_review=bool(result.warnings),
            notified=notified,
        )
