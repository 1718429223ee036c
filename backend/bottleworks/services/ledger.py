"""Quantity ledger — planned / good / scrap bottle counts.

Two independent progress measures exist for a batch:

  - step progress:    done steps / total steps
  - bottle progress:  good bottles / planned bottles

They are reported side by side and never reconciled.

The checks here are hard preconditions: the workflow engine calls them
before anything is written.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from bottleworks.errors import InvalidQuantity, QuantityMismatch, QuantityOverrun
from bottleworks.models.batch import BatchStatus, ProductionBatch, StepStatus, WorkflowStep
from bottleworks.services.store import RecordStore


@dataclass(frozen=True)
class OrderQuantities:
    planned: int
    good: int
    scrap: int
    batches: int
    complete_batches: int


# ── Pure checks ──────────────────────────────────────────────

def check_quantities(planned: int, good: int, scrap: int) -> None:
    """Reject negative counts and good + scrap above planned."""
    if good < 0 or scrap < 0:
        raise InvalidQuantity("Bottle counts cannot be negative")
    if good + scrap > planned:
        raise QuantityOverrun(planned, good, scrap)


def check_split(planned: int, quantities: Sequence[int]) -> None:
    """Split parts must be positive and add up to the planned quantity."""
    if not quantities:
        raise InvalidQuantity("At least one split quantity is required")
    if any(q <= 0 for q in quantities):
        raise InvalidQuantity("Every split quantity must be greater than zero")
    total = sum(quantities)
    if total != planned:
        raise QuantityMismatch(expected=planned, actual=total)


def merged_quantities(batches: Iterable[ProductionBatch]) -> dict[str, int]:
    """Column totals for the merge target."""
    totals = {"qty_bottle_planned": 0, "qty_bottle_good": 0, "qty_bottle_scrap": 0}
    for batch in batches:
        totals["qty_bottle_planned"] += batch.qty_bottle_planned
        totals["qty_bottle_good"] += batch.qty_bottle_good or 0
        totals["qty_bottle_scrap"] += batch.qty_bottle_scrap or 0
    return totals


def progress_fraction(steps: Sequence[WorkflowStep]) -> float:
    if not steps:
        return 0.0
    done = sum(1 for s in steps if s.status == StepStatus.DONE)
    return done / len(steps)


def bottle_progress(batch: ProductionBatch) -> float:
    if not batch.qty_bottle_planned:
        return 0.0
    return (batch.qty_bottle_good or 0) / batch.qty_bottle_planned


# ── Order aggregates ─────────────────────────────────────────

class QuantityLedger:
    def __init__(self, store: RecordStore):
        self.store = store

    async def _batches(self, order_id: str) -> list[ProductionBatch]:
        return await self.store.query(ProductionBatch, {"so_id": order_id})

    async def total_planned(self, order_id: str) -> int:
        return sum(b.qty_bottle_planned for b in await self._batches(order_id))

    async def total_good(self, order_id: str) -> int:
        return sum(b.qty_bottle_good or 0 for b in await self._batches(order_id))

    async def total_scrap(self, order_id: str) -> int:
        return sum(b.qty_bottle_scrap or 0 for b in await self._batches(order_id))

    async def order_summary(self, order_id: str) -> OrderQuantities:
        batches = await self._batches(order_id)
        return OrderQuantities(
            planned=sum(b.qty_bottle_planned for b in batches),
            good=sum(b.qty_bottle_good or 0 for b in batches),
            scrap=sum(b.qty_bottle_scrap or 0 for b in batches),
            batches=len(batches),
            complete_batches=sum(1 for b in batches if b.status == BatchStatus.COMPLETE),
        )

    async def incomplete_batches(self, order_id: str) -> list[ProductionBatch]:
        return [
            b for b in await self._batches(order_id)
            if b.status != BatchStatus.COMPLETE
        ]
