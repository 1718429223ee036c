"""Batch workflow engine.

Drives each production batch through its workflow steps and keeps the
batch status in line with them:

  - starting the first step moves a queued batch to ``wip`` and stamps
    ``actual_start``
  - finishing the last step moves the batch to ``complete`` and stamps
    ``actual_finish``
  - ``hold`` / resume are staff actions, never derived from data

The batch status is always recomputed from the step rows
(``derive_batch_status``) instead of being trusted as stored, so running
``recompute_batch`` any number of times converges on the same answer.

Step writes are conditional on the status that was read, so two
operators starting the same step race to a single ``wip`` transition;
the loser gets ConflictingUpdate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from bottleworks.config import settings
from bottleworks.errors import InvalidBatchState, InvalidQuantity, InvalidStepState, ResourceNotFoundError
from bottleworks.models.batch import (
    STEP_SEQUENCE,
    BatchStatus,
    ProductionBatch,
    StepStatus,
    StepType,
    WorkflowStep,
)
from bottleworks.models.order import SalesOrder
from bottleworks.services.audit import AuditSink
from bottleworks.services.ledger import check_quantities, check_split, merged_quantities
from bottleworks.services.store import RecordStore, require
from bottleworks.utils.numbering import CodeGenerator

logger = logging.getLogger(__name__)

BATCH_ENTITY = "production_batch"


@dataclass
class StepResult:
    step: WorkflowStep
    batch: ProductionBatch
    # True once every batch of the order is complete
    order_production_complete: bool = False


def steps_for(order: SalesOrder) -> list[StepType]:
    """Workflow steps a new batch of this order gets."""
    if order.label_required:
        return list(STEP_SEQUENCE)
    return [s for s in STEP_SEQUENCE if s != StepType.LABEL]


def derive_batch_status(current: str, steps: Sequence[WorkflowStep]) -> str:
    """Batch status implied by its steps.

    complete iff every step is done; otherwise a held batch stays on hold;
    otherwise wip once any step has started, else queued.
    """
    if steps and all(s.status == StepStatus.DONE for s in steps):
        return BatchStatus.COMPLETE.value
    if current == BatchStatus.HOLD:
        return BatchStatus.HOLD.value
    if any(s.status in (StepStatus.WIP, StepStatus.DONE) for s in steps):
        return BatchStatus.WIP.value
    return BatchStatus.QUEUED.value


class BatchWorkflowEngine:
    def __init__(
        self,
        store: RecordStore,
        audit: AuditSink,
        codes: CodeGenerator,
        *,
        strict_step_order: bool | None = None,
    ):
        self.store = store
        self.audit = audit
        self.codes = codes
        self.strict_step_order = (
            settings.strict_step_order if strict_step_order is None else strict_step_order
        )

    # ── Lookups ──────────────────────────────────────────────

    async def steps(self, batch_id: str) -> list[WorkflowStep]:
        return await self.store.query(WorkflowStep, {"batch_id": batch_id}, order=["position"])

    async def _require_step(self, batch_id: str, step_id: str) -> WorkflowStep:
        step = await self.store.get(WorkflowStep, step_id)
        if step is None or step.batch_id != batch_id:
            raise ResourceNotFoundError("WorkflowStep", step_id)
        return step

    @staticmethod
    def _check_batch_open(batch: ProductionBatch) -> None:
        if batch.status == BatchStatus.HOLD:
            raise InvalidBatchState(f"Batch {batch.human_uid} is on hold")
        if batch.status == BatchStatus.COMPLETE:
            raise InvalidBatchState(f"Batch {batch.human_uid} is already complete")

    async def order_production_complete(self, order_id: str) -> bool:
        batches = await self.store.query(ProductionBatch, {"so_id": order_id})
        return bool(batches) and all(b.status == BatchStatus.COMPLETE for b in batches)

    # ── Create / delete ──────────────────────────────────────

    async def _insert_batch(
        self,
        order: SalesOrder,
        qty_planned: int,
        planned_start: datetime | None = None,
        priority_index: int = 0,
    ) -> ProductionBatch:
        code = await self.codes.next("batch")
        batch = await self.store.insert(ProductionBatch, {
            "so_id": order.id,
            "uid": code,
            "human_uid": code,
            "status": BatchStatus.QUEUED.value,
            "qty_bottle_planned": qty_planned,
            "qty_bottle_good": 0,
            "qty_bottle_scrap": 0,
            "priority_index": priority_index,
            "planned_start": planned_start,
        })
        for step in steps_for(order):
            await self.store.insert(WorkflowStep, {
                "batch_id": batch.id,
                "step": step.value,
                "position": STEP_SEQUENCE.index(step),
                "status": StepStatus.PENDING.value,
            })
        return batch

    async def _delete_batch_rows(self, batch: ProductionBatch) -> None:
        for step in await self.steps(batch.id):
            await self.store.delete(WorkflowStep, step.id)
        await self.store.delete(ProductionBatch, batch.id)

    async def create_batch(
        self,
        order_id: str,
        qty_planned: int,
        *,
        actor: str | None = None,
        planned_start: datetime | None = None,
        priority_index: int = 0,
    ) -> ProductionBatch:
        """Schedule a new queued batch for an order with pending steps."""
        if qty_planned <= 0:
            raise InvalidQuantity("Planned quantity must be greater than zero")
        order = await require(self.store, SalesOrder, order_id)

        batch = await self._insert_batch(order, qty_planned, planned_start, priority_index)
        await self.audit.record(
            BATCH_ENTITY, batch.id, "created", actor=actor,
            after={"uid": batch.uid, "qty": qty_planned, "order": order.human_uid},
        )
        logger.info("Created batch %s (%d bottles) for %s", batch.uid, qty_planned, order.human_uid)
        return batch

    async def delete_batch(self, batch_id: str, *, actor: str | None = None) -> None:
        batch = await require(self.store, ProductionBatch, batch_id)
        await self._delete_batch_rows(batch)
        await self.audit.record(
            BATCH_ENTITY, batch_id, "deleted", actor=actor,
            before={"uid": batch.human_uid, "qty": batch.qty_bottle_planned},
        )

    # ── Batch status ─────────────────────────────────────────

    async def _sync_batch_status(self, batch: ProductionBatch) -> ProductionBatch:
        steps = await self.steps(batch.id)
        new_status = derive_batch_status(batch.status, steps)
        now = datetime.utcnow()

        patch: dict = {}
        if new_status != batch.status:
            patch["status"] = new_status
        if new_status in (BatchStatus.WIP, BatchStatus.COMPLETE) and batch.actual_start is None:
            started = [s.started_at for s in steps if s.started_at is not None]
            patch["actual_start"] = min(started) if started else now
        if new_status == BatchStatus.COMPLETE and batch.actual_finish is None:
            finished = [s.finished_at for s in steps if s.finished_at is not None]
            patch["actual_finish"] = max(finished) if finished else now

        if not patch:
            return batch
        updated = await self.store.update(
            ProductionBatch, batch.id, patch, expected={"status": batch.status}
        )
        if "status" in patch:
            logger.info("Batch %s: %s -> %s", batch.uid, batch.status, new_status)
        return updated

    async def recompute_batch(self, batch_id: str) -> ProductionBatch:
        """Re-derive and persist a batch's status from its steps."""
        batch = await require(self.store, ProductionBatch, batch_id)
        return await self._sync_batch_status(batch)

    async def hold_batch(self, batch_id: str, reason: str, *, actor: str | None = None) -> ProductionBatch:
        batch = await require(self.store, ProductionBatch, batch_id)
        if batch.status != BatchStatus.WIP:
            raise InvalidBatchState(
                f"Only batches in progress can be put on hold; {batch.human_uid} is {batch.status}"
            )
        updated = await self.store.update(
            ProductionBatch, batch.id,
            {"status": BatchStatus.HOLD.value, "hold_reason": reason},
            expected={"status": batch.status},
        )
        await self.audit.record(
            BATCH_ENTITY, batch.id, "held", actor=actor,
            before={"status": batch.status}, after={"status": updated.status, "reason": reason},
        )
        return updated

    async def resume_batch(self, batch_id: str, *, actor: str | None = None) -> ProductionBatch:
        batch = await require(self.store, ProductionBatch, batch_id)
        if batch.status != BatchStatus.HOLD:
            raise InvalidBatchState(f"Batch {batch.human_uid} is not on hold")
        updated = await self.store.update(
            ProductionBatch, batch.id,
            {"status": BatchStatus.WIP.value, "hold_reason": None},
            expected={"status": BatchStatus.HOLD.value},
        )
        await self.audit.record(
            BATCH_ENTITY, batch.id, "resumed", actor=actor,
            before={"status": batch.status, "reason": batch.hold_reason},
            after={"status": updated.status},
        )
        return updated

    # ── Steps ────────────────────────────────────────────────

    async def start_step(self, batch_id: str, step_id: str, operator_id: str) -> StepResult:
        batch = await require(self.store, ProductionBatch, batch_id)
        step = await self._require_step(batch_id, step_id)
        self._check_batch_open(batch)

        if step.status != StepStatus.PENDING:
            raise InvalidStepState(
                f"Step {step.step} of batch {batch.human_uid} is {step.status}; "
                "only pending steps can be started"
            )
        if self.strict_step_order:
            unfinished = [
                s.step for s in await self.steps(batch_id)
                if s.position < step.position and s.status != StepStatus.DONE
            ]
            if unfinished:
                raise InvalidStepState(
                    f"Cannot start {step.step} before {', '.join(unfinished)} "
                    f"{'is' if len(unfinished) == 1 else 'are'} done"
                )

        step = await self.store.update(
            WorkflowStep, step.id,
            {
                "status": StepStatus.WIP.value,
                "started_at": datetime.utcnow(),
                "operator_id": operator_id,
            },
            expected={"status": StepStatus.PENDING.value},
        )
        batch = await self._sync_batch_status(batch)

        await self.audit.record(
            "workflow_step", step.id, "step_started", actor=operator_id,
            after={"batch": batch.human_uid, "step": step.step},
        )
        return StepResult(step=step, batch=batch)

    async def complete_step(self, batch_id: str, step_id: str, *, actor: str | None = None) -> StepResult:
        batch = await require(self.store, ProductionBatch, batch_id)
        step = await self._require_step(batch_id, step_id)
        self._check_batch_open(batch)

        if step.status != StepStatus.WIP:
            raise InvalidStepState(
                f"Step {step.step} of batch {batch.human_uid} is {step.status}; "
                "only steps in progress can be completed"
            )

        step = await self.store.update(
            WorkflowStep, step.id,
            {"status": StepStatus.DONE.value, "finished_at": datetime.utcnow()},
            expected={"status": StepStatus.WIP.value},
        )
        batch = await self._sync_batch_status(batch)

        await self.audit.record(
            "workflow_step", step.id, "step_completed", actor=actor or step.operator_id,
            after={"batch": batch.human_uid, "step": step.step},
        )

        order_done = False
        if batch.status == BatchStatus.COMPLETE:
            order_done = await self.order_production_complete(batch.so_id)
        return StepResult(step=step, batch=batch, order_production_complete=order_done)

    # ── Quantities ───────────────────────────────────────────

    async def record_quantities(
        self,
        batch_id: str,
        good: int,
        scrap: int,
        *,
        actor: str | None = None,
    ) -> ProductionBatch:
        batch = await require(self.store, ProductionBatch, batch_id)
        check_quantities(batch.qty_bottle_planned, good, scrap)

        before = {"good": batch.qty_bottle_good, "scrap": batch.qty_bottle_scrap}
        updated = await self.store.update(
            ProductionBatch, batch.id,
            {"qty_bottle_good": good, "qty_bottle_scrap": scrap},
        )
        await self.audit.record(
            BATCH_ENTITY, batch.id, "quantities_recorded", actor=actor,
            before=before, after={"good": good, "scrap": scrap},
        )
        return updated

    async def split_batch(
        self,
        batch_id: str,
        quantities: Sequence[int],
        *,
        actor: str | None = None,
    ) -> list[ProductionBatch]:
        """Replace a queued batch with one fresh batch per quantity.

        The source batch and its steps are deleted; every new batch starts
        queued with pending steps and inherits order, schedule and priority.
        """
        batch = await require(self.store, ProductionBatch, batch_id)
        if batch.status != BatchStatus.QUEUED:
            raise InvalidBatchState(
                f"Only queued batches can be split; {batch.human_uid} is {batch.status}"
            )
        check_split(batch.qty_bottle_planned, quantities)
        order = await require(self.store, SalesOrder, batch.so_id)

        # Children are numbered while the source still holds its code
        children = [
            await self._insert_batch(order, qty, batch.planned_start, batch.priority_index)
            for qty in quantities
        ]
        await self._delete_batch_rows(batch)

        await self.audit.record(
            BATCH_ENTITY, batch.id, "split", actor=actor,
            before={"uid": batch.human_uid, "qty": batch.qty_bottle_planned},
            after={"batches": [{"id": c.id, "uid": c.uid, "qty": c.qty_bottle_planned} for c in children]},
        )
        logger.info("Split batch %s into %s", batch.uid, [c.uid for c in children])
        return children

    async def merge_batches(
        self,
        batch_ids: Sequence[str],
        *,
        actor: str | None = None,
    ) -> ProductionBatch:
        """Fold every listed batch into the first one.

        Planned, good and scrap counts are summed onto the target; the other
        batches and their steps are deleted.
        """
        ids = list(dict.fromkeys(batch_ids))
        if len(ids) < 2:
            raise InvalidBatchState("Select at least two different batches to merge")

        batches = [await require(self.store, ProductionBatch, bid) for bid in ids]
        target, sources = batches[0], batches[1:]

        if any(b.so_id != target.so_id for b in sources):
            raise InvalidBatchState("Batches from different orders cannot be merged")
        complete = [b.human_uid for b in batches if b.status == BatchStatus.COMPLETE]
        if complete:
            raise InvalidBatchState(f"Completed batches cannot be merged: {', '.join(complete)}")

        before = {b.human_uid: b.qty_bottle_planned for b in batches}
        merged = await self.store.update(ProductionBatch, target.id, merged_quantities(batches))
        for source in sources:
            await self._delete_batch_rows(source)

        await self.audit.record(
            BATCH_ENTITY, target.id, "merged", actor=actor,
            before=before,
            after={"uid": merged.human_uid, "qty": merged.qty_bottle_planned},
        )
        logger.info("Merged %s into %s", [s.uid for s in sources], target.uid)
        return merged
