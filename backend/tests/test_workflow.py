"""Batch workflow engine: steps, batch status derivation, hold, split, merge."""

import pytest

from bottleworks.errors import (
    InvalidBatchState,
    InvalidQuantity,
    InvalidStepState,
    QuantityOverrun,
    ResourceNotFoundError,
)
from bottleworks.models import ProductionBatch, WorkflowStep
from bottleworks.services.audit import SqlAuditSink
from bottleworks.services.workflow import BatchWorkflowEngine, derive_batch_status
from bottleworks.utils.numbering import CodeGenerator


async def run_all_steps(workflow, batch_id, operator="op-1"):
    result = None
    for step in await workflow.steps(batch_id):
        await workflow.start_step(batch_id, step.id, operator)
        result = await workflow.complete_step(batch_id, step.id)
    return result


def _steps(*statuses):
    return [WorkflowStep(step="produce", position=i, status=s) for i, s in enumerate(statuses)]


@pytest.mark.unit
class TestDeriveBatchStatus:
    def test_all_done_is_complete(self):
        assert derive_batch_status("wip", _steps("done", "done")) == "complete"

    def test_all_done_completes_a_held_batch(self):
        assert derive_batch_status("hold", _steps("done", "done")) == "complete"

    def test_hold_is_kept_while_work_remains(self):
        assert derive_batch_status("hold", _steps("done", "pending")) == "hold"

    def test_any_started_step_is_wip(self):
        assert derive_batch_status("queued", _steps("wip", "pending")) == "wip"
        assert derive_batch_status("queued", _steps("done", "pending")) == "wip"

    def test_nothing_started_is_queued(self):
        assert derive_batch_status("queued", _steps("pending", "pending")) == "queued"


@pytest.mark.integration
@pytest.mark.asyncio
class TestCreateBatch:
    async def test_new_batch_is_queued_with_pending_steps(self, order, workflow):
        batch = await workflow.create_batch(order.id, 100)
        assert batch.status == "queued"
        assert batch.uid.startswith("B-")
        steps = await workflow.steps(batch.id)
        assert [s.step for s in steps] == ["produce", "bottle_cap", "label", "pack"]
        assert all(s.status == "pending" for s in steps)

    async def test_label_step_skipped_when_not_required(self, machine, workflow):
        order = await machine.create_order(label_required=False)
        batch = await workflow.create_batch(order.id, 10)
        assert [s.step for s in await workflow.steps(batch.id)] == ["produce", "bottle_cap", "pack"]

    async def test_unknown_order(self, workflow):
        with pytest.raises(ResourceNotFoundError):
            await workflow.create_batch("missing", 10)

    async def test_planned_quantity_must_be_positive(self, order, workflow):
        with pytest.raises(InvalidQuantity):
            await workflow.create_batch(order.id, 0)

    async def test_delete_removes_steps(self, order, workflow, store):
        batch = await workflow.create_batch(order.id, 10)
        await workflow.delete_batch(batch.id)
        assert await store.get(ProductionBatch, batch.id) is None
        assert await store.query(WorkflowStep, {"batch_id": batch.id}) == []


@pytest.mark.integration
@pytest.mark.asyncio
class TestSteps:
    async def test_first_step_start_moves_batch_to_wip(self, order, workflow):
        batch = await workflow.create_batch(order.id, 100)
        first = (await workflow.steps(batch.id))[0]

        result = await workflow.start_step(batch.id, first.id, "op-7")

        assert result.step.status == "wip"
        assert result.step.operator_id == "op-7"
        assert result.step.started_at is not None
        assert result.batch.status == "wip"
        assert result.batch.actual_start is not None

    async def test_step_cannot_start_twice(self, order, workflow):
        batch = await workflow.create_batch(order.id, 100)
        first = (await workflow.steps(batch.id))[0]
        await workflow.start_step(batch.id, first.id, "op-1")

        with pytest.raises(InvalidStepState):
            await workflow.start_step(batch.id, first.id, "op-2")

    async def test_pending_step_cannot_complete(self, order, workflow):
        batch = await workflow.create_batch(order.id, 100)
        first = (await workflow.steps(batch.id))[0]
        with pytest.raises(InvalidStepState):
            await workflow.complete_step(batch.id, first.id)

    async def test_done_step_cannot_complete_again(self, order, workflow):
        batch = await workflow.create_batch(order.id, 100)
        first = (await workflow.steps(batch.id))[0]
        await workflow.start_step(batch.id, first.id, "op-1")
        await workflow.complete_step(batch.id, first.id)
        with pytest.raises(InvalidStepState):
            await workflow.complete_step(batch.id, first.id)

    async def test_step_of_another_batch_not_found(self, order, workflow):
        a = await workflow.create_batch(order.id, 10)
        b = await workflow.create_batch(order.id, 10)
        step_of_b = (await workflow.steps(b.id))[0]
        with pytest.raises(ResourceNotFoundError):
            await workflow.start_step(a.id, step_of_b.id, "op-1")

    async def test_last_step_done_completes_batch(self, order, workflow):
        batch = await workflow.create_batch(order.id, 100)

        result = await run_all_steps(workflow, batch.id)

        assert result.batch.status == "complete"
        assert result.batch.actual_finish is not None
        assert result.batch.actual_start <= result.batch.actual_finish
        assert result.order_production_complete is True

    async def test_order_not_complete_while_other_batch_open(self, order, workflow):
        batch = await workflow.create_batch(order.id, 50)
        await workflow.create_batch(order.id, 50)

        result = await run_all_steps(workflow, batch.id)

        assert result.batch.status == "complete"
        assert result.order_production_complete is False

    async def test_steps_may_run_out_of_order_by_default(self, order, workflow):
        batch = await workflow.create_batch(order.id, 100)
        pack = (await workflow.steps(batch.id))[-1]
        result = await workflow.start_step(batch.id, pack.id, "op-1")
        assert result.step.status == "wip"

    async def test_strict_order_requires_earlier_steps_done(self, db_session, store, order):
        strict = BatchWorkflowEngine(
            store, SqlAuditSink(db_session), CodeGenerator(db_session), strict_step_order=True,
        )
        batch = await strict.create_batch(order.id, 100)
        produce, cap, *_ = await strict.steps(batch.id)

        with pytest.raises(InvalidStepState):
            await strict.start_step(batch.id, cap.id, "op-1")

        await strict.start_step(batch.id, produce.id, "op-1")
        await strict.complete_step(batch.id, produce.id)
        result = await strict.start_step(batch.id, cap.id, "op-1")
        assert result.step.status == "wip"

    async def test_step_actions_are_audited(self, order, workflow, audit_entries):
        batch = await workflow.create_batch(order.id, 100)
        first = (await workflow.steps(batch.id))[0]
        await workflow.start_step(batch.id, first.id, "op-1")
        await workflow.complete_step(batch.id, first.id)

        assert len(await audit_entries(first.id, "step_started")) == 1
        assert len(await audit_entries(first.id, "step_completed")) == 1

    async def test_recompute_is_idempotent(self, order, workflow, store):
        batch = await workflow.create_batch(order.id, 100)
        first = (await workflow.steps(batch.id))[0]
        await workflow.start_step(batch.id, first.id, "op-1")
        # Stored status drifted from the steps
        await store.update(ProductionBatch, batch.id, {"status": "queued"})

        once = await workflow.recompute_batch(batch.id)
        twice = await workflow.recompute_batch(batch.id)

        assert once.status == "wip"
        assert twice.status == "wip"


@pytest.mark.integration
@pytest.mark.asyncio
class TestHold:
    async def _started_batch(self, order, workflow):
        batch = await workflow.create_batch(order.id, 100)
        first = (await workflow.steps(batch.id))[0]
        await workflow.start_step(batch.id, first.id, "op-1")
        return batch

    async def test_hold_and_resume(self, order, workflow):
        batch = await self._started_batch(order, workflow)

        held = await workflow.hold_batch(batch.id, "Out of caps")
        assert held.status == "hold"
        assert held.hold_reason == "Out of caps"

        resumed = await workflow.resume_batch(batch.id)
        assert resumed.status == "wip"
        assert resumed.hold_reason is None

    async def test_queued_batch_cannot_be_held(self, order, workflow):
        batch = await workflow.create_batch(order.id, 100)
        with pytest.raises(InvalidBatchState):
            await workflow.hold_batch(batch.id, "QC")

    async def test_held_batch_rejects_step_actions(self, order, workflow):
        batch = await self._started_batch(order, workflow)
        await workflow.hold_batch(batch.id, "QC")
        second = (await workflow.steps(batch.id))[1]
        with pytest.raises(InvalidBatchState):
            await workflow.start_step(batch.id, second.id, "op-1")

    async def test_resume_requires_hold(self, order, workflow):
        batch = await self._started_batch(order, workflow)
        with pytest.raises(InvalidBatchState):
            await workflow.resume_batch(batch.id)


@pytest.mark.integration
@pytest.mark.asyncio
class TestQuantities:
    async def test_record_within_planned(self, order, workflow):
        batch = await workflow.create_batch(order.id, 100)
        updated = await workflow.record_quantities(batch.id, 80, 20)
        assert (updated.qty_bottle_good, updated.qty_bottle_scrap) == (80, 20)

    async def test_overrun_is_rejected_and_nothing_written(self, order, workflow, store):
        batch = await workflow.create_batch(order.id, 100)
        with pytest.raises(QuantityOverrun):
            await workflow.record_quantities(batch.id, 80, 30)
        reloaded = await store.get(ProductionBatch, batch.id)
        assert (reloaded.qty_bottle_good, reloaded.qty_bottle_scrap) == (0, 0)


@pytest.mark.integration
@pytest.mark.asyncio
class TestSplitMerge:
    async def test_split_replaces_source(self, order, workflow, store):
        batch = await workflow.create_batch(order.id, 100, priority_index=3)

        parts = await workflow.split_batch(batch.id, [34, 33, 33])

        assert [p.qty_bottle_planned for p in parts] == [34, 33, 33]
        assert all(p.status == "queued" and p.priority_index == 3 for p in parts)
        assert len({p.uid for p in parts} | {batch.uid}) == 4
        assert await store.get(ProductionBatch, batch.id) is None
        for part in parts:
            assert len(await workflow.steps(part.id)) == 4

    async def test_split_mismatch_keeps_source(self, order, workflow, store):
        from bottleworks.errors import QuantityMismatch

        batch = await workflow.create_batch(order.id, 100)
        with pytest.raises(QuantityMismatch):
            await workflow.split_batch(batch.id, [34, 33, 30])
        assert await store.get(ProductionBatch, batch.id) is not None

    async def test_started_batch_cannot_split(self, order, workflow):
        batch = await workflow.create_batch(order.id, 100)
        first = (await workflow.steps(batch.id))[0]
        await workflow.start_step(batch.id, first.id, "op-1")
        with pytest.raises(InvalidBatchState):
            await workflow.split_batch(batch.id, [50, 50])

    async def test_merge_sums_into_first(self, order, workflow, store):
        a = await workflow.create_batch(order.id, 40)
        b = await workflow.create_batch(order.id, 25)
        c = await workflow.create_batch(order.id, 10)

        merged = await workflow.merge_batches([a.id, b.id, c.id])

        assert merged.id == a.id
        assert merged.qty_bottle_planned == 75
        assert await store.get(ProductionBatch, b.id) is None
        assert await store.get(ProductionBatch, c.id) is None
        assert await store.query(WorkflowStep, {"batch_id": [b.id, c.id]}) == []

    async def test_merge_needs_two_distinct_batches(self, order, workflow):
        a = await workflow.create_batch(order.id, 40)
        with pytest.raises(InvalidBatchState):
            await workflow.merge_batches([a.id, a.id])

    async def test_merge_across_orders_rejected(self, order, machine, workflow):
        other = await machine.create_order()
        a = await workflow.create_batch(order.id, 40)
        b = await workflow.create_batch(other.id, 25)
        with pytest.raises(InvalidBatchState):
            await workflow.merge_batches([a.id, b.id])

    async def test_complete_batch_cannot_merge(self, order, workflow):
        a = await workflow.create_batch(order.id, 40)
        b = await workflow.create_batch(order.id, 25)
        await run_all_steps(workflow, b.id)
        with pytest.raises(InvalidBatchState):
            await workflow.merge_batches([a.id, b.id])
