"""Production batch router — scheduling, workflow steps and quantities.

Endpoints:
    POST   /api/batches/                               Schedule a batch for an order
    GET    /api/batches/{batch_id}                     Batch with steps and progress
    DELETE /api/batches/{batch_id}                     Delete batch and its steps
    POST   /api/batches/{batch_id}/steps/{step_id}/start
    POST   /api/batches/{batch_id}/steps/{step_id}/complete
    PUT    /api/batches/{batch_id}/quantities          Record good / scrap bottles
    POST   /api/batches/{batch_id}/split               Split a queued batch
    POST   /api/batches/merge                          Merge batches of one order
    POST   /api/batches/{batch_id}/hold                Put batch on hold
    POST   /api/batches/{batch_id}/resume              Resume a held batch
"""

from fastapi import APIRouter, Depends, status

from bottleworks.deps import get_actor, get_workflow_engine
from bottleworks.models.batch import ProductionBatch
from bottleworks.schemas.batch import (
    BatchCreate,
    BatchDetailOut,
    BatchOut,
    HoldRequest,
    MergeRequest,
    QuantitiesUpdate,
    SplitRequest,
    SplitResultOut,
    StepResultOut,
    StepStartRequest,
    WorkflowStepOut,
)
from bottleworks.services.ledger import bottle_progress, progress_fraction
from bottleworks.services.store import require
from bottleworks.services.workflow import BatchWorkflowEngine, StepResult

router = APIRouter()


async def _detail(engine: BatchWorkflowEngine, batch: ProductionBatch) -> BatchDetailOut:
    steps = await engine.steps(batch.id)
    return BatchDetailOut(
        **BatchOut.model_validate(batch).model_dump(),
        steps=[WorkflowStepOut.model_validate(s) for s in steps],
        step_progress=progress_fraction(steps),
        bottle_progress=bottle_progress(batch),
    )


def _step_response(result: StepResult) -> StepResultOut:
    return StepResultOut(
        step=WorkflowStepOut.model_validate(result.step),
        batch=BatchOut.model_validate(result.batch),
        order_production_complete=result.order_production_complete,
    )


# ── Create / read / delete ───────────────────────────────────

@router.post("/", response_model=BatchDetailOut, status_code=status.HTTP_201_CREATED)
async def create_batch(
    body: BatchCreate,
    engine: BatchWorkflowEngine = Depends(get_workflow_engine),
    actor: str | None = Depends(get_actor),
):
    batch = await engine.create_batch(
        body.order_id,
        body.qty_bottle_planned,
        actor=actor,
        planned_start=body.planned_start,
        priority_index=body.priority_index,
    )
    return await _detail(engine, batch)


@router.post("/merge", response_model=BatchDetailOut)
async def merge_batches(
    body: MergeRequest,
    engine: BatchWorkflowEngine = Depends(get_workflow_engine),
    actor: str | None = Depends(get_actor),
):
    merged = await engine.merge_batches(body.batch_ids, actor=actor)
    return await _detail(engine, merged)


@router.get("/{batch_id}", response_model=BatchDetailOut)
async def get_batch(batch_id: str, engine: BatchWorkflowEngine = Depends(get_workflow_engine)):
    batch = await require(engine.store, ProductionBatch, batch_id)
    return await _detail(engine, batch)


@router.delete("/{batch_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_batch(
    batch_id: str,
    engine: BatchWorkflowEngine = Depends(get_workflow_engine),
    actor: str | None = Depends(get_actor),
):
    await engine.delete_batch(batch_id, actor=actor)


# ── Workflow steps ───────────────────────────────────────────

@router.post("/{batch_id}/steps/{step_id}/start", response_model=StepResultOut)
async def start_step(
    batch_id: str,
    step_id: str,
    body: StepStartRequest,
    engine: BatchWorkflowEngine = Depends(get_workflow_engine),
):
    return _step_response(await engine.start_step(batch_id, step_id, body.operator_id))


@router.post("/{batch_id}/steps/{step_id}/complete", response_model=StepResultOut)
async def complete_step(
    batch_id: str,
    step_id: str,
    engine: BatchWorkflowEngine = Depends(get_workflow_engine),
    actor: str | None = Depends(get_actor),
):
    return _step_response(await engine.complete_step(batch_id, step_id, actor=actor))


# ── Quantities / split ───────────────────────────────────────

@router.put("/{batch_id}/quantities", response_model=BatchOut)
async def record_quantities(
    batch_id: str,
    body: QuantitiesUpdate,
    engine: BatchWorkflowEngine = Depends(get_workflow_engine),
    actor: str | None = Depends(get_actor),
):
    batch = await engine.record_quantities(
        batch_id, body.qty_bottle_good, body.qty_bottle_scrap, actor=actor,
    )
    return BatchOut.model_validate(batch)


@router.post("/{batch_id}/split", response_model=SplitResultOut, status_code=status.HTTP_201_CREATED)
async def split_batch(
    batch_id: str,
    body: SplitRequest,
    engine: BatchWorkflowEngine = Depends(get_workflow_engine),
    actor: str | None = Depends(get_actor),
):
    children = await engine.split_batch(batch_id, body.quantities, actor=actor)
    return SplitResultOut(
        source_batch_id=batch_id,
        batches=[BatchOut.model_validate(c) for c in children],
    )


# ── Hold / resume ────────────────────────────────────────────

@router.post("/{batch_id}/hold", response_model=BatchOut)
async def hold_batch(
    batch_id: str,
    body: HoldRequest,
    engine: BatchWorkflowEngine = Depends(get_workflow_engine),
    actor: str | None = Depends(get_actor),
):
    return BatchOut.model_validate(await engine.hold_batch(batch_id, body.reason, actor=actor))


@router.post("/{batch_id}/resume", response_model=BatchOut)
async def resume_batch(
    batch_id: str,
    engine: BatchWorkflowEngine = Depends(get_workflow_engine),
    actor: str | None = Depends(get_actor),
):
    return BatchOut.model_validate(await engine.resume_batch(batch_id, actor=actor))
