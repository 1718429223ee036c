"""Pydantic schemas for production batches and workflow steps."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator


# ── Create ───────────────────────────────────────────────────

class BatchCreate(BaseModel):
    order_id: str
    qty_bottle_planned: int = Field(..., gt=0)
    planned_start: datetime | None = None
    priority_index: int = 0


# ── Step actions ─────────────────────────────────────────────

class StepStartRequest(BaseModel):
    operator_id: str


class QuantitiesUpdate(BaseModel):
    qty_bottle_good: int = Field(..., ge=0)
    qty_bottle_scrap: int = Field(0, ge=0)


class SplitRequest(BaseModel):
    """Split one queued batch into several; quantities must add up to
    the source batch's planned quantity."""
    quantities: list[int] = Field(..., min_length=2)

    @model_validator(mode="after")
    def quantities_positive(self):
        if any(q <= 0 for q in self.quantities):
            raise ValueError("Every split quantity must be greater than zero")
        return self


class MergeRequest(BaseModel):
    """The first id is the target batch; the rest are merged into it."""
    batch_ids: list[str] = Field(..., min_length=2)


class HoldRequest(BaseModel):
    reason: str = Field(..., min_length=1)


# ── Response ─────────────────────────────────────────────────

class WorkflowStepOut(BaseModel):
    id: str
    batch_id: str
    step: str
    position: int
    status: str
    operator_id: str | None
    started_at: datetime | None
    finished_at: datetime | None

    model_config = {"from_attributes": True}


class BatchOut(BaseModel):
    id: str
    uid: str
    human_uid: str
    so_id: str
    status: str
    hold_reason: str | None
    qty_bottle_planned: int
    qty_bottle_good: int
    qty_bottle_scrap: int
    priority_index: int
    planned_start: datetime | None
    actual_start: datetime | None
    actual_finish: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class BatchDetailOut(BatchOut):
    steps: list[WorkflowStepOut] = []
    step_progress: float
    bottle_progress: float


class StepResultOut(BaseModel):
    step: WorkflowStepOut
    batch: BatchOut
    order_production_complete: bool


class SplitResultOut(BaseModel):
    source_batch_id: str
    batches: list[BatchOut]
