"""ProductionBatch and WorkflowStep — the production pipeline.

A batch is one production run of a fixed planned bottle quantity for a
single order.  It moves through an ordered set of workflow steps:

    produce → bottle_cap → label → pack

(``label`` is skipped for orders that do not require labels.)

Batch lifecycle:  queued → wip → complete, with hold ↔ wip for
materials / quality issues.  Step lifecycle:  pending → wip → done.

The batch status is always re-derivable from its steps; see
``bottleworks.services.workflow.derive_batch_status``.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bottleworks.database import Base


class BatchStatus(str, enum.Enum):
    QUEUED = "queued"
    WIP = "wip"
    HOLD = "hold"
    COMPLETE = "complete"


class StepStatus(str, enum.Enum):
    PENDING = "pending"
    WIP = "wip"
    DONE = "done"


class StepType(str, enum.Enum):
    PRODUCE = "produce"
    BOTTLE_CAP = "bottle_cap"
    LABEL = "label"
    PACK = "pack"


# Fixed processing order
STEP_SEQUENCE: tuple[StepType, ...] = (
    StepType.PRODUCE,
    StepType.BOTTLE_CAP,
    StepType.LABEL,
    StepType.PACK,
)


class ProductionBatch(Base):
    __tablename__ = "production_batches"
    __table_args__ = (
        CheckConstraint(
            "qty_bottle_good + qty_bottle_scrap <= qty_bottle_planned",
            name="ck_production_batches_qty_within_planned",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # Scan code printed on the batch label
    uid: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    human_uid: Mapped[str] = mapped_column(String(50), nullable=False)

    so_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sales_orders.id"), nullable=False, index=True
    )

    # ── Status ───────────────────────────────────────────────
    # queued | wip | hold | complete
    status: Mapped[str] = mapped_column(
        String(20), default=BatchStatus.QUEUED.value, nullable=False, index=True
    )
    hold_reason: Mapped[str | None] = mapped_column(Text)

    # ── Quantities ───────────────────────────────────────────
    qty_bottle_planned: Mapped[int] = mapped_column(Integer, nullable=False)
    qty_bottle_good: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    qty_bottle_scrap: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # ── Scheduling ───────────────────────────────────────────
    # Higher runs first on the production queue
    priority_index: Mapped[int] = mapped_column(Integer, default=0)
    planned_start: Mapped[datetime | None] = mapped_column(DateTime)
    actual_start: Mapped[datetime | None] = mapped_column(DateTime)
    actual_finish: Mapped[datetime | None] = mapped_column(DateTime)

    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    order = relationship("SalesOrder", back_populates="batches")
    steps = relationship(
        "WorkflowStep", back_populates="batch",
        order_by="WorkflowStep.position",
        passive_deletes=True,
    )


class WorkflowStep(Base):
    __tablename__ = "workflow_steps"
    __table_args__ = (
        UniqueConstraint("batch_id", "step", name="uq_workflow_steps_batch_step"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    batch_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("production_batches.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # produce | bottle_cap | label | pack
    step: Mapped[str] = mapped_column(String(20), nullable=False)
    # Index into STEP_SEQUENCE, used for ordering
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    # pending | wip | done
    status: Mapped[str] = mapped_column(
        String(20), default=StepStatus.PENDING.value, nullable=False
    )

    operator_id: Mapped[str | None] = mapped_column(String(36))
    started_at: Mapped[datetime | None] = mapped_column(DateTime)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    batch = relationship("ProductionBatch", back_populates="steps")
