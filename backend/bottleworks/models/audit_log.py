"""AuditLog — immutable trail of status changes and production actions.

Records who did what to which entity, with before/after snapshots.
Status overrides carry the staff justification note in ``after``.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from bottleworks.database import Base


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # ── Target ─────────────────────────────────────────────────
    # sales_order | production_batch | workflow_step | payment
    entity: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[str | None] = mapped_column(String(36), index=True)

    # ── What / who ─────────────────────────────────────────────
    # status_changed | status_changed_override | created | deleted |
    # split | merged | step_started | step_completed | held | resumed | ...
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    actor_id: Mapped[str | None] = mapped_column(String(36))

    before: Mapped[dict | None] = mapped_column(JSON)
    after: Mapped[dict | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )
