"""Audit trail writer.

Usage:
    await audit.record(
        "sales_order", order.id, "status_changed",
        actor=actor_id, before={"status": "in_queue"}, after={"status": "in_production"},
    )

Audit writes never block the operation that triggered them: the row is
written inside a SAVEPOINT and any database failure is logged and
dropped, leaving the outer transaction intact.
"""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bottleworks.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    async def record(
        self,
        entity: str,
        entity_id: str | None,
        action: str,
        *,
        actor: str | None = None,
        before: dict | None = None,
        after: dict | None = None,
    ) -> None: ...


class SqlAuditSink:
    """Writes AuditLog rows into the current DB session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        entity: str,
        entity_id: str | None,
        action: str,
        *,
        actor: str | None = None,
        before: dict | None = None,
        after: dict | None = None,
    ) -> None:
        entry = AuditLog(
            entity=entity,
            entity_id=entity_id,
            action=action,
            actor_id=actor,
            before=before,
            after=after,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(entry)
        except SQLAlchemyError:
            logger.exception(
                "Audit write failed: %s %s %s (actor=%s)",
                entity, entity_id, action, actor,
            )
