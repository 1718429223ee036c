"""FastAPI dependencies wiring the services to the request session.

Dependencies:
  get_actor            → staff identity from the ``X-Actor-Id`` header
  get_notifier         → webhook notifier from settings
  get_state_machine    → OrderStateMachine on the request session
  get_workflow_engine  → BatchWorkflowEngine on the request session
  get_payment_service  → PaymentService on the request session

Tests override ``get_db`` / ``get_validator`` / ``get_notifier`` through
``app.dependency_overrides``.
"""

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from bottleworks.config import settings
from bottleworks.database import get_db
from bottleworks.services.audit import SqlAuditSink
from bottleworks.services.notifier import Notifier, WebhookNotifier
from bottleworks.services.orders import OrderStateMachine
from bottleworks.services.payments import PaymentService
from bottleworks.services.store import SqlStore
from bottleworks.services.validator import SqlTransitionValidator, TransitionValidator
from bottleworks.services.workflow import BatchWorkflowEngine
from bottleworks.utils.numbering import CodeGenerator


async def get_actor(x_actor_id: str | None = Header(None)) -> str | None:
    return x_actor_id


def get_validator(db: AsyncSession = Depends(get_db)) -> TransitionValidator:
    return SqlTransitionValidator(db)


def get_notifier() -> Notifier:
    return WebhookNotifier(
        settings.notification_webhook_url,
        timeout=settings.notification_timeout_seconds,
    )


def get_state_machine(
    db: AsyncSession = Depends(get_db),
    validator: TransitionValidator = Depends(get_validator),
    notifier: Notifier = Depends(get_notifier),
) -> OrderStateMachine:
    return OrderStateMachine(
        SqlStore(db), validator, SqlAuditSink(db), notifier, CodeGenerator(db),
    )


def get_workflow_engine(db: AsyncSession = Depends(get_db)) -> BatchWorkflowEngine:
    return BatchWorkflowEngine(SqlStore(db), SqlAuditSink(db), CodeGenerator(db))


def get_payment_service(db: AsyncSession = Depends(get_db)) -> PaymentService:
    return PaymentService(SqlStore(db), SqlAuditSink(db))


def get_store(db: AsyncSession = Depends(get_db)) -> SqlStore:
    return SqlStore(db)
