"""Aggregate model imports for Alembic auto-detection."""

from bottleworks.models.order import DepositStatus, OrderStatus, SalesOrder  # noqa: F401
from bottleworks.models.batch import (  # noqa: F401
    STEP_SEQUENCE,
    BatchStatus,
    ProductionBatch,
    StepStatus,
    StepType,
    WorkflowStep,
)
from bottleworks.models.payment import Invoice, PaymentTransaction  # noqa: F401
from bottleworks.models.audit_log import AuditLog  # noqa: F401
