"""Initial schema — orders, production batches, workflow steps, payments, audit.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-17

Run with:
    alembic upgrade head
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    # ── Orders ───────────────────────────────────────────────

    op.create_table(
        "sales_orders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("human_uid", sa.String(50), nullable=False, unique=True),
        sa.Column("quote_link_token", sa.String(64), nullable=False, unique=True),
        sa.Column("status", sa.String(30), nullable=False, server_default="draft"),
        sa.Column("hold_reason", sa.Text()),
        sa.Column("subtotal", sa.Float(), nullable=False, server_default="0"),
        sa.Column("deposit_required", sa.Boolean(), server_default="false"),
        sa.Column("deposit_amount", sa.Float()),
        sa.Column("deposit_status", sa.String(20), nullable=False, server_default="unpaid"),
        sa.Column("quote_expires_at", sa.DateTime()),
        sa.Column("promised_date", sa.Date()),
        sa.Column("eta_date", sa.Date()),
        sa.Column("label_required", sa.Boolean(), server_default="true"),
        sa.Column("is_internal", sa.Boolean(), server_default="false"),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_sales_orders_human_uid", "sales_orders", ["human_uid"])
    op.create_index("ix_sales_orders_status", "sales_orders", ["status"])
    op.create_index("ix_sales_orders_created_at", "sales_orders", ["created_at"])

    # ── Production ───────────────────────────────────────────

    op.create_table(
        "production_batches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("uid", sa.String(50), nullable=False, unique=True),
        sa.Column("human_uid", sa.String(50), nullable=False),
        sa.Column("so_id", sa.String(36), sa.ForeignKey("sales_orders.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="queued"),
        sa.Column("hold_reason", sa.Text()),
        sa.Column("qty_bottle_planned", sa.Integer(), nullable=False),
        sa.Column("qty_bottle_good", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("qty_bottle_scrap", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("priority_index", sa.Integer(), server_default="0"),
        sa.Column("planned_start", sa.DateTime()),
        sa.Column("actual_start", sa.DateTime()),
        sa.Column("actual_finish", sa.DateTime()),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint(
            "qty_bottle_good + qty_bottle_scrap <= qty_bottle_planned",
            name="ck_production_batches_qty_within_planned",
        ),
    )
    op.create_index("ix_production_batches_uid", "production_batches", ["uid"])
    op.create_index("ix_production_batches_so_id", "production_batches", ["so_id"])
    op.create_index("ix_production_batches_status", "production_batches", ["status"])
    op.create_index("ix_production_batches_created_at", "production_batches", ["created_at"])

    op.create_table(
        "workflow_steps",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "batch_id", sa.String(36),
            sa.ForeignKey("production_batches.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("step", sa.String(20), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("operator_id", sa.String(36)),
        sa.Column("started_at", sa.DateTime()),
        sa.Column("finished_at", sa.DateTime()),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("batch_id", "step", name="uq_workflow_steps_batch_step"),
    )
    op.create_index("ix_workflow_steps_batch_id", "workflow_steps", ["batch_id"])

    # ── Payments ─────────────────────────────────────────────

    op.create_table(
        "invoices",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("so_id", sa.String(36), sa.ForeignKey("sales_orders.id"), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), server_default="unpaid"),
        sa.Column("total", sa.Float(), nullable=False),
        sa.Column("paid_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_invoices_so_id", "invoices", ["so_id"])
    op.create_index("ix_invoices_status", "invoices", ["status"])
    op.create_index("ix_invoices_created_at", "invoices", ["created_at"])

    op.create_table(
        "payment_transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("so_id", sa.String(36), sa.ForeignKey("sales_orders.id"), nullable=False),
        sa.Column("capture_id", sa.String(100), nullable=False, unique=True),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("payment_method", sa.String(30), nullable=False),
        sa.Column("payment_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), server_default="completed"),
        sa.Column("customer_email", sa.String(255)),
        sa.Column("metadata", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_payment_transactions_so_id", "payment_transactions", ["so_id"])
    op.create_index("ix_payment_transactions_created_at", "payment_transactions", ["created_at"])

    # ── Audit ────────────────────────────────────────────────

    op.create_table(
        "audit_log",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("entity", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36)),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("actor_id", sa.String(36)),
        sa.Column("before", sa.JSON()),
        sa.Column("after", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_log_entity", "audit_log", ["entity"])
    op.create_index("ix_audit_log_entity_id", "audit_log", ["entity_id"])
    op.create_index("ix_audit_log_action", "audit_log", ["action"])
    op.create_index("ix_audit_log_created_at", "audit_log", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("payment_transactions")
    op.drop_table("invoices")
    op.drop_table("workflow_steps")
    op.drop_table("production_batches")
    op.drop_table("sales_orders")
