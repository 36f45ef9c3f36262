"""initial invoicing schema

Revision ID: 0001_invoicing
Revises:
Create Date: 2026-10-12
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_invoicing"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "invoices",
        sa.Column("invoice_id", sa.String(), nullable=False),
        sa.Column("invoice_seq", sa.Integer(), nullable=False),
        sa.Column("invoice_number", sa.String(), nullable=False),
        sa.Column("client_id", sa.String(), nullable=False),
        sa.Column("client_name", sa.String(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("total_escort_days", sa.Numeric(14, 2), nullable=False),
        sa.Column("escort_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_guard_days", sa.Integer(), nullable=False),
        sa.Column("guard_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_labor_hours", sa.Numeric(14, 2), nullable=False),
        sa.Column("labor_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("subtotal", sa.Numeric(14, 2), nullable=False),
        sa.Column("vat_percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("vat_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("state_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.Date(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("invoice_id"),
        sa.UniqueConstraint("invoice_seq", name="uq_invoices_invoice_seq"),
        sa.CheckConstraint("period_start <= period_end", name="ck_invoices_period_order"),
        sa.CheckConstraint("status IN ('Draft', 'Finalized', 'Paid')", name="ck_invoices_status"),
    )
    op.create_index("ix_invoices_invoice_number", "invoices", ["invoice_number"], unique=True)
    op.create_index("ix_invoices_client_id", "invoices", ["client_id"])
    op.create_index("ix_invoices_status", "invoices", ["status"])

    op.create_table(
        "invoice_counters",
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("name"),
    )

    op.create_table(
        "invoice_timeline",
        sa.Column("timeline_id", sa.String(), nullable=False),
        sa.Column("invoice_id", sa.String(), nullable=False),
        sa.Column("invoice_number", sa.String(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("from_state", sa.String(), nullable=True),
        sa.Column("to_state", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("timeline_id"),
    )
    op.create_index("ix_invoice_timeline_invoice_id", "invoice_timeline", ["invoice_id"])

    op.create_table(
        "invoice_outbox_events",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("aggregate_type", sa.String(), nullable=False),
        sa.Column("aggregate_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("topic", sa.String(), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_invoice_outbox_events_aggregate_id", "invoice_outbox_events", ["aggregate_id"])
    op.create_index("ix_invoice_outbox_events_event_type", "invoice_outbox_events", ["event_type"])
    op.create_index("ix_invoice_outbox_events_status", "invoice_outbox_events", ["status"])
    op.create_index(
        "ix_invoice_outbox_events_status_created_at",
        "invoice_outbox_events",
        ["status", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_invoice_outbox_events_status_created_at", table_name="invoice_outbox_events")
    op.drop_index("ix_invoice_outbox_events_status", table_name="invoice_outbox_events")
    op.drop_index("ix_invoice_outbox_events_event_type", table_name="invoice_outbox_events")
    op.drop_index("ix_invoice_outbox_events_aggregate_id", table_name="invoice_outbox_events")
    op.drop_table("invoice_outbox_events")
    op.drop_index("ix_invoice_timeline_invoice_id", table_name="invoice_timeline")
    op.drop_table("invoice_timeline")
    op.drop_table("invoice_counters")
    op.drop_index("ix_invoices_status", table_name="invoices")
    op.drop_index("ix_invoices_client_id", table_name="invoices")
    op.drop_index("ix_invoices_invoice_number", table_name="invoices")
    op.drop_table("invoices")
