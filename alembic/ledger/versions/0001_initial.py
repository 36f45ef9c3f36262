"""initial payroll ledger schema

Revision ID: 0001_ledger
Revises:
Create Date: 2026-10-12
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_ledger"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "ledger_entries",
        sa.Column("entry_id", sa.String(), nullable=False),
        sa.Column("employee_id", sa.String(), nullable=False),
        sa.Column("employee_name", sa.String(), nullable=False),
        sa.Column("employee_seq", sa.Integer(), nullable=False),
        sa.Column("source_module", sa.String(), nullable=False),
        sa.Column("source_id", sa.String(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("month", sa.String(length=7), nullable=False),
        sa.Column("shift_or_hours", sa.String(), nullable=False),
        sa.Column("earned_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("deducted_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("net_change", sa.Numeric(14, 2), nullable=False),
        sa.Column("running_balance", sa.Numeric(14, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("entry_id"),
        sa.UniqueConstraint("source_module", "source_id", name="uq_ledger_entries_source"),
        sa.UniqueConstraint("employee_id", "employee_seq", name="uq_ledger_entries_employee_seq"),
        sa.CheckConstraint("earned_amount >= 0", name="ck_ledger_entries_earned_non_negative"),
        sa.CheckConstraint("deducted_amount >= 0", name="ck_ledger_entries_deducted_non_negative"),
    )
    op.create_index("ix_ledger_entries_employee_id", "ledger_entries", ["employee_id"])
    op.create_index("ix_ledger_entries_source_module", "ledger_entries", ["source_module"])
    op.create_index("ix_ledger_entries_month", "ledger_entries", ["month"])

    op.create_table(
        "processed_events",
        sa.Column("event_key", sa.String(), nullable=False),
        sa.Column("entry_id", sa.String(), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("event_key"),
    )
    op.create_index("ix_processed_events_entry_id", "processed_events", ["entry_id"])

    op.create_table(
        "employee_balances",
        sa.Column("employee_id", sa.String(), nullable=False),
        sa.Column("balance", sa.Numeric(14, 2), nullable=False),
        sa.Column("entry_count", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("employee_id"),
    )

    op.create_table(
        "ledger_outbox_events",
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
    op.create_index("ix_ledger_outbox_events_aggregate_id", "ledger_outbox_events", ["aggregate_id"])
    op.create_index("ix_ledger_outbox_events_event_type", "ledger_outbox_events", ["event_type"])
    op.create_index("ix_ledger_outbox_events_status", "ledger_outbox_events", ["status"])
    op.create_index(
        "ix_ledger_outbox_events_status_created_at",
        "ledger_outbox_events",
        ["status", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_ledger_outbox_events_status_created_at", table_name="ledger_outbox_events")
    op.drop_index("ix_ledger_outbox_events_status", table_name="ledger_outbox_events")
    op.drop_index("ix_ledger_outbox_events_event_type", table_name="ledger_outbox_events")
    op.drop_index("ix_ledger_outbox_events_aggregate_id", table_name="ledger_outbox_events")
    op.drop_table("ledger_outbox_events")
    op.drop_table("employee_balances")
    op.drop_index("ix_processed_events_entry_id", table_name="processed_events")
    op.drop_table("processed_events")
    op.drop_index("ix_ledger_entries_month", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_source_module", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_employee_id", table_name="ledger_entries")
    op.drop_table("ledger_entries")
