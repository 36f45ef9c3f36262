"""make ledger entries and processed-event markers append-only

Revision ID: 0002_ledger_append_only
Revises: 0001_ledger
Create Date: 2026-10-13
"""

from alembic import op


revision = "0002_ledger_append_only"
down_revision = "0001_ledger"
branch_labels = None
depends_on = None

APPEND_ONLY_TABLES = ("ledger_entries", "processed_events")


def upgrade() -> None:
    op.execute(
        """
        CREATE OR REPLACE FUNCTION reject_payroll_ledger_mutation()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
            RAISE EXCEPTION '% is append-only; % is not allowed', TG_TABLE_NAME, TG_OP;
        END;
        $$;
        """
    )
    for table in APPEND_ONLY_TABLES:
        op.execute(
            f"""
            CREATE TRIGGER trg_{table}_append_only
            BEFORE UPDATE OR DELETE ON {table}
            FOR EACH ROW
            EXECUTE FUNCTION reject_payroll_ledger_mutation();
            """
        )


def downgrade() -> None:
    for table in APPEND_ONLY_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS trg_{table}_append_only ON {table};")
    op.execute("DROP FUNCTION IF EXISTS reject_payroll_ledger_mutation();")
