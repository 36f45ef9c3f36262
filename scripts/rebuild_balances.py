"""Recompute the employee balance index by replaying the ledger.

Run against the ledger database after restoring a backup or repairing data:

    DATABASE_URL=postgresql+psycopg://... API_KEY=... python scripts/rebuild_balances.py
"""

from payledger.common.db import SessionLocal
from payledger.common.logging import configure_logging, logger
from payledger.services.ledger.store import LedgerStore


def main() -> None:
    configure_logging()
    with SessionLocal() as db:
        employees = LedgerStore(db).rebuild_indexes()
        db.commit()
    logger.info("employee_balances_rebuilt employees=%s", employees)


if __name__ == "__main__":
    main()
