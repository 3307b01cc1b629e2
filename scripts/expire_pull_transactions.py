#!/usr/bin/env python3
"""
Fail pending pull transactions that outlived the TTL.
Reads already expire records lazily; run this as a cron job to keep the table
itself clean for reporting.
"""

import sys
import os
from datetime import timedelta

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from core.dependencies import get_settings, init_settings  # noqa: E402
from payments.reaper import sweep_stale_pull_transactions  # noqa: E402
import structlog  # noqa: E402

log = structlog.get_logger(__name__)


def expire_pull_transactions():
    init_settings()
    settings = get_settings()
    engine = create_engine(settings.DATABASE_URL)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = SessionLocal()

    try:
        count = sweep_stale_pull_transactions(
            db, ttl=timedelta(seconds=settings.PULL_TRANSACTION_TTL_SECONDS)
        )
        if not count:
            print("✅ No stale pull transactions found")
        else:
            print(f"✅ Marked {count} stale pull transactions as failed")

    except Exception as e:
        db.rollback()
        log.error("pull_transaction.sweep_failed", error=str(e))
        print(f"❌ Error expiring pull transactions: {e}")
        raise
    finally:
        db.close()
        engine.dispose()


if __name__ == "__main__":
    expire_pull_transactions()
