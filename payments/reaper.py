"""
Stale pull-transaction expiry.

Pull transactions that stay pending past the TTL are failed. Reads go through
expire_if_stale / expire_stale, which write the new status before returning,
so a pending record older than the TTL is never handed out as pending. The
same rule is applied in bulk by sweep_stale_pull_transactions for cron use.
"""

from datetime import UTC, datetime, timedelta

import structlog
from sqlalchemy import update
from sqlalchemy.orm import Session

from core.logging import BusinessEvents
from db.models import PullTransaction, PullTransactionStatus

log = structlog.get_logger(__name__)

DEFAULT_TTL = timedelta(minutes=10)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def is_stale(
    transaction: PullTransaction,
    now: datetime | None = None,
    ttl: timedelta = DEFAULT_TTL,
) -> bool:
    if transaction.status != PullTransactionStatus.pending:
        return False
    now = now or datetime.now(UTC)
    return now - _as_utc(transaction.created_at) > ttl


def is_recent(
    transaction: PullTransaction,
    now: datetime | None = None,
    ttl: timedelta = DEFAULT_TTL,
) -> bool:
    now = now or datetime.now(UTC)
    return now - _as_utc(transaction.created_at) < ttl


def expire_if_stale(
    db: Session,
    transaction: PullTransaction,
    now: datetime | None = None,
    ttl: timedelta = DEFAULT_TTL,
) -> PullTransaction:
    if is_stale(transaction, now, ttl):
        transaction.status = PullTransactionStatus.failed
        db.commit()
        log.info(
            BusinessEvents.PULL_TRANSACTION_EXPIRED,
            transaction_id=transaction.id,
            sender=transaction.sender,
        )
    return transaction


def expire_stale(
    db: Session,
    transactions: list[PullTransaction],
    now: datetime | None = None,
    ttl: timedelta = DEFAULT_TTL,
) -> list[PullTransaction]:
    now = now or datetime.now(UTC)
    expired = [t for t in transactions if is_stale(t, now, ttl)]
    for transaction in expired:
        transaction.status = PullTransactionStatus.failed
    if expired:
        db.commit()
        log.info(
            BusinessEvents.PULL_TRANSACTION_EXPIRED,
            transaction_ids=[t.id for t in expired],
        )
    return transactions


def sweep_stale_pull_transactions(
    db: Session,
    now: datetime | None = None,
    ttl: timedelta = DEFAULT_TTL,
) -> int:
    """Fail every pending pull transaction older than the TTL. Returns the count."""
    cutoff = (now or datetime.now(UTC)) - ttl
    result = db.execute(
        update(PullTransaction)
        .where(
            PullTransaction.status == PullTransactionStatus.pending,
            PullTransaction.created_at < cutoff,
        )
        .values(status=PullTransactionStatus.failed)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        log.info(BusinessEvents.PULL_TRANSACTION_EXPIRED, count=result.rowcount)
    return result.rowcount
