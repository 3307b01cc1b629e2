"""
Legacy pull-flow transaction routes.

The customer is identified by profile rather than by a submitted hash, so
nothing ever watches these records; every read expires stale pending ones.
"""

from datetime import timedelta

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session

from api.schemas import (
    PullTransactionCreate,
    PullTransactionOut,
    PullTransactionStatusOut,
)
from core.dependencies import get_mailer, get_settings
from core.errors import ButtonNotFound, CustomerProfileNotFound, PullTransactionNotFound
from core.logging import BusinessEvents
from core.settings import Settings
from db.models import Button, CustomerProfile, PullTransaction, PullTransactionStatus
from db.session import get_db
from notifications.mailer import PaymentRequestMailer
from payments.reaper import expire_if_stale, expire_stale, is_recent

log = structlog.get_logger(__name__)

router = APIRouter()


def get_ttl(settings: Settings = Depends(get_settings)) -> timedelta:
    return timedelta(seconds=settings.PULL_TRANSACTION_TTL_SECONDS)


def _load(db: Session, transaction_id: int, ttl: timedelta) -> PullTransaction:
    transaction = db.get(PullTransaction, transaction_id)
    if transaction is None:
        raise PullTransactionNotFound(transaction_id)
    return expire_if_stale(db, transaction, ttl=ttl)


@router.post("", response_model=PullTransactionOut)
def create_pull_transaction(
    body: PullTransactionCreate,
    db: Session = Depends(get_db),
    mailer: PaymentRequestMailer = Depends(get_mailer),
):
    """Record a payment request for a profile and email them the pay link."""
    button = db.get(Button, body.button_id)
    if button is None:
        raise ButtonNotFound(body.button_id)

    profile = (
        db.query(CustomerProfile)
        .filter(CustomerProfile.crypto_id == body.crypto_id)
        .first()
    )
    if profile is None:
        raise CustomerProfileNotFound(body.crypto_id)

    transaction = PullTransaction(
        sender=profile.email,
        recipient=button.merchant_address,
        signature="",
        button_id=button.id,
        amount_usd=body.amount_usd,
        status=PullTransactionStatus.pending,
    )
    db.add(transaction)
    db.commit()
    db.refresh(transaction)

    log.info(
        BusinessEvents.PULL_TRANSACTION_CREATED,
        transaction_id=transaction.id,
        button_id=button.id,
    )

    # The request stands even when the email does not go out
    mailer.send_payment_request(profile.email, transaction.amount_usd, transaction.id)
    return PullTransactionOut.model_validate(transaction)


@router.get("/latest", response_model=PullTransactionOut)
def get_latest_pull_transaction(
    sender: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    ttl: timedelta = Depends(get_ttl),
):
    """The sender's most recent transaction, if it is still inside the TTL."""
    transactions = (
        db.query(PullTransaction)
        .filter(PullTransaction.sender == sender)
        .order_by(desc(PullTransaction.created_at))
        .all()
    )
    transactions = expire_stale(db, transactions, ttl=ttl)
    if not transactions or not is_recent(transactions[0], ttl=ttl):
        raise HTTPException(status_code=404, detail="No active transaction")
    return PullTransactionOut.model_validate(transactions[0])


@router.get("", response_model=list[PullTransactionOut])
def list_pull_transactions(
    sender: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    ttl: timedelta = Depends(get_ttl),
):
    transactions = (
        db.query(PullTransaction)
        .filter(PullTransaction.sender == sender)
        .order_by(desc(PullTransaction.created_at))
        .all()
    )
    return [
        PullTransactionOut.model_validate(t)
        for t in expire_stale(db, transactions, ttl=ttl)
    ]


@router.get("/{transaction_id}", response_model=PullTransactionOut)
def get_pull_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    ttl: timedelta = Depends(get_ttl),
):
    return PullTransactionOut.model_validate(_load(db, transaction_id, ttl))


@router.get("/{transaction_id}/status", response_model=PullTransactionStatusOut)
def get_pull_transaction_status(
    transaction_id: int,
    db: Session = Depends(get_db),
    ttl: timedelta = Depends(get_ttl),
):
    transaction = _load(db, transaction_id, ttl)
    return PullTransactionStatusOut(status=transaction.status)
