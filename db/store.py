"""
Payment Intent Store

Persistence for merchants, buttons and payment intents. Status writes are
single conditional UPDATE statements that refuse to touch an intent already in
a terminal state, so a stale or duplicate monitoring task can never overwrite
the outcome of the legitimate one.

All methods are synchronous; async callers go through run_in_threadpool.
"""

import uuid
from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from sqlalchemy import desc, select, update
from sqlalchemy.orm import Session, sessionmaker

from db.models import (
    TERMINAL_STATUSES,
    Button,
    Merchant,
    PaymentIntent,
    PaymentIntentStatus,
)

log = structlog.get_logger(__name__)


class PaymentIntentStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    @classmethod
    def from_engine(cls, engine) -> "PaymentIntentStore":
        return cls(sessionmaker(bind=engine, autoflush=False, expire_on_commit=False))

    # Reads

    def get_payment_intent(self, payment_intent_id: str) -> PaymentIntent | None:
        with self._session_factory() as session:
            return session.get(PaymentIntent, payment_intent_id)

    def get_button(self, button_id: str, active_only: bool = False) -> Button | None:
        with self._session_factory() as session:
            button = session.get(Button, button_id)
            if button is None or (active_only and not button.is_active):
                return None
            return button

    def get_merchant(self, merchant_id: str) -> Merchant | None:
        with self._session_factory() as session:
            return session.get(Merchant, merchant_id)

    def list_payment_intents(self, merchant_id: str) -> list[PaymentIntent]:
        """All intents created from the merchant's buttons, newest first."""
        with self._session_factory() as session:
            result = session.execute(
                select(PaymentIntent)
                .join(Button, Button.id == PaymentIntent.button_id)
                .where(Button.merchant_id == merchant_id)
                .order_by(desc(PaymentIntent.created_at))
            )
            return list(result.scalars().all())

    # Collaborator records

    def add_merchant(self, merchant: Merchant) -> Merchant:
        with self._session_factory() as session, session.begin():
            session.add(merchant)
        return merchant

    def add_button(self, button: Button) -> Button:
        with self._session_factory() as session, session.begin():
            session.add(button)
        return button

    # Intent lifecycle

    def create_payment_intent(
        self, button: Button, customer_address: str | None = None
    ) -> PaymentIntent:
        intent = PaymentIntent(
            id=str(uuid.uuid4()),
            button_id=button.id,
            amount=button.amount,
            token_address=button.token_address,
            chain_id=button.chain_id,
            merchant_address=button.merchant_address,
            customer_address=customer_address,
            status=PaymentIntentStatus.pending,
            created_at=datetime.now(UTC),
        )
        with self._session_factory() as session, session.begin():
            session.add(intent)
        return intent

    def attach_tx_hash(self, payment_intent_id: str, tx_hash: str) -> bool:
        """Record the submitted hash and move the intent to processing."""
        return self._transition(
            payment_intent_id,
            transaction_hash=tx_hash,
            status=PaymentIntentStatus.processing,
        )

    def mark_confirmed(self, payment_intent_id: str) -> bool:
        now = datetime.now(UTC)
        return self._transition(
            payment_intent_id,
            status=PaymentIntentStatus.confirmed,
            confirmed_at=now,
        )

    def mark_failed(self, payment_intent_id: str) -> bool:
        return self._transition(payment_intent_id, status=PaymentIntentStatus.failed)

    def _transition(self, payment_intent_id: str, **values) -> bool:
        values["updated_at"] = datetime.now(UTC)
        with self._session_factory() as session, session.begin():
            result = session.execute(
                update(PaymentIntent)
                .where(
                    PaymentIntent.id == payment_intent_id,
                    PaymentIntent.status.not_in(TERMINAL_STATUSES),
                )
                .values(**values)
            )
        if result.rowcount != 1:
            log.warning(
                "payment_intent.transition_skipped",
                payment_intent_id=payment_intent_id,
                target_status=values["status"].value,
            )
            return False
        return True
