"""
Database Models Module

This module defines SQLAlchemy ORM models for:
- Merchants and their webhook registration
- Payment buttons
- Payment intents (hash-submitted payments watched by the monitor)
- Customer profiles (payers known by crypto id in the pull flow)
- Pull transactions (legacy flow keyed by customer profile)
"""

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Enum,
    Numeric,
    Index,
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime, UTC
from enum import Enum as PyEnum

Base = declarative_base()

# uint256 needs up to 78 decimal digits
AMOUNT_LENGTH = 78


class Merchant(Base):
    """Merchant account; owns buttons and the webhook endpoint."""

    __tablename__ = "merchants"

    id = Column(String(64), primary_key=True)  # external account id
    email = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    wallet_address = Column(String(42))
    webhook_url = Column(String(2048))
    webhook_secret = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    buttons = relationship("Button", back_populates="merchant")

    def __repr__(self):
        return f"<Merchant(id={self.id}, webhook_url={self.webhook_url})>"


class Button(Base):
    """Payment button configuration created by a merchant."""

    __tablename__ = "buttons"

    id = Column(String(64), primary_key=True)
    merchant_id = Column(String(64), ForeignKey("merchants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    amount = Column(String(AMOUNT_LENGTH), nullable=False)  # wei or token base units
    token_address = Column(String(42))  # None for the native asset
    chain_id = Column(Integer, nullable=False)
    merchant_address = Column(String(42), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    merchant = relationship("Merchant", back_populates="buttons")

    def __repr__(self):
        return f"<Button(id={self.id}, chain_id={self.chain_id}, active={self.is_active})>"


class PaymentIntentStatus(PyEnum):
    pending = "pending"
    processing = "processing"
    confirmed = "confirmed"
    failed = "failed"


TERMINAL_STATUSES = (PaymentIntentStatus.confirmed, PaymentIntentStatus.failed)


class PaymentIntent(Base):
    """A customer's payment against a button, from init to terminal state."""

    __tablename__ = "payment_intents"
    __table_args__ = (Index("ix_payment_intents_button_status", "button_id", "status"),)

    id = Column(String(36), primary_key=True)
    button_id = Column(String(64), ForeignKey("buttons.id"), nullable=False)
    amount = Column(String(AMOUNT_LENGTH), nullable=False)
    token_address = Column(String(42))
    chain_id = Column(Integer, nullable=False)
    merchant_address = Column(String(42), nullable=False)
    customer_address = Column(String(42))
    transaction_hash = Column(String(66))
    status = Column(
        Enum(PaymentIntentStatus),
        nullable=False,
        default=PaymentIntentStatus.pending,
    )
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )
    confirmed_at = Column(DateTime(timezone=True))

    @property
    def expected_amount(self) -> int:
        return int(self.amount)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self):
        return f"<PaymentIntent(id={self.id}, status={self.status})>"


class CustomerProfile(Base):
    """Payer in the pull flow, addressed by crypto id and reached by email."""

    __tablename__ = "customer_profiles"

    id = Column(Integer, primary_key=True)
    crypto_id = Column(String(64), nullable=False, unique=True)
    email = Column(String(255), nullable=False)
    name = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    def __repr__(self):
        return f"<CustomerProfile(id={self.id}, crypto_id={self.crypto_id})>"


class PullTransactionStatus(PyEnum):
    pending = "pending"
    success = "success"
    failed = "failed"


class PullTransaction(Base):
    """Legacy two-party transaction where the customer is known by profile."""

    __tablename__ = "pull_transactions"
    __table_args__ = (Index("ix_pull_transactions_sender_created", "sender", "created_at"),)

    id = Column(Integer, primary_key=True)
    sender = Column(String(255), nullable=False)
    recipient = Column(String(42), nullable=False)
    signature = Column(String(255), nullable=False, default="")
    button_id = Column(String(64), ForeignKey("buttons.id"))
    amount_usd = Column(Numeric(12, 2), nullable=False)
    status = Column(
        Enum(PullTransactionStatus),
        nullable=False,
        default=PullTransactionStatus.pending,
    )
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    def __repr__(self):
        return f"<PullTransaction(id={self.id}, sender={self.sender}, status={self.status})>"
