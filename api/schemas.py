"""
API Schemas Module

This module defines Pydantic models for request/response validation.
Payloads use camelCase on the wire to match the checkout front end.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from db.models import PaymentIntentStatus, PullTransactionStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class StartMonitoringRequest(CamelModel):
    payment_intent_id: str = Field(min_length=1)
    tx_hash: str = Field(min_length=1)
    chain_id: int


class StartMonitoringResponse(CamelModel):
    success: bool
    message: str


class PaymentInitRequest(CamelModel):
    button_id: str = Field(min_length=1)
    customer_address: Optional[str] = None


class TransactionData(CamelModel):
    to: str
    value: str
    data: str


class ButtonSummary(CamelModel):
    name: str
    description: Optional[str] = None
    amount: str
    token_address: Optional[str] = None
    chain_id: int


class PaymentInitResponse(CamelModel):
    payment_intent_id: str
    transaction_data: TransactionData
    button: ButtonSummary


class PaymentIntentOut(CamelModel):
    id: str
    button_id: str
    status: PaymentIntentStatus
    amount: str
    token_address: Optional[str] = None
    chain_id: int
    merchant_address: str
    customer_address: Optional[str] = None
    transaction_hash: Optional[str] = None
    created_at: datetime
    confirmed_at: Optional[datetime] = None


class PullTransactionCreate(CamelModel):
    button_id: str
    crypto_id: str = Field(min_length=1)
    amount_usd: Decimal = Field(gt=0)


class PullTransactionOut(CamelModel):
    id: int
    sender: str
    recipient: str
    button_id: Optional[str] = None
    amount_usd: Decimal
    status: PullTransactionStatus
    created_at: datetime


class PullTransactionStatusOut(CamelModel):
    status: PullTransactionStatus


class WebhookReceipt(CamelModel):
    received: bool
