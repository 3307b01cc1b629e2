"""
Payment intent routes: initialization by the checkout page and status reads.
"""

import structlog
from fastapi import APIRouter, Depends, Query
from starlette.concurrency import run_in_threadpool

from api.schemas import (
    ButtonSummary,
    PaymentInitRequest,
    PaymentInitResponse,
    PaymentIntentOut,
    TransactionData,
)
from core.dependencies import get_store
from core.errors import ButtonNotFound, PaymentIntentNotFound
from core.logging import BusinessEvents
from db.models import Button
from db.store import PaymentIntentStore

log = structlog.get_logger(__name__)

router = APIRouter()

# transfer(address,uint256)
ERC20_TRANSFER_SELECTOR = "0xa9059cbb"


def encode_erc20_transfer(recipient: str, amount: int) -> str:
    """ABI-encode calldata for an ERC-20 transfer call."""
    address = recipient.lower().removeprefix("0x")
    return ERC20_TRANSFER_SELECTOR + address.rjust(64, "0") + format(amount, "x").rjust(64, "0")


def build_transaction_data(button: Button) -> TransactionData:
    if button.token_address:
        return TransactionData(
            to=button.token_address,
            value="0",
            data=encode_erc20_transfer(button.merchant_address, int(button.amount)),
        )
    return TransactionData(to=button.merchant_address, value=button.amount, data="0x")


@router.post("/init", response_model=PaymentInitResponse)
async def init_payment(
    body: PaymentInitRequest,
    store: PaymentIntentStore = Depends(get_store),
):
    """Create a pending payment intent from an active button."""
    button = await run_in_threadpool(store.get_button, body.button_id, True)
    if button is None:
        raise ButtonNotFound(body.button_id)

    intent = await run_in_threadpool(
        store.create_payment_intent, button, body.customer_address
    )
    log.info(
        BusinessEvents.PAYMENT_INITIALIZED,
        payment_intent_id=intent.id,
        button_id=button.id,
        chain_id=button.chain_id,
    )

    return PaymentInitResponse(
        payment_intent_id=intent.id,
        transaction_data=build_transaction_data(button),
        button=ButtonSummary.model_validate(button),
    )


@router.get("/{payment_intent_id}/status", response_model=PaymentIntentOut)
async def get_payment_status(
    payment_intent_id: str,
    store: PaymentIntentStore = Depends(get_store),
):
    intent = await run_in_threadpool(store.get_payment_intent, payment_intent_id)
    if intent is None:
        raise PaymentIntentNotFound(payment_intent_id)
    return intent


@router.get("", response_model=list[PaymentIntentOut])
async def list_payments(
    merchant_id: str = Query(..., min_length=1),
    store: PaymentIntentStore = Depends(get_store),
):
    """Payments made through any of the merchant's buttons, newest first."""
    return await run_in_threadpool(store.list_payment_intents, merchant_id)
