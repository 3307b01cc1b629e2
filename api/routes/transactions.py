"""
Transaction monitoring route.

The checkout page posts the hash it just broadcast; from here on the intent
belongs to the monitor.
"""

import structlog
from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from api.schemas import StartMonitoringRequest, StartMonitoringResponse
from core.dependencies import get_monitor, get_store
from core.errors import (
    ChainMismatch,
    PaymentIntentNotFound,
    PaymentIntentTerminal,
    UnsupportedChain,
)
from db.store import PaymentIntentStore
from payments.monitor import TransactionMonitor

log = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/monitor", response_model=StartMonitoringResponse)
async def start_monitoring(
    body: StartMonitoringRequest,
    store: PaymentIntentStore = Depends(get_store),
    monitor: TransactionMonitor = Depends(get_monitor),
):
    # Reject unknown chains before touching the intent
    if not monitor.pool.supports(body.chain_id):
        raise UnsupportedChain(body.chain_id)

    intent = await run_in_threadpool(store.get_payment_intent, body.payment_intent_id)
    if intent is None:
        raise PaymentIntentNotFound(body.payment_intent_id)

    # A transfer on another chain never pays this intent, whatever it carries
    if body.chain_id != intent.chain_id:
        log.warning(
            "monitor.chain_mismatch",
            payment_intent_id=intent.id,
            expected_chain_id=intent.chain_id,
            submitted_chain_id=body.chain_id,
        )
        raise ChainMismatch(intent.id, intent.chain_id, body.chain_id)

    attached = await run_in_threadpool(
        store.attach_tx_hash, body.payment_intent_id, body.tx_hash
    )
    if not attached:
        raise PaymentIntentTerminal(body.payment_intent_id, intent.status.value)

    await monitor.start_monitoring(body.payment_intent_id, body.tx_hash, body.chain_id)

    return StartMonitoringResponse(
        success=True, message="Transaction monitoring started"
    )
