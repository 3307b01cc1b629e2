"""
Transaction Monitor

Watches a submitted transaction hash until it is mined, validates the receipt
once, records the terminal status and notifies the merchant.

Each in-flight payment intent gets its own asyncio task. Tasks are held in a
MonitoringRegistry built once per process and injected here; a task leaves the
registry's active map before it validates, so nothing can cancel or duplicate
it halfway through a terminal transition except process shutdown.
"""

import asyncio
import threading
import time
from dataclasses import dataclass, field

import structlog
from starlette.concurrency import run_in_threadpool

from core.logging import BusinessEvents
from core.metrics import confirmation_latency, monitoring_tasks_active, payments_total
from core.settings import Settings
from db.models import PaymentIntentStatus
from db.store import PaymentIntentStore
from payments.chain_client import ChainClient, ChainClientPool, Receipt
from payments.validator import validate_receipt
from webhooks.sender import WebhookDispatcher

log = structlog.get_logger(__name__)


@dataclass
class MonitoringTask:
    payment_intent_id: str
    chain_id: int
    tx_hash: str
    task: asyncio.Task
    started_at: float = field(default_factory=time.monotonic)

    def cancel(self) -> None:
        self.task.cancel()


class MonitoringRegistry:
    """Process-wide map of payment intent id to its single watcher task."""

    def __init__(self):
        self._lock = threading.Lock()
        self._active: dict[str, MonitoringTask] = {}
        self._finalizing: set[asyncio.Task] = set()

    def replace(self, entry: MonitoringTask) -> MonitoringTask | None:
        """Register entry, cancelling whatever was watching the same intent."""
        with self._lock:
            previous = self._active.pop(entry.payment_intent_id, None)
            self._active[entry.payment_intent_id] = entry
        if previous is not None:
            previous.cancel()
        return previous

    def remove(self, payment_intent_id: str) -> MonitoringTask | None:
        with self._lock:
            entry = self._active.pop(payment_intent_id, None)
        if entry is not None:
            entry.cancel()
        return entry

    def claim(self, payment_intent_id: str, task: asyncio.Task) -> bool:
        """Move a task that found its receipt out of the active map.

        Returns False when the task was already replaced or stopped.
        """
        with self._lock:
            entry = self._active.get(payment_intent_id)
            if entry is None or entry.task is not task:
                return False
            del self._active[payment_intent_id]
            self._finalizing.add(task)
            return True

    def finished(self, task: asyncio.Task) -> None:
        with self._lock:
            self._finalizing.discard(task)

    def drain(self) -> list[asyncio.Task]:
        """Cancel and forget every task, active or finalizing."""
        with self._lock:
            tasks = [entry.task for entry in self._active.values()]
            tasks.extend(self._finalizing)
            self._active.clear()
            self._finalizing.clear()
        for task in tasks:
            task.cancel()
        return tasks

    def get(self, payment_intent_id: str) -> MonitoringTask | None:
        with self._lock:
            return self._active.get(payment_intent_id)

    def __contains__(self, payment_intent_id: str) -> bool:
        with self._lock:
            return payment_intent_id in self._active

    def __len__(self) -> int:
        with self._lock:
            return len(self._active)


class TransactionMonitor:
    def __init__(
        self,
        pool: ChainClientPool,
        store: PaymentIntentStore,
        dispatcher: WebhookDispatcher,
        registry: MonitoringRegistry,
        poll_interval: float = 5.0,
        first_poll_delay: float = 1.0,
        rpc_timeout: float = 10.0,
    ):
        self.pool = pool
        self.store = store
        self.dispatcher = dispatcher
        self.registry = registry
        self.poll_interval = poll_interval
        self.first_poll_delay = first_poll_delay
        self.rpc_timeout = rpc_timeout

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        pool: ChainClientPool,
        store: PaymentIntentStore,
        dispatcher: WebhookDispatcher,
        registry: MonitoringRegistry,
    ) -> "TransactionMonitor":
        return cls(
            pool,
            store,
            dispatcher,
            registry,
            poll_interval=settings.MONITOR_POLL_INTERVAL_SECONDS,
            first_poll_delay=settings.MONITOR_FIRST_POLL_DELAY_SECONDS,
            rpc_timeout=settings.CHAIN_RPC_TIMEOUT_SECONDS,
        )

    async def start_monitoring(
        self, payment_intent_id: str, tx_hash: str, chain_id: int
    ) -> MonitoringTask:
        """
        Start watching tx_hash for the intent, replacing any existing watcher.

        Raises:
            UnsupportedChain: no client is configured for chain_id.
        """
        client = self.pool.get(chain_id)

        task = asyncio.create_task(
            self._watch(payment_intent_id, tx_hash, client),
            name=f"monitor:{payment_intent_id}",
        )
        entry = MonitoringTask(
            payment_intent_id=payment_intent_id,
            chain_id=chain_id,
            tx_hash=tx_hash,
            task=task,
        )
        previous = self.registry.replace(entry)
        monitoring_tasks_active.set(len(self.registry))

        log.info(
            BusinessEvents.MONITOR_STARTED,
            payment_intent_id=payment_intent_id,
            tx_hash=tx_hash,
            chain_id=chain_id,
            replaced=previous is not None,
        )
        return entry

    def stop_monitoring(self, payment_intent_id: str) -> bool:
        entry = self.registry.remove(payment_intent_id)
        monitoring_tasks_active.set(len(self.registry))
        if entry is None:
            return False
        log.info(BusinessEvents.MONITOR_STOPPED, payment_intent_id=payment_intent_id)
        return True

    async def stop_all(self) -> None:
        tasks = self.registry.drain()
        monitoring_tasks_active.set(0)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        log.info(BusinessEvents.MONITOR_STOPPED, cancelled=len(tasks))

    def is_monitoring(self, payment_intent_id: str) -> bool:
        return payment_intent_id in self.registry

    async def _watch(
        self, payment_intent_id: str, tx_hash: str, client: ChainClient
    ) -> None:
        started = time.monotonic()
        await asyncio.sleep(self.first_poll_delay)

        while True:
            receipt = await self._lookup_receipt(client, payment_intent_id, tx_hash)
            if receipt is not None:
                break
            await asyncio.sleep(self.poll_interval)

        current = asyncio.current_task()
        if not self.registry.claim(payment_intent_id, current):
            return

        try:
            confirmation_latency.observe(time.monotonic() - started)
            log.info(
                BusinessEvents.RECEIPT_FOUND,
                payment_intent_id=payment_intent_id,
                tx_hash=tx_hash,
                block_number=receipt.block_number,
            )
            await self.handle_receipt(payment_intent_id, receipt)
        finally:
            self.registry.finished(current)
            monitoring_tasks_active.set(len(self.registry))

    async def _lookup_receipt(
        self, client: ChainClient, payment_intent_id: str, tx_hash: str
    ) -> Receipt | None:
        """One receipt lookup. Every failure here means "not mined yet"."""
        try:
            # wait_for can swallow cancel() on 3.11; a stopped poller must stop
            async with asyncio.timeout(self.rpc_timeout):
                receipt = await client.get_receipt(tx_hash)
        except TimeoutError:
            log.debug(
                BusinessEvents.MONITOR_PENDING,
                payment_intent_id=payment_intent_id,
                tx_hash=tx_hash,
                reason="rpc_timeout",
            )
            return None
        except Exception as e:
            log.debug(
                BusinessEvents.MONITOR_PENDING,
                payment_intent_id=payment_intent_id,
                tx_hash=tx_hash,
                reason="rpc_error",
                error=str(e),
            )
            return None

        if receipt is None:
            log.debug(
                BusinessEvents.MONITOR_PENDING,
                payment_intent_id=payment_intent_id,
                tx_hash=tx_hash,
                reason="not_mined",
            )
        return receipt

    async def handle_receipt(
        self, payment_intent_id: str, receipt: Receipt
    ) -> PaymentIntentStatus | None:
        """
        Validate a mined receipt, write the terminal status and notify.

        Returns the status written, or None when nothing was written (unknown
        intent, or intent already terminal).
        """
        intent = await run_in_threadpool(self.store.get_payment_intent, payment_intent_id)
        if intent is None:
            log.error("monitor.intent_missing", payment_intent_id=payment_intent_id)
            return None
        if intent.is_terminal:
            log.warning(
                "monitor.intent_already_terminal",
                payment_intent_id=payment_intent_id,
                status=intent.status.value,
            )
            return None

        is_valid = validate_receipt(
            receipt,
            expected_recipient=intent.merchant_address,
            expected_amount=intent.expected_amount,
            token_address=intent.token_address,
        )

        if is_valid:
            written = await run_in_threadpool(self.store.mark_confirmed, payment_intent_id)
            status, event = PaymentIntentStatus.confirmed, "payment.confirmed"
            business_event = BusinessEvents.PAYMENT_CONFIRMED
        else:
            written = await run_in_threadpool(self.store.mark_failed, payment_intent_id)
            status, event = PaymentIntentStatus.failed, "payment.failed"
            business_event = BusinessEvents.PAYMENT_FAILED

        if not written:
            return None

        payments_total.labels(outcome=status.value).inc()
        log.info(
            business_event,
            payment_intent_id=payment_intent_id,
            tx_hash=receipt.transaction_hash,
            chain_id=intent.chain_id,
        )

        # The terminal status stands whatever happens to the notification
        try:
            await run_in_threadpool(self.dispatcher.send_webhook, payment_intent_id, event)
        except Exception as e:
            log.error(
                BusinessEvents.WEBHOOK_DELIVERY_FAILED,
                payment_intent_id=payment_intent_id,
                webhook_event=event,
                error=str(e),
            )
        return status
