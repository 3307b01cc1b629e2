"""
Tests for the transaction monitor: polling, terminal transitions, webhook
hand-off and task lifecycle.
"""

import asyncio

import pytest

from conftest import (
    OTHER_TOKEN_ADDRESS,
    TX_HASH,
    FakeChainClient,
    HangingChainClient,
    native_receipt,
    token_receipt,
    transfer_log,
)
from core.errors import UnsupportedChain
from db.models import PaymentIntentStatus
from payments.monitor import MonitoringRegistry, MonitoringTask


@pytest.mark.asyncio
async def test_valid_receipt_confirms_and_notifies_once(
    make_monitor, store, dispatcher, processing_intent
):
    chain = FakeChainClient(responses=[native_receipt(value=1_000_000)])
    monitor = make_monitor(chain)

    entry = await monitor.start_monitoring(processing_intent.id, TX_HASH, 1)
    await asyncio.wait_for(entry.task, 2.0)

    intent = store.get_payment_intent(processing_intent.id)
    assert intent.status == PaymentIntentStatus.confirmed
    assert intent.confirmed_at is not None
    dispatcher.send_webhook.assert_called_once_with(
        processing_intent.id, "payment.confirmed"
    )
    assert not monitor.is_monitoring(processing_intent.id)


@pytest.mark.asyncio
async def test_invalid_receipt_fails_and_notifies(
    make_monitor, store, dispatcher, processing_intent
):
    chain = FakeChainClient(responses=[native_receipt(value=999_999)])
    monitor = make_monitor(chain)

    entry = await monitor.start_monitoring(processing_intent.id, TX_HASH, 1)
    await asyncio.wait_for(entry.task, 2.0)

    intent = store.get_payment_intent(processing_intent.id)
    assert intent.status == PaymentIntentStatus.failed
    assert intent.confirmed_at is None
    dispatcher.send_webhook.assert_called_once_with(
        processing_intent.id, "payment.failed"
    )


@pytest.mark.asyncio
async def test_reverted_transaction_fails(
    make_monitor, store, dispatcher, processing_intent
):
    chain = FakeChainClient(responses=[native_receipt(success=False)])
    monitor = make_monitor(chain)

    entry = await monitor.start_monitoring(processing_intent.id, TX_HASH, 1)
    await asyncio.wait_for(entry.task, 2.0)

    assert (
        store.get_payment_intent(processing_intent.id).status
        == PaymentIntentStatus.failed
    )


@pytest.mark.asyncio
async def test_rpc_errors_and_unmined_lookups_keep_polling(
    make_monitor, store, dispatcher, processing_intent
):
    chain = FakeChainClient(
        responses=[
            None,
            ConnectionError("rpc unreachable"),
            None,
            ValueError("malformed response"),
            native_receipt(),
        ]
    )
    monitor = make_monitor(chain)

    entry = await monitor.start_monitoring(processing_intent.id, TX_HASH, 1)
    await asyncio.wait_for(entry.task, 2.0)

    assert chain.calls == 5
    assert (
        store.get_payment_intent(processing_intent.id).status
        == PaymentIntentStatus.confirmed
    )
    dispatcher.send_webhook.assert_called_once()


@pytest.mark.asyncio
async def test_hanging_rpc_is_timed_out_and_retried(
    make_monitor, store, dispatcher, processing_intent
):
    chain = HangingChainClient()
    monitor = make_monitor(chain, rpc_timeout=0.02)

    await monitor.start_monitoring(processing_intent.id, TX_HASH, 1)
    await asyncio.sleep(0.2)

    assert chain.calls >= 2
    assert monitor.is_monitoring(processing_intent.id)
    assert (
        store.get_payment_intent(processing_intent.id).status
        == PaymentIntentStatus.processing
    )
    dispatcher.send_webhook.assert_not_called()

    await monitor.stop_all()


@pytest.mark.asyncio
async def test_token_payment_confirms(make_monitor, store, dispatcher, token_button):
    intent = store.create_payment_intent(token_button)
    store.attach_tx_hash(intent.id, TX_HASH)
    chain = FakeChainClient(responses=[token_receipt(transfer_log(value=500))])
    monitor = make_monitor(chain)

    entry = await monitor.start_monitoring(intent.id, TX_HASH, 1)
    await asyncio.wait_for(entry.task, 2.0)

    assert store.get_payment_intent(intent.id).status == PaymentIntentStatus.confirmed
    dispatcher.send_webhook.assert_called_once_with(intent.id, "payment.confirmed")


@pytest.mark.asyncio
async def test_token_payment_in_wrong_token_fails(
    make_monitor, store, dispatcher, token_button
):
    intent = store.create_payment_intent(token_button)
    store.attach_tx_hash(intent.id, TX_HASH)
    chain = FakeChainClient(
        responses=[token_receipt(transfer_log(token=OTHER_TOKEN_ADDRESS, value=500))]
    )
    monitor = make_monitor(chain)

    entry = await monitor.start_monitoring(intent.id, TX_HASH, 1)
    await asyncio.wait_for(entry.task, 2.0)

    assert store.get_payment_intent(intent.id).status == PaymentIntentStatus.failed
    dispatcher.send_webhook.assert_called_once_with(intent.id, "payment.failed")


@pytest.mark.asyncio
async def test_restart_replaces_existing_watcher(
    make_monitor, store, dispatcher, processing_intent
):
    monitor = make_monitor(FakeChainClient())

    first = await monitor.start_monitoring(processing_intent.id, TX_HASH, 1)
    second = await monitor.start_monitoring(processing_intent.id, TX_HASH, 1)

    await asyncio.gather(first.task, return_exceptions=True)
    assert first.task.cancelled()
    assert not second.task.done()
    assert len(monitor.registry) == 1
    assert monitor.registry.get(processing_intent.id) is second

    await monitor.stop_all()


@pytest.mark.asyncio
async def test_unsupported_chain_starts_nothing(make_monitor, processing_intent):
    monitor = make_monitor(FakeChainClient(chain_id=1))

    with pytest.raises(UnsupportedChain):
        await monitor.start_monitoring(processing_intent.id, TX_HASH, 999)

    assert len(monitor.registry) == 0
    assert not monitor.is_monitoring(processing_intent.id)


@pytest.mark.asyncio
async def test_stop_monitoring(make_monitor, store, dispatcher, processing_intent):
    monitor = make_monitor(FakeChainClient())

    entry = await monitor.start_monitoring(processing_intent.id, TX_HASH, 1)
    assert monitor.stop_monitoring(processing_intent.id) is True

    await asyncio.gather(entry.task, return_exceptions=True)
    assert entry.task.cancelled()
    assert not monitor.is_monitoring(processing_intent.id)
    assert (
        store.get_payment_intent(processing_intent.id).status
        == PaymentIntentStatus.processing
    )
    dispatcher.send_webhook.assert_not_called()


def test_stop_unknown_intent_is_noop(make_monitor):
    monitor = make_monitor(FakeChainClient())
    assert monitor.stop_monitoring("does-not-exist") is False


@pytest.mark.asyncio
async def test_stop_all_cancels_every_watcher(make_monitor, store, native_button):
    monitor = make_monitor(FakeChainClient())
    entries = []
    for _ in range(3):
        intent = store.create_payment_intent(native_button)
        store.attach_tx_hash(intent.id, TX_HASH)
        entries.append(await monitor.start_monitoring(intent.id, TX_HASH, 1))

    assert len(monitor.registry) == 3
    await monitor.stop_all()

    assert len(monitor.registry) == 0
    assert all(entry.task.cancelled() for entry in entries)


@pytest.mark.asyncio
async def test_webhook_exception_does_not_undo_status(
    make_monitor, store, dispatcher, processing_intent
):
    dispatcher.send_webhook.side_effect = RuntimeError("merchant endpoint exploded")
    monitor = make_monitor(FakeChainClient())

    status = await monitor.handle_receipt(processing_intent.id, native_receipt())

    assert status == PaymentIntentStatus.confirmed
    assert (
        store.get_payment_intent(processing_intent.id).status
        == PaymentIntentStatus.confirmed
    )


@pytest.mark.asyncio
async def test_terminal_intent_is_never_rewritten(
    make_monitor, store, dispatcher, processing_intent
):
    store.mark_confirmed(processing_intent.id)
    monitor = make_monitor(FakeChainClient())

    status = await monitor.handle_receipt(
        processing_intent.id, native_receipt(success=False)
    )

    assert status is None
    assert (
        store.get_payment_intent(processing_intent.id).status
        == PaymentIntentStatus.confirmed
    )
    dispatcher.send_webhook.assert_not_called()


@pytest.mark.asyncio
async def test_receipt_for_unknown_intent_is_ignored(make_monitor, dispatcher):
    monitor = make_monitor(FakeChainClient())

    assert await monitor.handle_receipt("missing", native_receipt()) is None
    dispatcher.send_webhook.assert_not_called()


@pytest.mark.asyncio
async def test_registry_claim_rejects_replaced_task():
    registry = MonitoringRegistry()
    stale = asyncio.create_task(asyncio.sleep(10))
    current = asyncio.create_task(asyncio.sleep(10))

    registry.replace(MonitoringTask("pi_1", 1, TX_HASH, stale))
    registry.replace(MonitoringTask("pi_1", 1, TX_HASH, current))

    assert registry.claim("pi_1", stale) is False
    assert registry.claim("pi_1", current) is True
    assert "pi_1" not in registry

    # A claimed task is still cancelled on shutdown
    drained = registry.drain()
    assert current in drained
    await asyncio.gather(stale, current, return_exceptions=True)
    assert current.cancelled()


@pytest.mark.asyncio
async def test_stopped_watcher_always_ends_with_instant_rpc(make_monitor, processing_intent):
    # Lookups that answer within the same loop step must not absorb the cancel
    monitor = make_monitor(FakeChainClient(), poll_interval=0)
    entries = []

    for i in range(200):
        entry = await monitor.start_monitoring(processing_intent.id, TX_HASH, 1)
        for _ in range(i % 7):
            await asyncio.sleep(0)
        monitor.stop_monitoring(processing_intent.id)
        for _ in range(20):
            await asyncio.sleep(0)
        entries.append(entry)

    still_running = [e for e in entries if not e.task.done()]
    assert still_running == []
    assert len(monitor.registry) == 0


@pytest.mark.asyncio
async def test_stop_all_ends_busy_watchers(make_monitor, store, native_button):
    monitor = make_monitor(FakeChainClient(), poll_interval=0)
    entries = []
    for _ in range(20):
        intent = store.create_payment_intent(native_button)
        store.attach_tx_hash(intent.id, TX_HASH)
        entries.append(await monitor.start_monitoring(intent.id, TX_HASH, 1))
    for _ in range(5):
        await asyncio.sleep(0)

    await asyncio.wait_for(monitor.stop_all(), 2.0)

    assert all(entry.task.done() for entry in entries)
