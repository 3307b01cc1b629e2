"""Test configuration and fixtures."""

import asyncio
import os
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db.models import Base, Button, CustomerProfile, Merchant
from db.store import PaymentIntentStore
from main import app
from payments.chain_client import ChainClientPool, Receipt, ReceiptLog
from payments.monitor import MonitoringRegistry, TransactionMonitor
from payments.validator import ERC20_TRANSFER_TOPIC
from webhooks.sender import WebhookDispatcher

MERCHANT_ADDRESS = "0xAbC0000000000000000000000000000000000aBc"
TOKEN_ADDRESS = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
OTHER_TOKEN_ADDRESS = "0x1111111111111111111111111111111111111111"
CUSTOMER_ADDRESS = "0x2222222222222222222222222222222222222222"
CUSTOMER_CRYPTO_ID = "crypt_42"
CUSTOMER_EMAIL = "payer@customer.example"
TX_HASH = "0x" + "ab" * 32
WEBHOOK_URL = "https://merchant.example/hooks/cryptopay"
WEBHOOK_SECRET = "whsec_merchant"


class FakeChainClient:
    """Chain client that replays scripted lookups, then reports "not mined"."""

    def __init__(self, chain_id=1, responses=None):
        self.chain_id = chain_id
        self.responses = list(responses or [])
        self.calls = 0
        self.closed = False

    async def get_receipt(self, tx_hash):
        self.calls += 1
        result = self.responses.pop(0) if self.responses else None
        if isinstance(result, Exception):
            raise result
        return result

    async def close(self):
        self.closed = True


class HangingChainClient:
    """Chain client whose RPC never answers."""

    def __init__(self, chain_id=1):
        self.chain_id = chain_id
        self.calls = 0
        self.closed = False

    async def get_receipt(self, tx_hash):
        self.calls += 1
        await asyncio.Event().wait()

    async def close(self):
        self.closed = True


def native_receipt(to=MERCHANT_ADDRESS, value=1_000_000, success=True):
    return Receipt(
        transaction_hash=TX_HASH,
        success=success,
        from_address=CUSTOMER_ADDRESS,
        to_address=to,
        value=value,
        block_number=100,
    )


def transfer_log(token=TOKEN_ADDRESS, to=MERCHANT_ADDRESS, value=500):
    return ReceiptLog(
        address=token,
        topics=[
            ERC20_TRANSFER_TOPIC,
            "0x" + "0" * 24 + CUSTOMER_ADDRESS[2:].lower(),
            "0x" + "0" * 24 + to[2:].lower(),
        ],
        data="0x" + format(value, "064x"),
    )


def token_receipt(*logs, success=True):
    return Receipt(
        transaction_hash=TX_HASH,
        success=success,
        from_address=CUSTOMER_ADDRESS,
        to_address=TOKEN_ADDRESS,
        value=0,
        block_number=100,
        logs=list(logs),
    )


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Setup test environment variables before each test."""
    original_env = dict(os.environ)

    os.environ.update(
        {
            "DATABASE_URL": "sqlite:///:memory:",
            "APP_NAME": "Test CryptoPay",
            "ENVIRONMENT": "test",
            "DEBUG": "true",
            "DISABLE_TRACING": "true",
            "WEBHOOK_SECRET": "whsec_test_default",
        }
    )

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def test_db_engine():
    """In-memory database shared across threads."""
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def test_db_session(test_db_engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def customer_profile(test_db_session):
    profile = CustomerProfile(
        crypto_id=CUSTOMER_CRYPTO_ID, email=CUSTOMER_EMAIL, name="Payer"
    )
    test_db_session.add(profile)
    test_db_session.commit()
    test_db_session.refresh(profile)
    return profile


@pytest.fixture
def store(test_db_engine):
    return PaymentIntentStore.from_engine(test_db_engine)


@pytest.fixture
def merchant(store):
    return store.add_merchant(
        Merchant(
            id="merchant_1",
            email="shop@merchant.example",
            name="Test Shop",
            wallet_address=MERCHANT_ADDRESS,
            webhook_url=WEBHOOK_URL,
            webhook_secret=WEBHOOK_SECRET,
        )
    )


@pytest.fixture
def native_button(store, merchant):
    return store.add_button(
        Button(
            id="btn_native",
            merchant_id=merchant.id,
            name="Native payment",
            amount="1000000",
            chain_id=1,
            merchant_address=MERCHANT_ADDRESS,
            is_active=True,
        )
    )


@pytest.fixture
def token_button(store, merchant):
    return store.add_button(
        Button(
            id="btn_token",
            merchant_id=merchant.id,
            name="Token payment",
            amount="500",
            token_address=TOKEN_ADDRESS,
            chain_id=1,
            merchant_address=MERCHANT_ADDRESS,
            is_active=True,
        )
    )


@pytest.fixture
def processing_intent(store, native_button):
    """A native-asset intent whose hash has already been submitted."""
    intent = store.create_payment_intent(native_button, CUSTOMER_ADDRESS)
    store.attach_tx_hash(intent.id, TX_HASH)
    return store.get_payment_intent(intent.id)


@pytest.fixture
def dispatcher():
    mock = MagicMock(spec=WebhookDispatcher)
    mock.send_webhook.return_value = True
    return mock


@pytest.fixture
def make_monitor(store, dispatcher):
    """Build a fast-polling monitor over the given chain clients."""

    def _make(*clients, rpc_timeout=1.0, poll_interval=0.01):
        return TransactionMonitor(
            pool=ChainClientPool({c.chain_id: c for c in clients}),
            store=store,
            dispatcher=dispatcher,
            registry=MonitoringRegistry(),
            poll_interval=poll_interval,
            first_poll_delay=0,
            rpc_timeout=rpc_timeout,
        )

    return _make


@pytest.fixture
def client(test_db_engine):
    """Test client whose lifespan-built store uses the test database."""
    with patch("db.session._engine", test_db_engine):
        with TestClient(app) as test_client:
            # Never reach a real RPC endpoint from tests
            test_client.app.state.monitor.pool = ChainClientPool(
                {1: FakeChainClient(chain_id=1)}
            )
            yield test_client

