"""
Simple smoke tests to verify basic functionality.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import FakeChainClient
from core.settings import DEFAULT_CHAIN_RPC_URLS, Settings
from main import app
from payments.chain_client import ChainClientPool, Web3ChainClient


def test_app_startup(client):
    """Test that the application starts up properly."""
    response = client.get("/healthz")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["database"] == "SQLite"
    assert data["environment"] == "test"
    assert data["chains"] == [1]
    assert data["monitoring"] == 0


def test_health_alias(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_root_lists_endpoints(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "monitor" in response.json()["endpoints"]


def test_openapi_available(client):
    """Test that OpenAPI documentation is available."""
    response = client.get("/docs")
    assert response.status_code == 200


def test_metrics_exposed(client):
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "cryptopay_payments_total" in response.text


def test_default_chain_pool():
    """Every default chain gets a web3 client; nothing is contacted."""
    settings = Settings()
    pool = ChainClientPool.from_rpc_urls(settings.CHAIN_RPC_URLS)

    assert sorted(pool.chain_ids) == sorted(DEFAULT_CHAIN_RPC_URLS)
    assert isinstance(pool.get(8453), Web3ChainClient)
    assert pool.supports(1)
    assert not pool.supports(999)


def test_database_connection(test_db_session):
    """Test that database connection works."""
    from db.models import Merchant

    test_db_session.add(Merchant(id="m_smoke", email="smoke@example.com", name="Smoke"))
    test_db_session.commit()

    retrieved = test_db_session.query(Merchant).filter_by(id="m_smoke").first()
    assert retrieved is not None
    assert retrieved.name == "Smoke"


@pytest.mark.asyncio
async def test_pool_close_disconnects_every_provider():
    pool = ChainClientPool.from_rpc_urls(Settings().CHAIN_RPC_URLS)
    clients = [pool.get(chain_id) for chain_id in pool.chain_ids]
    for chain_client in clients:
        chain_client.web3.provider.disconnect = AsyncMock()

    await pool.close()

    for chain_client in clients:
        chain_client.web3.provider.disconnect.assert_awaited_once()


@pytest.mark.asyncio
async def test_pool_close_survives_a_failing_client():
    broken = FakeChainClient(chain_id=1)
    broken.close = AsyncMock(side_effect=RuntimeError("session already gone"))
    healthy = FakeChainClient(chain_id=137)

    await ChainClientPool({1: broken, 137: healthy}).close()

    assert healthy.closed


def test_shutdown_closes_chain_clients(test_db_engine):
    chain_client = FakeChainClient(chain_id=1)
    with patch("db.session._engine", test_db_engine):
        with TestClient(app) as test_client:
            test_client.app.state.monitor.pool = ChainClientPool({1: chain_client})
            assert not chain_client.closed

    assert chain_client.closed
