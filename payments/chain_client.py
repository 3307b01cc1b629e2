"""
Chain Client Pool

One client per supported chain id, each exposing a single capability:
fetch the receipt of a transaction by hash. Receipts are normalized into
plain dataclasses so the validator never touches web3 types.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

import structlog
from web3 import AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound

from core.errors import UnsupportedChain

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ReceiptLog:
    address: str
    topics: list[str]
    data: str


@dataclass(frozen=True)
class Receipt:
    transaction_hash: str
    success: bool
    from_address: str | None
    to_address: str | None
    value: int
    block_number: int | None = None
    logs: list[ReceiptLog] = field(default_factory=list)


def _hex(value: Any) -> str:
    if isinstance(value, str):
        return value if value.startswith("0x") else "0x" + value
    return Web3.to_hex(value)


def receipt_from_web3(receipt: Mapping[str, Any], transaction: Mapping[str, Any]) -> Receipt:
    """Merge an eth_getTransactionReceipt result with its transaction's value."""
    return Receipt(
        transaction_hash=_hex(receipt["transactionHash"]),
        success=receipt.get("status") == 1,
        from_address=receipt.get("from"),
        to_address=receipt.get("to"),
        value=int(transaction.get("value", 0)),
        block_number=receipt.get("blockNumber"),
        logs=[
            ReceiptLog(
                address=entry["address"],
                topics=[_hex(topic) for topic in entry.get("topics", [])],
                data=_hex(entry.get("data", "0x")),
            )
            for entry in receipt.get("logs", [])
        ],
    )


class ChainClient(Protocol):
    chain_id: int

    async def get_receipt(self, tx_hash: str) -> Receipt | None:
        """Return the receipt, or None while the transaction is not mined."""

    async def close(self) -> None:
        """Release network resources held by the client."""


class Web3ChainClient:
    """JSON-RPC backed client for a single EVM chain."""

    def __init__(self, chain_id: int, rpc_url: str):
        self.chain_id = chain_id
        self.rpc_url = rpc_url
        self.web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))

    async def get_receipt(self, tx_hash: str) -> Receipt | None:
        try:
            receipt = await self.web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        # Receipts do not carry the transferred value; the transaction does
        transaction = await self.web3.eth.get_transaction(tx_hash)
        return receipt_from_web3(receipt, transaction)

    async def close(self) -> None:
        await self.web3.provider.disconnect()

    def __repr__(self):
        return f"<Web3ChainClient(chain_id={self.chain_id}, rpc_url={self.rpc_url})>"


class ChainClientPool:
    """Maps chain ids to the client that serves them."""

    def __init__(self, clients: Mapping[int, ChainClient]):
        self._clients = dict(clients)

    @classmethod
    def from_rpc_urls(cls, rpc_urls: Mapping[int, str]) -> "ChainClientPool":
        clients = {
            int(chain_id): Web3ChainClient(int(chain_id), url)
            for chain_id, url in rpc_urls.items()
        }
        log.info("chain_pool.initialized", chain_ids=sorted(clients))
        return cls(clients)

    def get(self, chain_id: int) -> ChainClient:
        try:
            return self._clients[chain_id]
        except KeyError:
            raise UnsupportedChain(chain_id) from None

    def supports(self, chain_id: int) -> bool:
        return chain_id in self._clients

    @property
    def chain_ids(self) -> list[int]:
        return sorted(self._clients)

    async def close(self) -> None:
        """Close every client; one failing close does not block the rest."""
        for chain_id, client in self._clients.items():
            try:
                await client.close()
            except Exception as e:
                log.warning("chain_client.close_failed", chain_id=chain_id, error=str(e))
