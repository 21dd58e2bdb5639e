"""Cached, queued reads against EVM JSON-RPC nodes.

Every public read is scheduled on the target network's task queue. Inside the
task the RPC cache is consulted first; only a miss reaches the node, and its
result populates the cache. Cache keys always include the network key so two
networks never share entries.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from chainrelay.clients.cache import RpcCache
from chainrelay.clients.networks import get_rpc_url, resolve_network
from chainrelay.clients.resilience import RPCError
from chainrelay.clients.rpc import JsonRpcClient
from chainrelay.models.chain import (
    Block,
    FeeData,
    NetworkRef,
    Receipt,
    Transaction,
    parse_quantity,
)
from chainrelay.models.gas import TransactionRequest
from chainrelay.scheduling.queue import NetworkTaskQueue

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Priority fee assumed when a node does not implement eth_maxPriorityFeePerGas
DEFAULT_PRIORITY_FEE_WEI = 1_000_000_000


def _quantity(value: object) -> int:
    return int(parse_quantity(value))  # type: ignore[arg-type]


class ChainReader:
    """Read-only chain access for all networks.

    Args:
        queue: Per-network task queue every read is scheduled on.
        cache: RPC result cache.
        rpc_urls: Optional ``"network:type" -> url`` overrides.
        timeout: Per-request timeout for node calls.
    """

    def __init__(
        self,
        queue: NetworkTaskQueue,
        cache: RpcCache,
        rpc_urls: dict[str, str] | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.queue = queue
        self.cache = cache
        self.rpc_urls = rpc_urls or {}
        self.timeout = timeout
        self._clients: dict[str, JsonRpcClient] = {}

    def client(self, ref: NetworkRef) -> JsonRpcClient:
        """Return the JSON-RPC client for *ref*, created on first use."""
        client = self._clients.get(ref.key)
        if client is None:
            client = JsonRpcClient(get_rpc_url(ref, self.rpc_urls), timeout=self.timeout)
            self._clients[ref.key] = client
        return client

    async def _through_cache(
        self,
        ref: NetworkRef,
        method: str,
        params: list,
        fetch: Callable[[], Awaitable[T]],
    ) -> T:
        cache_params = [ref.key, *params]
        cached = self.cache.get(method, cache_params)
        if cached is not None:
            return cached  # type: ignore[return-value]
        value = await fetch()
        if value is not None:
            self.cache.set(method, cache_params, value)
        return value

    async def _read(
        self,
        ref: NetworkRef,
        method: str,
        params: list,
        fetch: Callable[[NetworkRef], Awaitable[T]],
    ) -> T:
        ref = resolve_network(ref.network, ref.network_type)
        return await self.queue.enqueue(
            ref.key, lambda: self._through_cache(ref, method, params, lambda: fetch(ref))
        )

    # ── Reads ────────────────────────────────────────────────────────────

    async def _uncached(
        self, ref: NetworkRef, fetch: Callable[[NetworkRef], Awaitable[T]]
    ) -> T:
        ref = resolve_network(ref.network, ref.network_type)
        return await self.queue.enqueue(ref.key, lambda: fetch(ref))

    async def get_balance(self, ref: NetworkRef, address: str) -> int:
        """Native balance of *address* in wei."""

        async def fetch(r: NetworkRef) -> int:
            return _quantity(await self.client(r).call("eth_getBalance", [address, "latest"]))

        return await self._read(ref, "getBalance", [address.lower()], fetch)

    def forget_balance(self, ref: NetworkRef, address: str) -> bool:
        """Drop the cached balance of *address* so the next read hits the node."""
        ref = resolve_network(ref.network, ref.network_type)
        return self.cache.delete("getBalance", [ref.key, address.lower()])

    async def get_block_number(self, ref: NetworkRef) -> int:
        return await self._read(ref, "getBlockNumber", [], self._fetch_block_number)

    async def _fetch_block_number(self, ref: NetworkRef) -> int:
        return _quantity(await self.client(ref).call("eth_blockNumber"))

    async def get_block(self, ref: NetworkRef, block: int | str = "latest") -> Block | None:
        """Block header by number, or by tag (``latest``, ``pending``...).

        Only numbered blocks are cached; tags move with the chain.
        """
        tag = hex(block) if isinstance(block, int) else block

        async def fetch(r: NetworkRef) -> Block | None:
            data = await self.client(r).call("eth_getBlockByNumber", [tag, False])
            return Block.model_validate(data) if data else None

        if isinstance(block, int):
            return await self._read(ref, "getBlock", [block], fetch)
        return await self._uncached(ref, fetch)

    async def get_code(self, ref: NetworkRef, address: str) -> str:
        """Deployed bytecode at *address*; ``"0x"`` for externally owned accounts."""

        async def fetch(r: NetworkRef) -> str:
            return str(await self.client(r).call("eth_getCode", [address, "latest"]))

        return await self._read(ref, "getCode", [address], fetch)

    async def get_transaction_count(self, ref: NetworkRef, address: str) -> int:
        async def fetch(r: NetworkRef) -> int:
            return _quantity(
                await self.client(r).call("eth_getTransactionCount", [address, "latest"])
            )

        return await self._read(ref, "getTransactionCount", [address], fetch)

    async def get_fee_data(self, ref: NetworkRef) -> FeeData:
        """Current gas price plus EIP-1559 fee suggestions when supported.

        ``max_fee_per_gas`` follows the common wallet heuristic of twice the
        latest base fee plus the priority fee.
        """
        return await self._read(ref, "getFeeData", [], self._fetch_fee_data)

    async def _fetch_fee_data(self, ref: NetworkRef) -> FeeData:
        client = self.client(ref)
        gas_price = _quantity(await client.call("eth_gasPrice"))
        latest = await client.call("eth_getBlockByNumber", ["latest", False])
        base_fee = None
        if isinstance(latest, dict) and latest.get("baseFeePerGas") is not None:
            base_fee = _quantity(latest["baseFeePerGas"])
        if base_fee is None:
            return FeeData(gas_price=gas_price)

        try:
            priority_fee = _quantity(await client.call("eth_maxPriorityFeePerGas"))
        except RPCError as exc:
            logger.info(
                "eth_maxPriorityFeePerGas unavailable on %s (%s), using 1 gwei", ref.key, exc
            )
            priority_fee = DEFAULT_PRIORITY_FEE_WEI
        return FeeData(
            gas_price=gas_price,
            max_fee_per_gas=base_fee * 2 + priority_fee,
            max_priority_fee_per_gas=priority_fee,
            last_base_fee_per_gas=base_fee,
        )

    async def get_transaction(self, ref: NetworkRef, tx_hash: str) -> Transaction | None:
        """Transaction by hash with its confirmation count, or None if unknown."""

        async def fetch(r: NetworkRef) -> Transaction | None:
            data = await self.client(r).call("eth_getTransactionByHash", [tx_hash])
            if not data:
                return None
            tx = Transaction.model_validate(data)
            if tx.block_number is not None:
                latest = await self._through_cache(
                    r, "getBlockNumber", [], lambda: self._fetch_block_number(r)
                )
                tx.confirmations = max(0, latest - tx.block_number + 1)
            return tx

        return await self._read(ref, "getTransaction", [tx_hash], fetch)

    async def get_transaction_receipt(self, ref: NetworkRef, tx_hash: str) -> Receipt | None:
        async def fetch(r: NetworkRef) -> Receipt | None:
            data = await self.client(r).call("eth_getTransactionReceipt", [tx_hash])
            return Receipt.model_validate(data) if data else None

        return await self._read(ref, "getTransactionReceipt", [tx_hash], fetch)

    async def estimate_gas(self, ref: NetworkRef, tx: TransactionRequest) -> int:
        params = tx.to_rpc()

        async def fetch(r: NetworkRef) -> int:
            return _quantity(await self.client(r).call("eth_estimateGas", [params]))

        return await self._read(ref, "estimateGas", [params], fetch)

    # ── Uncached calls ───────────────────────────────────────────────────

    async def call(self, ref: NetworkRef, tx: TransactionRequest, block: str = "latest") -> str:
        """Execute *tx* as a static ``eth_call`` and return the raw return data.

        Raises:
            TaskFailedError: With an ``RPCError`` cause when the call reverts.
        """
        params = tx.to_rpc()

        async def fetch(r: NetworkRef) -> str:
            return str(await self.client(r).call("eth_call", [params, block]))

        return await self._uncached(ref, fetch)

    async def send_raw_transaction(self, ref: NetworkRef, raw_transaction: str) -> str:
        """Broadcast a signed transaction; returns its hash."""

        async def fetch(r: NetworkRef) -> str:
            return str(await self.client(r).call("eth_sendRawTransaction", [raw_transaction]))

        return await self._uncached(ref, fetch)
