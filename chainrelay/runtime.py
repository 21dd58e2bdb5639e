"""Gateway container: builds and owns the shared core components."""

import logging
from dataclasses import dataclass

from chainrelay.clients.cache import RpcCache
from chainrelay.clients.chain import ChainReader
from chainrelay.clients.networks import resolve_network
from chainrelay.clients.resilience import RetryPolicy
from chainrelay.config import Settings
from chainrelay.gas.oracle import GasOracle
from chainrelay.models.chain import NetworkRef
from chainrelay.realtime.hub import SubscriptionHub
from chainrelay.realtime.limits import ConnectionCounter, SlidingWindowRateLimiter
from chainrelay.realtime.relay import TransactionRelay
from chainrelay.scheduling.queue import NetworkTaskQueue

logger = logging.getLogger(__name__)


@dataclass
class Gateway:
    """Everything one process shares between its HTTP, WebSocket and MCP surfaces."""

    settings: Settings
    cache: RpcCache
    queue: NetworkTaskQueue
    reader: ChainReader
    oracle: GasOracle
    limiter: SlidingWindowRateLimiter
    connections: ConnectionCounter
    hub: SubscriptionHub
    relay: TransactionRelay

    @classmethod
    def from_settings(cls, settings: Settings) -> "Gateway":
        cache = RpcCache(
            max_size=settings.cache_max_size,
            default_ttl=settings.cache_default_ttl,
            ttl_overrides=settings.cache_ttl_overrides,
        )
        queue = NetworkTaskQueue(
            concurrency=settings.queue_concurrency,
            retry_policy=RetryPolicy(
                max_retries=settings.queue_max_retries,
                delay=settings.queue_retry_delay,
                backoff=settings.queue_backoff,
                max_delay=settings.queue_max_retry_delay,
            ),
        )
        reader = ChainReader(queue, cache, rpc_urls=settings.rpc_urls, timeout=settings.rpc_timeout)
        limiter = SlidingWindowRateLimiter(
            max_events=settings.ws_rate_limit_max,
            window_seconds=settings.ws_rate_limit_window,
        )
        hub = SubscriptionHub(
            reader,
            limiter,
            block_poll_interval=settings.block_poll_interval,
            gas_poll_interval=settings.gas_poll_interval,
            tx_poll_interval=settings.tx_poll_interval,
        )
        logger.info(
            "Gateway ready: queue concurrency %d, %d attempt(s), cache size %d",
            settings.queue_concurrency, queue.retry_policy.max_retries, settings.cache_max_size,
        )
        return cls(
            settings=settings,
            cache=cache,
            queue=queue,
            reader=reader,
            oracle=GasOracle(reader),
            limiter=limiter,
            connections=ConnectionCounter(settings.ws_max_connections_per_ip),
            hub=hub,
            relay=TransactionRelay(
                reader, hub, balance_refresh_delay=settings.relay_balance_delay
            ),
        )

    def network(self, network: str | None = None, network_type: str | None = None) -> NetworkRef:
        """Network reference with configured defaults for missing parts."""
        return NetworkRef(
            network=network or self.settings.default_network,
            network_type=network_type or self.settings.default_network_type,
        )

    def resolve(self, network: str | None = None, network_type: str | None = None) -> NetworkRef:
        """Like ``network``, but validated and with testnet aliases normalised.

        Raises:
            UnsupportedNetworkError: If the pair is not configured.
        """
        ref = self.network(network, network_type)
        return resolve_network(ref.network, ref.network_type)

    async def aclose(self) -> None:
        await self.relay.aclose()
        await self.hub.aclose()
        await self.queue.aclose()
        logger.info("Gateway closed")
