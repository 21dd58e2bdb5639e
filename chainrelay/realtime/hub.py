"""Subscription registry and fan-out for real-time clients.

The hub maps each topic instance to the set of client ids interested in it,
keeps a reverse index per client so a disconnect can remove every membership,
and owns the background producer for each topic instance. When a subscriber
set empties, the key is removed and its producer cancelled.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine

from chainrelay.clients.chain import ChainReader
from chainrelay.clients.networks import resolve_network
from chainrelay.clients.resilience import UnsupportedNetworkError
from chainrelay.models.chain import NetworkRef
from chainrelay.models.enums import Topic, TxStatus
from chainrelay.realtime.limits import SlidingWindowRateLimiter
from chainrelay.realtime.listeners import (
    READ_ERRORS,
    balance_payload,
    gas_price_payload,
    poll_gas_price,
    transaction_payload,
    watch_blocks,
    watch_transaction,
)

logger = logging.getLogger(__name__)

Sender = Callable[[str, dict], Awaitable[None]]

# Topics keyed by "network:networkType" rather than by address or hash
NETWORK_TOPICS = frozenset({Topic.BLOCKS, Topic.GAS_PRICE})

RATE_LIMIT_MESSAGE = "Rate limit exceeded, please try again later."


class SubscriptionHub:
    """Registry of real-time interest plus the producers that feed it.

    Args:
        reader: Chain reader used for initial values and by producers.
        limiter: Per-client, per-event rate limiter.
        block_poll_interval: Seconds between chain-head polls.
        gas_poll_interval: Seconds between gas price updates.
        tx_poll_interval: Seconds between receipt lookups.
    """

    def __init__(
        self,
        reader: ChainReader,
        limiter: SlidingWindowRateLimiter | None = None,
        block_poll_interval: float = 4.0,
        gas_poll_interval: float = 15.0,
        tx_poll_interval: float = 4.0,
    ) -> None:
        self.reader = reader
        self.limiter = limiter or SlidingWindowRateLimiter()
        self.block_poll_interval = block_poll_interval
        self.gas_poll_interval = gas_poll_interval
        self.tx_poll_interval = tx_poll_interval

        self._subscribers: dict[Topic, dict[str, set[str]]] = {topic: {} for topic in Topic}
        self._client_subscriptions: dict[str, set[tuple[Topic, str]]] = {}
        self._senders: dict[str, Sender] = {}
        self._producers: dict[tuple[Topic, str], asyncio.Task] = {}
        self._tasks: set[asyncio.Task] = set()

    # ── Connections ──────────────────────────────────────────────────────

    def connect(self, client_id: str, sender: Sender) -> None:
        """Register the delivery callable for *client_id*."""
        self._senders[client_id] = sender
        logger.info("Client connected: %s", client_id)

    def disconnect(self, client_id: str) -> None:
        """Remove *client_id* from every subscription it joined."""
        for topic, key in list(self._client_subscriptions.get(client_id, ())):
            self._remove(topic, key, client_id)
        self._client_subscriptions.pop(client_id, None)
        self._senders.pop(client_id, None)
        self.limiter.forget(client_id)
        logger.info("Client disconnected: %s", client_id)

    # ── Membership ───────────────────────────────────────────────────────

    async def subscribe(
        self, topic: Topic, key: str, client_id: str, network: NetworkRef
    ) -> bool:
        """Add *client_id* to ``(topic, key)`` and start its producer if needed.

        For ``blocks`` and ``gasPrice`` the key is the resolved network key and
        *key* is ignored. Addresses and hashes are registered lower-cased;
        payloads echo them as the client sent them. Returns False when the
        request was rejected; the client has then received an ``error`` event
        and no state was created.
        """
        topic = Topic(topic)
        if self.limiter.is_limited(client_id, f"subscribe:{topic}"):
            await self.emit_error(client_id, RATE_LIMIT_MESSAGE)
            return False

        try:
            ref = resolve_network(network.network, network.network_type)
        except UnsupportedNetworkError as exc:
            await self.emit_error(client_id, f"{topic} subscription error", str(exc))
            return False

        requested = key
        key = ref.key if topic in NETWORK_TOPICS else key.lower()
        subscribers = self._subscribers[topic].setdefault(key, set())
        if client_id in subscribers:
            return True

        subscribers.add(client_id)
        self._client_subscriptions.setdefault(client_id, set()).add((topic, key))
        logger.info("Client %s started %s subscription: %s", client_id, topic, key)

        if topic == Topic.BALANCE:
            self._spawn(self._send_initial_balance(client_id, requested, ref))
        elif topic == Topic.TRANSACTION:
            self._ensure_producer(
                topic, key, watch_transaction(self, ref, requested, self.tx_poll_interval)
            )
        elif topic == Topic.BLOCKS:
            self._ensure_producer(topic, key, watch_blocks(self, ref, self.block_poll_interval))
        elif topic == Topic.GAS_PRICE:
            self._ensure_producer(topic, key, poll_gas_price(self, ref, self.gas_poll_interval))
            self._spawn(self._send_initial_gas_price(client_id, ref))
        return True

    def unsubscribe(self, topic: Topic, key: str, client_id: str) -> bool:
        """Remove *client_id* from ``(topic, key)``. Returns True if it was a member."""
        topic = Topic(topic)
        if topic not in NETWORK_TOPICS:
            key = key.lower()
        removed = self._remove(topic, key, client_id)
        if removed:
            logger.info("Client %s unsubscribed from %s subscription: %s", client_id, topic, key)
        return removed

    def _remove(self, topic: Topic, key: str, client_id: str) -> bool:
        subscribers = self._subscribers[topic].get(key)
        if not subscribers or client_id not in subscribers:
            return False

        subscribers.discard(client_id)
        memberships = self._client_subscriptions.get(client_id)
        if memberships is not None:
            memberships.discard((topic, key))
            if not memberships:
                del self._client_subscriptions[client_id]

        if not subscribers:
            del self._subscribers[topic][key]
            producer = self._producers.pop((topic, key), None)
            if producer is not None:
                producer.cancel()
                logger.info("Stopped %s producer for %s", topic, key)
        return True

    def has_subscribers(self, topic: Topic, key: str) -> bool:
        return bool(self._subscribers[Topic(topic)].get(key))

    def subscribers(self, topic: Topic, key: str) -> frozenset[str]:
        return frozenset(self._subscribers[Topic(topic)].get(key, ()))

    def subscriptions_of(self, client_id: str) -> frozenset[tuple[Topic, str]]:
        return frozenset(self._client_subscriptions.get(client_id, ()))

    # ── Delivery ─────────────────────────────────────────────────────────

    async def send_to(self, client_id: str, event: str, payload: dict) -> bool:
        """Deliver one event to one client. Failures are logged, not raised."""
        sender = self._senders.get(client_id)
        if sender is None:
            return False
        try:
            await sender(event, payload)
        except Exception as exc:
            logger.warning("Delivery of %s to %s failed: %s", event, client_id, exc)
            return False
        return True

    async def emit_error(self, client_id: str, message: str, error: str | None = None) -> bool:
        payload = {"message": message}
        if error is not None:
            payload["error"] = error
        return await self.send_to(client_id, "error", payload)

    async def broadcast(self, topic: Topic, key: str, event: str, payload: dict) -> int:
        """Send *event* to every subscriber of ``(topic, key)``.

        Returns:
            Number of clients the event was delivered to.
        """
        delivered = 0
        for client_id in list(self._subscribers[Topic(topic)].get(key, ())):
            if await self.send_to(client_id, event, payload):
                delivered += 1
        return delivered

    async def broadcast_balance_update(self, address: str, network: NetworkRef) -> bool:
        """Fetch the balance of *address* and push it to all its subscribers."""
        key = address.lower()
        if not self.has_subscribers(Topic.BALANCE, key):
            return False
        try:
            balance = await self.reader.get_balance(network, address)
        except READ_ERRORS as exc:
            logger.error("Broadcast balance update error for %s: %s", address, exc)
            return False
        await self.broadcast(
            Topic.BALANCE, key, "balance:update", balance_payload(address, balance, network)
        )
        return True

    async def broadcast_transaction_update(
        self,
        tx_hash: str,
        status: TxStatus | str,
        receipt: dict | None = None,
        confirmations: int | None = None,
    ) -> bool:
        """Push a status change for *tx_hash* to all its subscribers."""
        key = tx_hash.lower()
        if not self.has_subscribers(Topic.TRANSACTION, key):
            return False
        await self.broadcast(
            Topic.TRANSACTION,
            key,
            "transaction:update",
            transaction_payload(tx_hash, status, confirmations=confirmations, receipt=receipt),
        )
        return True

    # ── Background work ──────────────────────────────────────────────────

    def _ensure_producer(self, topic: Topic, key: str, coro: Coroutine) -> None:
        producer = self._producers.get((topic, key))
        if producer is not None and not producer.done():
            coro.close()
            return

        task = asyncio.create_task(coro, name=f"{topic}:{key}")
        self._producers[(topic, key)] = task

        def _finished(done: asyncio.Task) -> None:
            if self._producers.get((topic, key)) is done:
                del self._producers[(topic, key)]
            if not done.cancelled() and done.exception() is not None:
                logger.error("%s producer for %s crashed: %s", topic, key, done.exception())

        task.add_done_callback(_finished)

    def _spawn(self, coro: Coroutine) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send_initial_balance(self, client_id: str, address: str, ref: NetworkRef) -> None:
        try:
            balance = await self.reader.get_balance(ref, address)
        except READ_ERRORS as exc:
            logger.error("Balance query error for %s: %s", address, exc)
            await self.emit_error(client_id, "An error occurred while querying balance", str(exc))
            return
        await self.send_to(client_id, "balance:update", balance_payload(address, balance, ref))

    async def _send_initial_gas_price(self, client_id: str, ref: NetworkRef) -> None:
        try:
            fee_data = await self.reader.get_fee_data(ref)
        except READ_ERRORS as exc:
            logger.error("Gas price retrieval error on %s: %s", ref.key, exc)
            await self.emit_error(
                client_id, "An error occurred while querying gas price", str(exc)
            )
            return
        await self.send_to(client_id, "gasPrice:update", gas_price_payload(fee_data, ref))

    # ── Introspection and shutdown ───────────────────────────────────────

    def get_stats(self) -> dict:
        return {
            "clients": len(self._senders),
            "producers": sum(1 for task in self._producers.values() if not task.done()),
            "subscriptions": {
                str(topic): {
                    "keys": len(registry),
                    "subscribers": sum(len(members) for members in registry.values()),
                }
                for topic, registry in self._subscribers.items()
            },
        }

    async def aclose(self) -> None:
        """Cancel every producer and pending one-shot fetch."""
        tasks = [*self._producers.values(), *self._tasks]
        self._producers.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
