"""Tests for chainrelay.realtime.hub: subscription registry, teardown and fan-out."""

import asyncio

import pytest

from chainrelay.clients.resilience import TaskFailedError, TransientAPIError
from chainrelay.models.chain import NetworkRef
from chainrelay.models.enums import Topic, TxStatus
from chainrelay.realtime.hub import SubscriptionHub
from chainrelay.realtime.limits import SlidingWindowRateLimiter
from tests.factories import ADDRESS, ETH_MAINNET, TX_HASH, RecordingSender, make_reader

ETH_KEY = "ethereum:mainnet"


async def _settle() -> None:
    """Let spawned one-shot fetches and producer first ticks run."""
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
async def hub():
    h = SubscriptionHub(
        make_reader(),
        SlidingWindowRateLimiter(max_events=60, window_seconds=60),
        block_poll_interval=3600,
        gas_poll_interval=3600,
        tx_poll_interval=3600,
    )
    yield h
    await h.aclose()


def _connect(hub: SubscriptionHub, client_id: str) -> RecordingSender:
    sender = RecordingSender()
    hub.connect(client_id, sender)
    return sender


class TestMembership:
    async def test_subscribe_then_unsubscribe_leaves_no_state(self, hub):
        _connect(hub, "c1")
        assert await hub.subscribe(Topic.BALANCE, ADDRESS, "c1", ETH_MAINNET) is True
        assert hub.unsubscribe(Topic.BALANCE, ADDRESS, "c1") is True

        assert hub._subscribers[Topic.BALANCE] == {}
        assert "c1" not in hub._client_subscriptions
        assert hub.subscriptions_of("c1") == frozenset()

    async def test_unsubscribe_non_member_is_false(self, hub):
        assert hub.unsubscribe(Topic.BALANCE, ADDRESS, "nobody") is False

    async def test_subscribe_is_idempotent(self, hub):
        sender = _connect(hub, "c1")
        await hub.subscribe(Topic.BALANCE, ADDRESS, "c1", ETH_MAINNET)
        await hub.subscribe(Topic.BALANCE, ADDRESS, "c1", ETH_MAINNET)
        await _settle()

        assert hub.subscribers(Topic.BALANCE, ADDRESS.lower()) == {"c1"}
        assert len(sender.named("balance:update")) == 1
        assert hub.reader.get_balance.await_count == 1

    async def test_address_keys_are_case_insensitive(self, hub):
        _connect(hub, "c1")
        await hub.subscribe(Topic.BALANCE, ADDRESS, "c1", ETH_MAINNET)
        assert hub.has_subscribers(Topic.BALANCE, ADDRESS.lower())
        assert hub.unsubscribe(Topic.BALANCE, ADDRESS.upper(), "c1") is True

    async def test_network_topic_key_is_resolved_network(self, hub):
        _connect(hub, "c1")
        ref = NetworkRef(network="polygon", network_type="testnet")
        await hub.subscribe(Topic.GAS_PRICE, "ignored", "c1", ref)
        assert hub.has_subscribers(Topic.GAS_PRICE, "polygon:mumbai")

    async def test_unsupported_network_is_rejected_without_state(self, hub):
        sender = _connect(hub, "c1")
        ref = NetworkRef(network="solana", network_type="mainnet")
        assert await hub.subscribe(Topic.BLOCKS, "", "c1", ref) is False

        assert hub._subscribers[Topic.BLOCKS] == {}
        errors = sender.named("error")
        assert len(errors) == 1
        assert "Unsupported network" in errors[0]["error"]


class TestDisconnect:
    async def test_disconnect_removes_every_membership(self, hub):
        _connect(hub, "c1")
        _connect(hub, "c2")
        await hub.subscribe(Topic.BALANCE, ADDRESS, "c1", ETH_MAINNET)
        await hub.subscribe(Topic.TRANSACTION, TX_HASH, "c1", ETH_MAINNET)
        await hub.subscribe(Topic.BLOCKS, ETH_KEY, "c1", ETH_MAINNET)
        await hub.subscribe(Topic.GAS_PRICE, ETH_KEY, "c1", ETH_MAINNET)
        await hub.subscribe(Topic.BALANCE, ADDRESS, "c2", ETH_MAINNET)
        await hub.subscribe(Topic.BLOCKS, ETH_KEY, "c2", ETH_MAINNET)

        hub.disconnect("c1")

        assert hub.subscribers(Topic.BALANCE, ADDRESS.lower()) == {"c2"}
        assert hub.subscribers(Topic.BLOCKS, ETH_KEY) == {"c2"}
        assert not hub.has_subscribers(Topic.TRANSACTION, TX_HASH.lower())
        assert not hub.has_subscribers(Topic.GAS_PRICE, ETH_KEY)
        assert hub._subscribers[Topic.TRANSACTION] == {}
        assert hub._subscribers[Topic.GAS_PRICE] == {}
        assert "c1" not in hub._client_subscriptions
        assert hub.get_stats()["clients"] == 1

    async def test_last_subscriber_leaving_cancels_producer(self, hub):
        _connect(hub, "c1")
        await hub.subscribe(Topic.BLOCKS, ETH_KEY, "c1", ETH_MAINNET)
        producer = hub._producers[(Topic.BLOCKS, ETH_KEY)]
        assert hub.get_stats()["producers"] == 1

        hub.disconnect("c1")
        await _settle()

        assert producer.cancelled()
        assert hub.get_stats()["producers"] == 0

    async def test_producer_survives_while_others_subscribed(self, hub):
        _connect(hub, "c1")
        _connect(hub, "c2")
        await hub.subscribe(Topic.GAS_PRICE, ETH_KEY, "c1", ETH_MAINNET)
        await hub.subscribe(Topic.GAS_PRICE, ETH_KEY, "c2", ETH_MAINNET)
        producer = hub._producers[(Topic.GAS_PRICE, ETH_KEY)]

        hub.unsubscribe(Topic.GAS_PRICE, ETH_KEY, "c1")
        await _settle()

        assert not producer.done()

    async def test_disconnect_forgets_rate_limit_windows(self, hub):
        _connect(hub, "c1")
        await hub.subscribe(Topic.BALANCE, ADDRESS, "c1", ETH_MAINNET)
        hub.disconnect("c1")
        assert hub.limiter.window_size("c1", "subscribe:balance") == 0


class TestRateLimiting:
    async def test_event_beyond_limit_emits_error_and_creates_no_state(self):
        hub = SubscriptionHub(make_reader(), SlidingWindowRateLimiter(max_events=2))
        sender = _connect(hub, "c1")
        try:
            assert await hub.subscribe(Topic.BALANCE, "0x01", "c1", ETH_MAINNET) is True
            assert await hub.subscribe(Topic.BALANCE, "0x02", "c1", ETH_MAINNET) is True
            assert await hub.subscribe(Topic.BALANCE, "0x03", "c1", ETH_MAINNET) is False

            assert not hub.has_subscribers(Topic.BALANCE, "0x03")
            errors = sender.named("error")
            assert errors == [{"message": "Rate limit exceeded, please try again later."}]
        finally:
            await hub.aclose()

    async def test_limit_is_per_topic(self):
        hub = SubscriptionHub(make_reader(), SlidingWindowRateLimiter(max_events=1))
        _connect(hub, "c1")
        try:
            assert await hub.subscribe(Topic.BALANCE, "0x01", "c1", ETH_MAINNET) is True
            assert await hub.subscribe(Topic.TRANSACTION, TX_HASH, "c1", ETH_MAINNET) is True
        finally:
            await hub.aclose()


class TestInitialValues:
    async def test_balance_subscribers_each_get_initial_value(self, hub):
        first = _connect(hub, "c1")
        second = _connect(hub, "c2")
        await hub.subscribe(Topic.BALANCE, ADDRESS, "c1", ETH_MAINNET)
        await hub.subscribe(Topic.BALANCE, ADDRESS, "c2", ETH_MAINNET)
        await _settle()

        for sender in (first, second):
            [update] = sender.named("balance:update")
            assert update["balance"] == str(10**18)
            assert update["network"] == "ethereum"
            assert update["networkType"] == "mainnet"
            assert isinstance(update["timestamp"], int)

    async def test_payloads_echo_identifiers_as_sent(self, hub):
        sender = _connect(hub, "c1")
        upper_hash = TX_HASH.upper().replace("0X", "0x")
        await hub.subscribe(Topic.BALANCE, ADDRESS, "c1", ETH_MAINNET)
        await hub.subscribe(Topic.TRANSACTION, upper_hash, "c1", ETH_MAINNET)
        await _settle()

        assert sender.named("balance:update")[0]["address"] == ADDRESS
        assert sender.named("transaction:update")[0]["txHash"] == upper_hash
        assert hub.has_subscribers(Topic.TRANSACTION, TX_HASH.lower())

    async def test_balance_fetch_failure_emits_error(self, hub):
        sender = _connect(hub, "c1")
        hub.reader.get_balance.side_effect = TaskFailedError(
            ETH_KEY, 3, TransientAPIError("node unavailable")
        )
        await hub.subscribe(Topic.BALANCE, ADDRESS, "c1", ETH_MAINNET)
        await _settle()

        [error] = sender.named("error")
        assert error["message"] == "An error occurred while querying balance"
        assert error["error"] == "node unavailable"

    async def test_gas_price_subscriber_gets_initial_value(self, hub):
        sender = _connect(hub, "c1")
        await hub.subscribe(Topic.GAS_PRICE, ETH_KEY, "c1", ETH_MAINNET)
        await _settle()

        [update] = sender.named("gasPrice:update")
        assert update["gasPrice"] == str(25 * 10**9)
        assert update["maxFeePerGas"] == str(42 * 10**9)


class TestBroadcast:
    async def test_broadcast_to_nobody_is_noop(self, hub):
        assert await hub.broadcast(Topic.BALANCE, "0xnobody", "balance:update", {}) == 0

    async def test_balance_update_reaches_all_subscribers(self, hub):
        first = _connect(hub, "c1")
        second = _connect(hub, "c2")
        await hub.subscribe(Topic.BALANCE, ADDRESS, "c1", ETH_MAINNET)
        await hub.subscribe(Topic.BALANCE, ADDRESS, "c2", ETH_MAINNET)
        await _settle()

        hub.reader.get_balance.return_value = 5
        assert await hub.broadcast_balance_update(ADDRESS, ETH_MAINNET) is True
        assert first.named("balance:update")[-1]["balance"] == "5"
        assert second.named("balance:update")[-1]["balance"] == "5"

        hub.unsubscribe(Topic.BALANCE, ADDRESS, "c1")
        hub.reader.get_balance.return_value = 6
        await hub.broadcast_balance_update(ADDRESS, ETH_MAINNET)

        assert first.named("balance:update")[-1]["balance"] == "5"
        assert second.named("balance:update")[-1]["balance"] == "6"

    async def test_balance_update_without_subscribers_is_false(self, hub):
        assert await hub.broadcast_balance_update(ADDRESS, ETH_MAINNET) is False
        hub.reader.get_balance.assert_not_awaited()

    async def test_balance_update_fetch_failure_is_false(self, hub):
        _connect(hub, "c1")
        await hub.subscribe(Topic.BALANCE, ADDRESS, "c1", ETH_MAINNET)
        await _settle()
        hub.reader.get_balance.side_effect = TaskFailedError(ETH_KEY, 3, TransientAPIError("x"))
        assert await hub.broadcast_balance_update(ADDRESS, ETH_MAINNET) is False

    async def test_transaction_update(self, hub):
        sender = _connect(hub, "c1")
        await hub.subscribe(Topic.TRANSACTION, TX_HASH, "c1", ETH_MAINNET)
        await _settle()

        receipt = {"blockNumber": 16, "status": 1}
        assert await hub.broadcast_transaction_update(TX_HASH, TxStatus.SUCCESS, receipt) is True
        update = sender.named("transaction:update")[-1]
        assert update["status"] == "success"
        assert update["receipt"] == receipt
        assert update["txHash"] == TX_HASH

    async def test_transaction_update_without_subscribers_is_false(self, hub):
        assert await hub.broadcast_transaction_update(TX_HASH, "failed") is False

    async def test_failing_sender_does_not_block_others(self, hub):
        async def broken(event: str, payload: dict) -> None:
            raise ConnectionError("socket closed")

        hub.connect("bad", broken)
        good = _connect(hub, "good")
        await hub.subscribe(Topic.BALANCE, ADDRESS, "bad", ETH_MAINNET)
        await hub.subscribe(Topic.BALANCE, ADDRESS, "good", ETH_MAINNET)

        delivered = await hub.broadcast(
            Topic.BALANCE, ADDRESS.lower(), "balance:update", {"balance": "1"}
        )

        assert delivered == 1
        assert {"balance": "1"} in good.named("balance:update")


class TestStats:
    async def test_stats_shape(self, hub):
        _connect(hub, "c1")
        await hub.subscribe(Topic.BALANCE, ADDRESS, "c1", ETH_MAINNET)
        await hub.subscribe(Topic.BLOCKS, ETH_KEY, "c1", ETH_MAINNET)
        stats = hub.get_stats()
        assert stats["clients"] == 1
        assert stats["producers"] == 1
        assert stats["subscriptions"]["balance"] == {"keys": 1, "subscribers": 1}
        assert stats["subscriptions"]["gasPrice"] == {"keys": 0, "subscribers": 0}

    async def test_aclose_cancels_producers(self, hub):
        _connect(hub, "c1")
        await hub.subscribe(Topic.BLOCKS, ETH_KEY, "c1", ETH_MAINNET)
        producer = hub._producers[(Topic.BLOCKS, ETH_KEY)]
        await hub.aclose()
        assert producer.done()
        assert hub.get_stats()["producers"] == 0
