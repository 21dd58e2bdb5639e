"""Background producers for real-time topics and the payloads they emit.

Each producer is a long-running coroutine owned by the hub. It checks the
topic's subscriber set at the start of every tick and returns as soon as the
set is empty.
"""

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from chainrelay.clients.resilience import APIError, TaskFailedError, UnsupportedNetworkError
from chainrelay.models.chain import Block, FeeData, NetworkRef, Receipt
from chainrelay.models.enums import Topic, TxStatus

if TYPE_CHECKING:
    from chainrelay.realtime.hub import SubscriptionHub

logger = logging.getLogger(__name__)

# Errors a queued chain read can surface to a producer
READ_ERRORS = (APIError, TaskFailedError, UnsupportedNetworkError)

# Blocks emitted per tick when the listener falls behind the chain head
MAX_BLOCK_CATCHUP = 10

WEI_PER_ETHER = 10**18


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def format_ether(wei: int) -> str:
    """Render a wei amount in ether with no trailing zeros (``"0.000021"``)."""
    sign = "-" if wei < 0 else ""
    whole, fraction = divmod(abs(wei), WEI_PER_ETHER)
    fraction_text = f"{fraction:018d}".rstrip("0") or "0"
    return f"{sign}{whole}.{fraction_text}"


# ── Payloads ─────────────────────────────────────────────────────────────


def balance_payload(address: str, balance: int, ref: NetworkRef) -> dict:
    return {
        "address": address,
        "balance": str(balance),
        "network": ref.network,
        "networkType": ref.network_type,
        "timestamp": timestamp_ms(),
    }


def gas_price_payload(fee_data: FeeData, ref: NetworkRef) -> dict:
    payload: dict = {"network": ref.network, "networkType": ref.network_type}
    for field, value in (
        ("gasPrice", fee_data.gas_price),
        ("maxFeePerGas", fee_data.max_fee_per_gas),
        ("maxPriorityFeePerGas", fee_data.max_priority_fee_per_gas),
    ):
        if value is not None:
            payload[field] = str(value)
    payload["timestamp"] = timestamp_ms()
    return payload


def block_payload(block: Block, ref: NetworkRef) -> dict:
    """``block:new`` body. ``timestamp`` is the block's own (seconds)."""
    return {
        "blockNumber": block.number,
        "timestamp": block.timestamp,
        "hash": block.hash,
        "parentHash": block.parent_hash,
        "miner": block.miner,
        "transactionCount": len(block.transactions),
        "network": ref.network,
        "networkType": ref.network_type,
    }


def transaction_payload(
    tx_hash: str,
    status: TxStatus | str,
    confirmations: int | None = None,
    receipt: dict | None = None,
) -> dict:
    payload: dict = {"txHash": tx_hash, "status": str(status)}
    if confirmations is not None:
        payload["confirmations"] = confirmations
    if receipt is not None:
        payload["receipt"] = receipt
    payload["timestamp"] = timestamp_ms()
    return payload


def receipt_summary(receipt: Receipt) -> dict:
    return {
        "blockNumber": receipt.block_number,
        "gasUsed": str(receipt.gas_used),
        "effectiveGasPrice": str(receipt.effective_gas_price or 0),
        "status": receipt.status,
    }


def gas_analysis_payload(tx_hash: str, receipt: Receipt) -> dict:
    effective_price = receipt.effective_gas_price or 0
    return {
        "txHash": tx_hash,
        "gasUsed": str(receipt.gas_used),
        "effectiveGasPrice": str(effective_price),
        "totalCost": format_ether(receipt.gas_used * effective_price),
        "timestamp": timestamp_ms(),
    }


# ── Producers ────────────────────────────────────────────────────────────


async def watch_blocks(hub: "SubscriptionHub", ref: NetworkRef, interval: float) -> None:
    """Poll the chain head and emit ``block:new`` for every block seen."""
    key = ref.key
    last_seen: int | None = None
    logger.info("Block listener started for %s", key)
    while True:
        if not hub.has_subscribers(Topic.BLOCKS, key):
            logger.info("Block listener for %s stopped: no subscribers", key)
            return

        try:
            head = await hub.reader.get_block_number(ref)
            start = head if last_seen is None else last_seen + 1
            start = max(start, head - MAX_BLOCK_CATCHUP + 1)
            for number in range(start, head + 1):
                block = await hub.reader.get_block(ref, number)
                if block is None:
                    # Node has not served this block yet; retry from here next tick
                    logger.debug("Block %d on %s not available yet", number, key)
                    break
                last_seen = number
                await hub.broadcast(Topic.BLOCKS, key, "block:new", block_payload(block, ref))
        except READ_ERRORS as exc:
            logger.error("Block information retrieval error on %s: %s", key, exc)

        await asyncio.sleep(interval)


async def poll_gas_price(hub: "SubscriptionHub", ref: NetworkRef, interval: float) -> None:
    """Emit ``gasPrice:update`` every *interval* seconds."""
    key = ref.key
    logger.info("Gas price poller started for %s every %.0fs", key, interval)
    while True:
        await asyncio.sleep(interval)
        if not hub.has_subscribers(Topic.GAS_PRICE, key):
            logger.info("Gas price poller for %s stopped: no subscribers", key)
            return

        try:
            fee_data = await hub.reader.get_fee_data(ref)
        except READ_ERRORS as exc:
            logger.error("Gas price retrieval error on %s: %s", key, exc)
            continue
        await hub.broadcast(
            Topic.GAS_PRICE, key, "gasPrice:update", gas_price_payload(fee_data, ref)
        )


async def watch_transaction(
    hub: "SubscriptionHub", ref: NetworkRef, tx_hash: str, interval: float
) -> None:
    """Report the current status of *tx_hash*, then wait for its receipt.

    Emits one ``transaction:update`` with ``pending``/``confirmed``, then a
    final ``transaction:update`` (``success``/``failed``) and a
    ``transaction:gasAnalysis`` once the receipt is available.
    """
    key = tx_hash.lower()
    try:
        tx = await hub.reader.get_transaction(ref, tx_hash)
    except READ_ERRORS as exc:
        logger.error("Transaction query error for %s: %s", tx_hash, exc)
        await hub.broadcast(
            Topic.TRANSACTION,
            key,
            "error",
            {"message": "An error occurred while querying transaction", "error": str(exc)},
        )
        return

    confirmations = tx.confirmations if tx is not None else 0
    status = TxStatus.CONFIRMED if confirmations > 0 else TxStatus.PENDING
    await hub.broadcast(
        Topic.TRANSACTION,
        key,
        "transaction:update",
        transaction_payload(tx_hash, status, confirmations=confirmations),
    )

    while True:
        if not hub.has_subscribers(Topic.TRANSACTION, key):
            logger.info("Transaction watcher for %s stopped: no subscribers", tx_hash)
            return

        try:
            receipt = await hub.reader.get_transaction_receipt(ref, tx_hash)
        except READ_ERRORS as exc:
            logger.warning("Receipt lookup for %s failed: %s", tx_hash, exc)
            receipt = None

        if receipt is not None:
            final_status = TxStatus.SUCCESS if receipt.succeeded else TxStatus.FAILED
            await hub.broadcast(
                Topic.TRANSACTION,
                key,
                "transaction:update",
                transaction_payload(
                    tx_hash, final_status, confirmations=1, receipt=receipt_summary(receipt)
                ),
            )
            await hub.broadcast(
                Topic.TRANSACTION, key, "transaction:gasAnalysis",
                gas_analysis_payload(tx_hash, receipt),
            )
            logger.info("Transaction %s mined with status %s", tx_hash, final_status)
            return

        await asyncio.sleep(interval)
