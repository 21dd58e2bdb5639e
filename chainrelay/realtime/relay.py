"""Signed transaction submission with real-time follow-up.

After a raw transaction is accepted by the node, transaction subscribers get a
``pending`` update straight away. Once the transaction had time to reach the
mempool, the sender and recipient balances are re-read from the node and
pushed to their balance subscribers.
"""

import asyncio
import logging
from collections.abc import Iterable

from chainrelay.clients.chain import ChainReader
from chainrelay.clients.networks import resolve_network
from chainrelay.models.chain import NetworkRef, TransactionSubmission
from chainrelay.models.enums import TxStatus
from chainrelay.realtime.hub import SubscriptionHub
from chainrelay.realtime.listeners import READ_ERRORS

logger = logging.getLogger(__name__)


class TransactionRelay:
    """Broadcasts signed transactions and drives the matching hub updates.

    Args:
        reader: Chain reader used to submit and look up the transaction.
        hub: Hub whose transaction and balance subscribers are notified.
        balance_refresh_delay: Seconds to wait before re-reading balances.
    """

    def __init__(
        self,
        reader: ChainReader,
        hub: SubscriptionHub,
        balance_refresh_delay: float = 2.0,
    ) -> None:
        self.reader = reader
        self.hub = hub
        self.balance_refresh_delay = balance_refresh_delay
        self._tasks: set[asyncio.Task] = set()

    async def submit(self, ref: NetworkRef, raw_transaction: str) -> TransactionSubmission:
        """Send *raw_transaction* on *ref* and schedule the follow-up updates.

        Raises:
            UnsupportedNetworkError: If the network pair is not configured.
            TaskFailedError: If the node rejected or never accepted the transaction.
        """
        ref = resolve_network(ref.network, ref.network_type)
        tx_hash = await self.reader.send_raw_transaction(ref, raw_transaction)
        logger.info("Relayed transaction %s on %s", tx_hash, ref.key)

        await self.hub.broadcast_transaction_update(tx_hash, TxStatus.PENDING)

        sender = recipient = None
        try:
            tx = await self.reader.get_transaction(ref, tx_hash)
        except READ_ERRORS as exc:
            logger.warning("Lookup of relayed transaction %s failed: %s", tx_hash, exc)
            tx = None
        if tx is not None:
            sender, recipient = tx.sender, tx.to

        addresses = [address for address in (sender, recipient) if address]
        if addresses:
            self._spawn(self._refresh_balances(ref, addresses))

        return TransactionSubmission(
            tx_hash=tx_hash,
            network=ref.network,
            network_type=ref.network_type,
            sender=sender,
            to=recipient,
        )

    async def _refresh_balances(self, ref: NetworkRef, addresses: Iterable[str]) -> None:
        await asyncio.sleep(self.balance_refresh_delay)
        for address in addresses:
            self.reader.forget_balance(ref, address)
            await self.hub.broadcast_balance_update(address, ref)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def aclose(self) -> None:
        """Cancel balance refreshes that have not run yet."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
