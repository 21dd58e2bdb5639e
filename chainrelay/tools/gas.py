"""MCP tools for gas fees, balances, simulation and transaction relay."""

import logging

from fastmcp import FastMCP
from pydantic import ValidationError

from chainrelay.models.chain import SignedTransaction
from chainrelay.models.enums import FeePriority
from chainrelay.models.gas import GasPrediction, GasTier, SimulationResult, TransactionRequest
from chainrelay.realtime.listeners import format_ether
from chainrelay.server import get_gateway
from chainrelay.tools.error_messages import safe_tool_wrapper

logger = logging.getLogger(__name__)

WEI_PER_GWEI = 10**9


def format_gwei(wei: int | None) -> str:
    if wei is None:
        return "n/a"
    return f"{wei / WEI_PER_GWEI:.2f} gwei"


def _format_tier(name: str, tier: GasTier) -> str:
    if tier.max_fee_per_gas is not None:
        fees = (
            f"max fee {format_gwei(tier.max_fee_per_gas)}, "
            f"priority {format_gwei(tier.max_priority_fee_per_gas)}"
        )
    else:
        fees = f"gas price {format_gwei(tier.gas_price)}"
    return f"  {name}: {fees} ({tier.estimated_time})"


def _format_prediction(network_key: str, prediction: GasPrediction) -> str:
    kind = "EIP-1559" if prediction.eip1559_supported else "legacy"
    lines = [f"Gas fees on {network_key} ({kind}):"]
    if prediction.base_fee is not None:
        lines.append(f"  base fee: {format_gwei(prediction.base_fee)}")
    lines.append(_format_tier("slow", prediction.slow))
    lines.append(_format_tier("standard", prediction.standard))
    lines.append(_format_tier("fast", prediction.fast))
    return "\n".join(lines)


def _format_simulation(network_key: str, result: SimulationResult) -> str:
    if result.success:
        lines = [f"Simulation on {network_key} succeeded."]
    else:
        lines = [f"Simulation on {network_key} reverted: {result.error_message}"]
    lines.append(f"  gas estimate: {result.gas_estimate}")
    if result.call_result is not None:
        lines.append(f"  return data: {result.call_result}")
    if result.nonce is not None:
        lines.append(f"  sender nonce: {result.nonce}")
    info = result.gas_info
    if info.base_fee is not None:
        lines.append(f"  base fee: {format_gwei(info.base_fee)}")
    lines.append(f"  gas price: {format_gwei(info.gas_price)}")
    return "\n".join(lines)


def register_gas_tools(mcp: FastMCP) -> None:
    """Register gas, balance, simulation and relay tools on the MCP server."""

    @mcp.tool
    async def gas_prices(network: str | None = None, network_type: str | None = None) -> str:
        """Show slow, standard and fast gas fee tiers for a network.

        Args:
            network: Chain name, e.g. "ethereum", "polygon", "bsc".
                     Defaults to the configured network.
            network_type: "mainnet", a testnet name, or "testnet".

        Returns:
            The three fee tiers with estimated confirmation times.
        """
        gateway = get_gateway()
        requested = gateway.network(network, network_type)

        async def _predict() -> str:
            ref = gateway.resolve(network, network_type)
            prediction = await gateway.oracle.predict(ref)
            return _format_prediction(ref.key, prediction)

        return await safe_tool_wrapper(_predict, context={"network": requested.key})

    @mcp.tool
    async def optimal_gas_fees(
        priority: str = "medium",
        network: str | None = None,
        network_type: str | None = None,
    ) -> str:
        """Recommend fee parameters for one priority level.

        Args:
            priority: "low", "medium" or "high".
            network: Chain name. Defaults to the configured network.
            network_type: "mainnet", a testnet name, or "testnet".

        Returns:
            The fee parameters to use for a transaction.
        """
        try:
            level = FeePriority(priority.lower())
        except ValueError:
            return f"Unknown priority '{priority}'. Use low, medium or high."

        gateway = get_gateway()
        requested = gateway.network(network, network_type)

        async def _optimal() -> str:
            ref = gateway.resolve(network, network_type)
            fees = await gateway.oracle.optimal_fees(ref, level)
            return f"{level} priority on {ref.key}:\n" + _format_tier(level, fees)

        return await safe_tool_wrapper(_optimal, context={"network": requested.key})

    @mcp.tool
    async def wallet_balance(
        address: str,
        network: str | None = None,
        network_type: str | None = None,
    ) -> str:
        """Look up the native coin balance of an address.

        Args:
            address: 0x-prefixed account address.
            network: Chain name. Defaults to the configured network.
            network_type: "mainnet", a testnet name, or "testnet".

        Returns:
            The balance in whole coins and in wei.
        """
        gateway = get_gateway()
        requested = gateway.network(network, network_type)

        async def _balance() -> str:
            ref = gateway.resolve(network, network_type)
            wei = await gateway.reader.get_balance(ref, address)
            return f"Balance of {address} on {ref.key}: {format_ether(wei)} ({wei} wei)"

        return await safe_tool_wrapper(_balance, context={"network": requested.key})

    @mcp.tool
    async def simulate_transaction(
        to: str,
        from_address: str | None = None,
        value_wei: int | None = None,
        data: str | None = None,
        network: str | None = None,
        network_type: str | None = None,
    ) -> str:
        """Dry-run a transaction: estimate its gas and execute it without sending.

        Args:
            to: Recipient or contract address.
            from_address: Sender address; also reports the sender's nonce.
            value_wei: Amount of native coin to send, in wei.
            data: 0x-prefixed calldata for contract calls.
            network: Chain name. Defaults to the configured network.
            network_type: "mainnet", a testnet name, or "testnet".

        Returns:
            Whether the call would succeed, its gas estimate and current fees.
        """
        gateway = get_gateway()
        requested = gateway.network(network, network_type)
        tx = TransactionRequest(sender=from_address, to=to, value=value_wei, data=data)

        async def _simulate() -> str:
            ref = gateway.resolve(network, network_type)
            result = await gateway.oracle.simulate(ref, tx)
            return _format_simulation(ref.key, result)

        return await safe_tool_wrapper(_simulate, context={"network": requested.key})

    @mcp.tool
    async def send_raw_transaction(
        raw_transaction: str,
        network: str | None = None,
        network_type: str | None = None,
    ) -> str:
        """Broadcast an already signed transaction.

        Real-time subscribers of the transaction and of the sender and
        recipient balances are notified.

        Args:
            raw_transaction: 0x-prefixed signed transaction bytes.
            network: Chain name. Defaults to the configured network.
            network_type: "mainnet", a testnet name, or "testnet".

        Returns:
            The transaction hash.
        """
        try:
            signed = SignedTransaction(raw_transaction=raw_transaction)
        except ValidationError:
            return "Raw transaction must be 0x-prefixed hex."

        gateway = get_gateway()
        requested = gateway.network(network, network_type)

        async def _send() -> str:
            ref = gateway.resolve(network, network_type)
            submission = await gateway.relay.submit(ref, signed.raw_transaction)
            return f"Transaction {submission.tx_hash} sent on {ref.key} (pending)"

        return await safe_tool_wrapper(_send, context={"network": requested.key})
