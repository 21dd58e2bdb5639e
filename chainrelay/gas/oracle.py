"""Gas fee tiers, transaction simulation and gas recommendations."""

import logging
from dataclasses import dataclass

from chainrelay.clients.chain import ChainReader
from chainrelay.clients.resilience import RPCError, TaskFailedError
from chainrelay.models.chain import FeeData, NetworkRef
from chainrelay.models.enums import FeePriority
from chainrelay.models.gas import (
    GasInfo,
    GasParams,
    GasPrediction,
    GasRecommendation,
    GasTier,
    NetworkConditions,
    OptimalFees,
    SimulationResult,
    TransactionRequest,
)

logger = logging.getLogger(__name__)

ESTIMATED_TIMES = {
    "slow": "3-5 minutes",
    "standard": "1-3 minutes",
    "fast": "<1 minute",
}

# Safety margin applied to eth_estimateGas results, in percent
GAS_LIMIT_MARGIN_PERCENT = 110

CONTRACT_INTERACTION = "Smart Contract Interaction"
NATIVE_TRANSFER = "ETH Transfer"


@dataclass(frozen=True)
class TierPolicy:
    """Percent multipliers for each tier.

    EIP-1559 tiers scale the base fee (``*_base``) and the priority fee
    (``*_priority``); legacy tiers scale the single gas price (``*_legacy``).
    """

    slow_base: int = 120
    slow_priority: int = 50
    standard_base: int = 150
    standard_priority: int = 100
    fast_base: int = 200
    fast_priority: int = 200
    slow_legacy: int = 80
    standard_legacy: int = 100
    fast_legacy: int = 120


DEFAULT_TIER_POLICY = TierPolicy()


def _pct(value: int, percent: int) -> int:
    return value * percent // 100


def compute_fee_tiers(fee_data: FeeData, policy: TierPolicy = DEFAULT_TIER_POLICY) -> GasPrediction:
    """Derive slow/standard/fast fee tiers from *fee_data*.

    Raises:
        ValueError: If the fee data carries neither a base fee nor a gas price.
    """
    if fee_data.eip1559:
        base_fee = fee_data.last_base_fee_per_gas or fee_data.gas_price
        priority = fee_data.max_priority_fee_per_gas or 0
        if base_fee is None:
            raise ValueError("Fee data has no base fee or gas price")

        def tier(name: str, base_pct: int, priority_pct: int) -> GasTier:
            return GasTier(
                max_fee_per_gas=_pct(base_fee, base_pct),
                max_priority_fee_per_gas=_pct(priority, priority_pct),
                estimated_time=ESTIMATED_TIMES[name],
            )

        return GasPrediction(
            slow=tier("slow", policy.slow_base, policy.slow_priority),
            standard=tier("standard", policy.standard_base, policy.standard_priority),
            fast=tier("fast", policy.fast_base, policy.fast_priority),
            base_fee=base_fee,
            eip1559_supported=True,
        )

    gas_price = fee_data.gas_price
    if gas_price is None:
        raise ValueError("Fee data has no base fee or gas price")
    return GasPrediction(
        slow=GasTier(gas_price=_pct(gas_price, policy.slow_legacy), estimated_time=ESTIMATED_TIMES["slow"]),
        standard=GasTier(
            gas_price=_pct(gas_price, policy.standard_legacy), estimated_time=ESTIMATED_TIMES["standard"]
        ),
        fast=GasTier(gas_price=_pct(gas_price, policy.fast_legacy), estimated_time=ESTIMATED_TIMES["fast"]),
        eip1559_supported=False,
    )


class GasOracle:
    """Fee tiers over the queued, cached fee-data fetch.

    Args:
        reader: Chain reader used for fee data and gas estimates.
        policy: Tier multipliers.
    """

    def __init__(self, reader: ChainReader, policy: TierPolicy = DEFAULT_TIER_POLICY) -> None:
        self.reader = reader
        self.policy = policy

    async def predict(self, ref: NetworkRef) -> GasPrediction:
        fee_data = await self.reader.get_fee_data(ref)
        return compute_fee_tiers(fee_data, self.policy)

    async def optimal_fees(
        self, ref: NetworkRef, priority: FeePriority = FeePriority.MEDIUM
    ) -> OptimalFees:
        """Fee parameters for one priority level (low/medium/high)."""
        prediction = await self.predict(ref)
        tier = prediction.tier(priority)
        return OptimalFees(
            max_fee_per_gas=tier.max_fee_per_gas,
            max_priority_fee_per_gas=tier.max_priority_fee_per_gas,
            gas_price=tier.gas_price,
            estimated_time=tier.estimated_time,
            priority=priority,
            base_fee=prediction.base_fee,
            eip1559_supported=prediction.eip1559_supported,
        )

    async def simulate(self, ref: NetworkRef, tx: TransactionRequest) -> SimulationResult:
        """Estimate gas for *tx*, execute it statically and attach current fees.

        A revert of the static call is reported through ``success`` and
        ``error_message``; a failing gas estimate propagates.
        """
        gas_estimate = await self.reader.estimate_gas(ref, tx)

        success, call_result, error_message = True, None, None
        try:
            call_result = await self.reader.call(ref, tx)
        except (RPCError, TaskFailedError) as exc:
            cause = exc.last_error if isinstance(exc, TaskFailedError) else exc
            if not isinstance(cause, RPCError):
                raise
            success, error_message = False, cause.message
            logger.info("Static call on %s reverted: %s", ref.key, cause.message)

        fee_data = await self.reader.get_fee_data(ref)
        nonce = await self.reader.get_transaction_count(ref, tx.sender) if tx.sender else None
        return SimulationResult(
            success=success,
            gas_estimate=gas_estimate,
            call_result=call_result,
            error_message=error_message,
            nonce=nonce,
            gas_info=GasInfo(
                gas_price=fee_data.gas_price,
                max_fee_per_gas=fee_data.max_fee_per_gas,
                max_priority_fee_per_gas=fee_data.max_priority_fee_per_gas,
                base_fee=fee_data.last_base_fee_per_gas,
            ),
        )

    async def transaction_type(self, ref: NetworkRef, tx: TransactionRequest) -> str:
        """``Smart Contract Interaction`` for calldata or a contract recipient."""
        if tx.data and tx.data != "0x":
            return CONTRACT_INTERACTION
        if tx.to and await self.reader.get_code(ref, tx.to) not in ("0x", ""):
            return CONTRACT_INTERACTION
        return NATIVE_TRANSFER

    async def recommend(self, ref: NetworkRef, tx: TransactionRequest) -> GasRecommendation:
        """Suggest gas parameters for *tx*: recommended, cheaper and faster sets."""
        simulation = await self.simulate(ref, tx)
        prediction = await self.predict(ref)
        gas_estimate = simulation.gas_estimate
        gas_limit = _pct(gas_estimate, GAS_LIMIT_MARGIN_PERCENT)
        transaction_type = await self.transaction_type(ref, tx)
        savings = "~30%" if prediction.eip1559_supported else "~20%"

        def params(tier: GasTier, **extra: object) -> GasParams:
            return GasParams(
                gas_limit=gas_limit,
                max_fee_per_gas=tier.max_fee_per_gas,
                max_priority_fee_per_gas=tier.max_priority_fee_per_gas,
                gas_price=tier.gas_price,
                **extra,
            )

        return GasRecommendation(
            transaction_type=transaction_type,
            gas_estimate=gas_estimate,
            success=simulation.success,
            error_message=simulation.error_message,
            current_network_conditions=NetworkConditions(
                base_fee=prediction.base_fee,
                eip1559_supported=prediction.eip1559_supported,
            ),
            recommended=params(prediction.standard),
            saving=params(
                prediction.slow,
                estimated_time=prediction.slow.estimated_time,
                estimated_savings_percent=savings,
            ),
            speed=params(prediction.fast, estimated_time=prediction.fast.estimated_time),
            eip1559_supported=prediction.eip1559_supported,
        )
