from chainrelay.models.chain import (
    Block,
    FeeData,
    NetworkRef,
    Receipt,
    SignedTransaction,
    Transaction,
    TransactionSubmission,
)
from chainrelay.models.enums import FeePriority, Topic, Transport, TxStatus
from chainrelay.models.events import (
    AddressPayload,
    BalanceSubscription,
    NetworkSubscription,
    TransactionSubscription,
    TxHashPayload,
)
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

__all__ = [
    "AddressPayload",
    "BalanceSubscription",
    "Block",
    "FeeData",
    "FeePriority",
    "GasInfo",
    "GasParams",
    "GasPrediction",
    "GasRecommendation",
    "GasTier",
    "NetworkConditions",
    "NetworkRef",
    "NetworkSubscription",
    "OptimalFees",
    "Receipt",
    "SignedTransaction",
    "SimulationResult",
    "Topic",
    "Transaction",
    "TransactionRequest",
    "TransactionSubmission",
    "TransactionSubscription",
    "Transport",
    "TxHashPayload",
    "TxStatus",
]
