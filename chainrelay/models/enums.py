from enum import StrEnum


class Topic(StrEnum):
    BALANCE = "balance"
    TRANSACTION = "transaction"
    BLOCKS = "blocks"
    GAS_PRICE = "gasPrice"


class TxStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SUCCESS = "success"
    FAILED = "failed"


class FeePriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Transport(StrEnum):
    GATEWAY = "gateway"
    STDIO = "stdio"
    STREAMABLE_HTTP = "streamable-http"
