from typing import Annotated

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StrictStr

from chainrelay.models.enums import TxStatus


def parse_quantity(value: object) -> object:
    """Convert a JSON-RPC hex quantity (``"0x1a"``) or decimal string to int."""
    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            return int(text, 16) if len(text) > 2 else 0
        if text.isdigit():
            return int(text)
    return value


Quantity = Annotated[int, BeforeValidator(parse_quantity)]


class NetworkRef(BaseModel):
    """A chain and its variant, e.g. ``ethereum`` / ``mainnet``."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    network: StrictStr
    network_type: StrictStr = Field(alias="networkType")

    @property
    def key(self) -> str:
        return f"{self.network}:{self.network_type}"


class Block(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    number: Quantity
    hash: str | None = None
    parent_hash: str = Field(alias="parentHash")
    timestamp: Quantity
    miner: str | None = None
    transactions: list[str | dict] = []
    base_fee_per_gas: Quantity | None = Field(default=None, alias="baseFeePerGas")


class Transaction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hash: str
    block_number: Quantity | None = Field(default=None, alias="blockNumber")
    sender: str | None = Field(default=None, alias="from")
    to: str | None = None
    nonce: Quantity | None = None
    value: Quantity = 0
    gas: Quantity | None = None
    gas_price: Quantity | None = Field(default=None, alias="gasPrice")
    max_fee_per_gas: Quantity | None = Field(default=None, alias="maxFeePerGas")
    max_priority_fee_per_gas: Quantity | None = Field(
        default=None, alias="maxPriorityFeePerGas"
    )
    confirmations: int = 0


class Receipt(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transaction_hash: str = Field(alias="transactionHash")
    block_number: Quantity = Field(alias="blockNumber")
    status: Quantity | None = None
    gas_used: Quantity = Field(alias="gasUsed")
    effective_gas_price: Quantity | None = Field(default=None, alias="effectiveGasPrice")
    contract_address: str | None = Field(default=None, alias="contractAddress")

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class FeeData(BaseModel):
    gas_price: int | None = None
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None
    last_base_fee_per_gas: int | None = None

    @property
    def eip1559(self) -> bool:
        return self.max_fee_per_gas is not None and self.max_priority_fee_per_gas is not None


class SignedTransaction(BaseModel):
    """Body of a raw transaction submission."""

    model_config = ConfigDict(populate_by_name=True)

    raw_transaction: StrictStr = Field(alias="rawTransaction", pattern=r"^0x[0-9a-fA-F]+$")


class TransactionSubmission(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tx_hash: str = Field(alias="txHash")
    network: str
    network_type: str = Field(alias="networkType")
    sender: str | None = Field(default=None, alias="from")
    to: str | None = None
    status: TxStatus = TxStatus.PENDING
