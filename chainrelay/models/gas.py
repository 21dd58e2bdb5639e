from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

from chainrelay.models.enums import FeePriority

# Wei amounts are serialized as decimal strings; JSON numbers lose precision.
Wei = Annotated[int, PlainSerializer(str, return_type=str)]


class GasTier(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    max_fee_per_gas: Wei | None = Field(default=None, alias="maxFeePerGas")
    max_priority_fee_per_gas: Wei | None = Field(default=None, alias="maxPriorityFeePerGas")
    gas_price: Wei | None = Field(default=None, alias="gasPrice")
    estimated_time: str = Field(alias="estimatedTime")


class GasPrediction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    slow: GasTier
    standard: GasTier
    fast: GasTier
    base_fee: Wei | None = Field(default=None, alias="baseFee")
    eip1559_supported: bool = Field(alias="eip1559Supported")

    def tier(self, priority: FeePriority) -> GasTier:
        return {
            FeePriority.LOW: self.slow,
            FeePriority.MEDIUM: self.standard,
            FeePriority.HIGH: self.fast,
        }[priority]


class OptimalFees(GasTier):
    priority: FeePriority
    base_fee: Wei | None = Field(default=None, alias="baseFee")
    eip1559_supported: bool = Field(alias="eip1559Supported")


class GasParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    gas_limit: Wei = Field(alias="gasLimit")
    max_fee_per_gas: Wei | None = Field(default=None, alias="maxFeePerGas")
    max_priority_fee_per_gas: Wei | None = Field(default=None, alias="maxPriorityFeePerGas")
    gas_price: Wei | None = Field(default=None, alias="gasPrice")
    estimated_time: str | None = Field(default=None, alias="estimatedTime")
    estimated_savings_percent: str | None = Field(default=None, alias="estimatedSavingsPercent")


class GasInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    gas_price: Wei | None = Field(default=None, alias="gasPrice")
    max_fee_per_gas: Wei | None = Field(default=None, alias="maxFeePerGas")
    max_priority_fee_per_gas: Wei | None = Field(default=None, alias="maxPriorityFeePerGas")
    base_fee: Wei | None = Field(default=None, alias="baseFee")


class SimulationResult(BaseModel):
    """Outcome of estimating and statically executing a transaction."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    gas_estimate: Wei = Field(alias="gasEstimate")
    call_result: str | None = Field(default=None, alias="callResult")
    error_message: str | None = Field(default=None, alias="errorMessage")
    nonce: int | None = None
    gas_info: GasInfo = Field(alias="gasInfo")


class NetworkConditions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    base_fee: Wei | None = Field(default=None, alias="baseFee")
    eip1559_supported: bool = Field(alias="eip1559Supported")


class GasRecommendation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transaction_type: str = Field(alias="transactionType")
    gas_estimate: Wei = Field(alias="gasEstimate")
    success: bool = True
    error_message: str | None = Field(default=None, alias="errorMessage")
    current_network_conditions: NetworkConditions = Field(alias="currentNetworkConditions")
    recommended: GasParams
    saving: GasParams
    speed: GasParams
    eip1559_supported: bool = Field(alias="eip1559Supported")


class TransactionRequest(BaseModel):
    """Call parameters for gas estimation (``eth_estimateGas``)."""

    model_config = ConfigDict(populate_by_name=True)

    sender: str | None = Field(default=None, alias="from")
    to: str | None = None
    value: int | None = None
    data: str | None = None

    def to_rpc(self) -> dict:
        params: dict = {}
        if self.sender:
            params["from"] = self.sender
        if self.to:
            params["to"] = self.to
        if self.value is not None:
            params["value"] = hex(self.value)
        if self.data:
            params["data"] = self.data
        return params
