"""Inbound WebSocket payloads."""

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from chainrelay.models.chain import NetworkRef


class NetworkSubscription(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    network: StrictStr
    network_type: StrictStr = Field(alias="networkType")

    @property
    def ref(self) -> NetworkRef:
        return NetworkRef(network=self.network, network_type=self.network_type)


class BalanceSubscription(NetworkSubscription):
    address: StrictStr = Field(min_length=1)


class TransactionSubscription(NetworkSubscription):
    tx_hash: StrictStr = Field(alias="txHash", min_length=1)


class AddressPayload(BaseModel):
    address: StrictStr


class TxHashPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tx_hash: StrictStr = Field(alias="txHash")
