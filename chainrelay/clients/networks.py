"""Supported EVM networks, their chain ids and default public RPC endpoints."""

from pydantic import BaseModel

from chainrelay.clients.resilience import UnsupportedNetworkError
from chainrelay.models.chain import NetworkRef


class NativeCurrency(BaseModel):
    name: str
    symbol: str
    decimals: int = 18


class NetworkSpec(BaseModel):
    name: str
    chain_ids: dict[str, int]
    native_currency: NativeCurrency
    explorers: dict[str, str]
    rpc_urls: dict[str, str]


class NetworkInfo(BaseModel):
    name: str
    network: str
    network_type: str
    chain_id: int
    native_currency: NativeCurrency
    block_explorer: str | None


_ETHER = NativeCurrency(name="Ether", symbol="ETH")

NETWORKS: dict[str, NetworkSpec] = {
    "ethereum": NetworkSpec(
        name="Ethereum",
        chain_ids={"mainnet": 1, "sepolia": 11155111, "goerli": 5},
        native_currency=_ETHER,
        explorers={
            "mainnet": "https://etherscan.io",
            "sepolia": "https://sepolia.etherscan.io",
            "goerli": "https://goerli.etherscan.io",
        },
        rpc_urls={
            "mainnet": "https://ethereum.publicnode.com",
            "sepolia": "https://ethereum-sepolia.publicnode.com",
            "goerli": "https://ethereum-goerli.publicnode.com",
        },
    ),
    "polygon": NetworkSpec(
        name="Polygon",
        chain_ids={"mainnet": 137, "mumbai": 80001},
        native_currency=NativeCurrency(name="MATIC", symbol="MATIC"),
        explorers={
            "mainnet": "https://polygonscan.com",
            "mumbai": "https://mumbai.polygonscan.com",
        },
        rpc_urls={
            "mainnet": "https://polygon-bor.publicnode.com",
            "mumbai": "https://polygon-mumbai-bor.publicnode.com",
        },
    ),
    "bsc": NetworkSpec(
        name="Binance Smart Chain",
        chain_ids={"mainnet": 56, "testnet": 97},
        native_currency=NativeCurrency(name="BNB", symbol="BNB"),
        explorers={
            "mainnet": "https://bscscan.com",
            "testnet": "https://testnet.bscscan.com",
        },
        rpc_urls={
            "mainnet": "https://binance.publicnode.com",
            "testnet": "https://bsc-testnet.publicnode.com",
        },
    ),
    "optimism": NetworkSpec(
        name="Optimism",
        chain_ids={"mainnet": 10, "goerli": 420},
        native_currency=_ETHER,
        explorers={
            "mainnet": "https://optimistic.etherscan.io",
            "goerli": "https://goerli-optimism.etherscan.io",
        },
        rpc_urls={
            "mainnet": "https://optimism.publicnode.com",
            "goerli": "https://optimism-goerli.publicnode.com",
        },
    ),
    "arbitrum": NetworkSpec(
        name="Arbitrum",
        chain_ids={"mainnet": 42161, "goerli": 421613},
        native_currency=_ETHER,
        explorers={
            "mainnet": "https://arbiscan.io",
            "goerli": "https://goerli.arbiscan.io",
        },
        rpc_urls={
            "mainnet": "https://arbitrum.publicnode.com",
            "goerli": "https://arbitrum-goerli.publicnode.com",
        },
    ),
}


def normalize_network_type(network: str, network_type: str) -> str:
    """Map the generic ``testnet`` alias onto each chain's test network."""
    if network_type != "testnet":
        return network_type
    if network == "bsc":
        return "testnet"
    if network == "polygon":
        return "mumbai"
    return "goerli"


def resolve_network(network: str, network_type: str) -> NetworkRef:
    """Validate a network pair and return its normalised reference.

    Raises:
        UnsupportedNetworkError: If the network or its type is unknown.
    """
    entry = NETWORKS.get(network)
    if entry is None:
        raise UnsupportedNetworkError(f"Unsupported network: {network}")
    normalized = normalize_network_type(network, network_type)
    if normalized not in entry.chain_ids:
        raise UnsupportedNetworkError(
            f"{network_type} type is not supported for {network} network"
        )
    return NetworkRef(network=network, network_type=normalized)


def get_rpc_url(ref: NetworkRef, overrides: dict[str, str] | None = None) -> str:
    """Return the RPC URL for *ref*, preferring configured overrides."""
    resolved = resolve_network(ref.network, ref.network_type)
    if overrides and resolved.key in overrides:
        return overrides[resolved.key]
    return NETWORKS[resolved.network].rpc_urls[resolved.network_type]


def get_network_info(network: str, network_type: str) -> NetworkInfo:
    """Public description of one network pair. RPC endpoints are not exposed."""
    ref = resolve_network(network, network_type)
    entry = NETWORKS[ref.network]
    return NetworkInfo(
        name=entry.name,
        network=ref.network,
        network_type=ref.network_type,
        chain_id=entry.chain_ids[ref.network_type],
        native_currency=entry.native_currency,
        block_explorer=entry.explorers.get(ref.network_type),
    )


def get_supported_networks() -> dict[str, dict]:
    return {
        key: {
            "name": entry.name,
            "types": list(entry.chain_ids),
            "native_currency": entry.native_currency.model_dump(),
        }
        for key, entry in NETWORKS.items()
    }
