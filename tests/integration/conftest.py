"""Shared fixtures for integration tests (live node calls).

Reads go to the public endpoint of the chosen network unless an override is
given. Environment variables control the target:

Optional env vars:
    INTEGRATION_NETWORK       network name (default: "ethereum")
    INTEGRATION_NETWORK_TYPE  network type (default: "sepolia")
    INTEGRATION_RPC_URL       RPC endpoint override for that network
    INTEGRATION_ADDRESS       account whose balance is read
"""

import os

import pytest

from chainrelay.clients.networks import resolve_network
from chainrelay.models.chain import NetworkRef
from chainrelay.runtime import Gateway
from tests.factories import make_settings


@pytest.fixture(scope="session")
def live_network() -> NetworkRef:
    return resolve_network(
        os.environ.get("INTEGRATION_NETWORK", "ethereum"),
        os.environ.get("INTEGRATION_NETWORK_TYPE", "sepolia"),
    )


@pytest.fixture(scope="session")
def live_address() -> str:
    return os.environ.get(
        "INTEGRATION_ADDRESS", "0x0000000000000000000000000000000000000000"
    )


@pytest.fixture
async def live_gateway(tmp_path, live_network: NetworkRef):
    """Gateway with production retry timing against a real node."""
    overrides = {}
    url = os.environ.get("INTEGRATION_RPC_URL")
    if url:
        overrides[live_network.key] = url
    gateway = Gateway.from_settings(
        make_settings(tmp_path, rpc_urls=overrides, queue_retry_delay=1.0)
    )
    yield gateway
    await gateway.aclose()
