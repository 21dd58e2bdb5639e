"""Minimal async JSON-RPC 2.0 client for EVM nodes."""

import itertools
import logging

import httpx

from chainrelay.clients.resilience import (
    SchemaChangeError,
    TransientAPIError,
    classify_response,
    classify_rpc_error,
    validate_rpc_envelope,
)

logger = logging.getLogger(__name__)


class JsonRpcClient:
    """Async JSON-RPC client bound to one node URL.

    Args:
        url: HTTP(S) endpoint of the node.
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, url: str, timeout: float = 15.0) -> None:
        self.url = url
        self.timeout = timeout
        self._ids = itertools.count(1)

    async def call(self, method: str, params: list | None = None) -> object:
        """Invoke *method* and return its ``result``.

        Raises:
            TransientAPIError: On transport failures, 429 and 5xx responses,
                and node-side JSON-RPC errors.
            PermanentAPIError: On other 4xx responses and request errors.
            SchemaChangeError: If the body is not a JSON-RPC response.
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload)
        except httpx.TransportError as exc:
            logger.warning("RPC %s to %s failed: %s", method, self.url, exc)
            raise TransientAPIError(f"Transport error calling {method}: {exc}") from exc

        classify_response(response)
        try:
            data = response.json()
        except ValueError as exc:
            raise SchemaChangeError(f"Non-JSON response to {method}") from exc
        validate_rpc_envelope(data)

        error = data.get("error")
        if error:
            raise classify_rpc_error(error)
        return data.get("result")
