"""Tests for chainrelay.tools.error_messages: get_user_message + safe_tool_wrapper."""

from chainrelay.clients.resilience import (
    PermanentAPIError,
    PermanentRPCError,
    SchemaChangeError,
    TaskFailedError,
    TransientAPIError,
    UnsupportedNetworkError,
)
from chainrelay.tools.error_messages import get_user_message, safe_tool_wrapper

CONTEXT = {"network": "polygon:mainnet"}


class TestGetUserMessage:
    def test_unsupported_network(self):
        msg = get_user_message(UnsupportedNetworkError("Unsupported network: solana"))
        assert msg.startswith("Unsupported network: solana.")
        assert "supported networks" in msg

    def test_task_failed_after_transient_errors(self):
        error = TaskFailedError("polygon:mainnet", 3, TransientAPIError("503"))
        msg = get_user_message(error, context=CONTEXT)
        assert "polygon:mainnet is not responding reliably (3 attempts)" in msg

    def test_task_failed_after_permanent_error(self):
        error = TaskFailedError("polygon:mainnet", 1, PermanentAPIError("HTTP 403"))
        msg = get_user_message(error, context=CONTEXT)
        assert msg == "The request to polygon:mainnet failed: HTTP 403"

    def test_schema_change_error(self):
        msg = get_user_message(SchemaChangeError("missing result"))
        assert "unexpected response" in msg

    def test_rpc_error_shows_node_message(self):
        msg = get_user_message(PermanentRPCError(-32602, "invalid argument 0"), context=CONTEXT)
        assert msg == "The node for polygon:mainnet rejected the request: invalid argument 0"

    def test_transient_error(self):
        msg = get_user_message(TransientAPIError("503"))
        assert "temporary" in msg.lower()

    def test_transient_with_context(self):
        msg = get_user_message(TransientAPIError("503"), context=CONTEXT)
        assert "polygon:mainnet" in msg

    def test_permanent_error(self):
        msg = get_user_message(PermanentAPIError("not found"))
        assert "not found" in msg.lower()

    def test_unknown_error(self):
        msg = get_user_message(KeyError("unexpected"))
        assert "something went wrong" in msg.lower()

    def test_no_context_uses_default(self):
        msg = get_user_message(TransientAPIError("test"))
        assert "the network" in msg


class TestSafeToolWrapper:
    async def test_success_passthrough(self):
        async def ok():
            return "all good"

        result = await safe_tool_wrapper(ok)
        assert result == "all good"

    async def test_passes_arguments(self):
        async def add(a, b=0):
            return str(a + b)

        assert await safe_tool_wrapper(add, 2, b=3) == "5"

    async def test_catches_api_error(self):
        async def fail():
            raise TransientAPIError("boom")

        result = await safe_tool_wrapper(fail, context=CONTEXT)
        assert "polygon:mainnet" in result

    async def test_catches_generic_error(self):
        async def fail():
            raise RuntimeError("oops")

        result = await safe_tool_wrapper(fail)
        assert "something went wrong" in result.lower()
