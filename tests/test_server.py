import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from chainrelay.runtime import Gateway
from chainrelay.server import (
    _reset_gateway,
    app_lifespan,
    get_gateway,
    initialize,
    mcp,
    prepare_runtime,
    setup_logging,
)


def _clear_root_handlers() -> None:
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()


class TestSetupLogging:
    """Test setup_logging configuration."""

    def setup_method(self):
        _clear_root_handlers()

    def teardown_method(self):
        _clear_root_handlers()

    def test_sets_root_logger_level(self, tmp_path):
        setup_logging("DEBUG", tmp_path / "logs" / "gateway.log")
        assert logging.getLogger().level == logging.DEBUG

    def test_creates_console_handler(self, tmp_path):
        setup_logging("INFO", tmp_path / "logs" / "gateway.log")
        root = logging.getLogger()
        stream_handlers = [h for h in root.handlers if type(h) is logging.StreamHandler]
        assert len(stream_handlers) == 1

    def test_log_file_path(self, tmp_path):
        setup_logging("INFO", tmp_path / "logs" / "gateway.log")
        root = logging.getLogger()
        file_handler = next(h for h in root.handlers if isinstance(h, RotatingFileHandler))
        assert Path(file_handler.baseFilename) == tmp_path / "logs" / "gateway.log"
        assert file_handler.maxBytes == 5 * 1024 * 1024
        assert file_handler.backupCount == 3

    def test_no_duplicate_handlers_on_second_call(self, tmp_path):
        setup_logging("INFO", tmp_path / "logs" / "gateway.log")
        setup_logging("INFO", tmp_path / "logs" / "gateway.log")
        root = logging.getLogger()
        stream_handlers = [h for h in root.handlers if type(h) is logging.StreamHandler]
        file_handlers = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
        assert len(stream_handlers) == 1
        assert len(file_handlers) == 1

    def test_invalid_log_level_falls_back_to_info(self, tmp_path):
        setup_logging("INVALID_LEVEL", tmp_path / "logs" / "gateway.log")
        assert logging.getLogger().level == logging.INFO


class TestPrepareRuntime:
    def setup_method(self):
        _clear_root_handlers()

    def teardown_method(self):
        _clear_root_handlers()

    def test_creates_data_and_log_dirs(self, tmp_data_dir, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_data_dir))
        prepare_runtime()
        assert (tmp_data_dir / "logs").is_dir()
        root = logging.getLogger()
        file_handler = next(h for h in root.handlers if isinstance(h, RotatingFileHandler))
        assert Path(file_handler.baseFilename) == tmp_data_dir / "logs" / "gateway.log"


class TestInitialize:
    """Test the initialize function."""

    def setup_method(self):
        _clear_root_handlers()
        mcp.auth = None

    def teardown_method(self):
        _clear_root_handlers()
        mcp.auth = None

    def test_returns_mcp_instance(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        assert initialize() is mcp

    def test_sets_auth_when_token_configured(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        monkeypatch.setenv("MCP_AUTH_TOKEN", "a" * 48)
        result = initialize()
        from chainrelay.auth import BearerTokenVerifier

        assert isinstance(result.auth, BearerTokenVerifier)

    def test_no_auth_without_token(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        result = initialize()
        assert result.auth is None

    async def test_registers_tools(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        from fastmcp import Client

        async with Client(initialize()) as client:
            names = {tool.name for tool in await client.list_tools()}
        assert {
            "gas_prices",
            "optimal_gas_fees",
            "wallet_balance",
            "simulate_transaction",
            "send_raw_transaction",
            "rpc_cache_stats",
            "clear_rpc_cache",
            "queue_stats",
            "supported_networks",
        } <= names


class TestHealthCheck:
    """Test the /health custom route handler."""

    async def test_health_returns_ok(self):
        from chainrelay.server import health_check

        response = await health_check(None)
        assert response.status_code == 200
        assert response.body == b'{"status":"ok"}'


class TestAppLifespan:
    """Test the gateway lifecycle."""

    def setup_method(self):
        _reset_gateway()

    def teardown_method(self):
        _reset_gateway()

    def test_get_gateway_before_startup_raises(self):
        with pytest.raises(RuntimeError, match="Gateway not initialized"):
            get_gateway()

    async def test_lifespan_builds_and_closes_gateway(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        import chainrelay.server as server_module

        async with app_lifespan(mcp) as result:
            assert isinstance(result["gateway"], Gateway)
            assert get_gateway() is result["gateway"]

        assert server_module._gateway is None

    async def test_lifespan_applies_settings(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        monkeypatch.setenv("QUEUE_CONCURRENCY", "7")
        monkeypatch.setenv("CACHE_MAX_SIZE", "50")

        async with app_lifespan(mcp) as result:
            gateway = result["gateway"]
            assert gateway.queue.concurrency == 7
            assert gateway.cache.get_stats()["max_size"] == 50
