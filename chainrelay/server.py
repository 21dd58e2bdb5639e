import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from chainrelay.runtime import Gateway

logger = logging.getLogger(__name__)

_gateway: Gateway | None = None


def get_gateway() -> Gateway:
    """Get the current Gateway instance. Raises if not initialized."""
    if _gateway is None:
        raise RuntimeError("Gateway not initialized. Server lifespan has not started.")
    return _gateway


def _reset_gateway() -> None:
    """Clear the module-level Gateway reference. Used in tests."""
    global _gateway  # noqa: PLW0603
    _gateway = None


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[dict]:
    """Build the shared gateway for the server lifecycle and close it on exit."""
    global _gateway  # noqa: PLW0603
    from chainrelay.config import get_settings

    _gateway = Gateway.from_settings(get_settings())
    logger.info("Gateway initialized")

    try:
        yield {"gateway": _gateway}
    finally:
        await _gateway.aclose()
        _gateway = None
        logger.info("Gateway closed")


mcp = FastMCP("chain-relay", lifespan=app_lifespan)


@mcp.custom_route("/health", methods=["GET"])
async def health_check(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


def setup_logging(log_level: str, log_path: Path) -> None:
    """Configure logging with file rotation and console output.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        log_path: Rotating log file, normally ``Settings.log_path``.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Exact type check; FileHandler subclasses StreamHandler
    if not any(type(h) is logging.StreamHandler for h in root_logger.handlers):
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(formatter)
        root_logger.addHandler(console)

    log_path.parent.mkdir(parents=True, exist_ok=True)

    if not any(isinstance(h, RotatingFileHandler) for h in root_logger.handlers):
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=3,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def prepare_runtime() -> None:
    """Create runtime directories and configure logging from settings."""
    from chainrelay.config import get_settings

    settings = get_settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    setup_logging(settings.log_level, settings.log_path)


def initialize() -> FastMCP:
    """Set up logging, auth and tools. Returns the MCP server."""
    from chainrelay.config import get_settings

    settings = get_settings()
    prepare_runtime()

    if settings.mcp_auth_token:
        from chainrelay.auth import BearerTokenVerifier

        mcp.auth = BearerTokenVerifier(settings.mcp_auth_token)
        logger.info("Bearer token auth enabled for MCP")

    from chainrelay.tools.gas import register_gas_tools
    from chainrelay.tools.network import register_network_tools

    register_gas_tools(mcp)
    register_network_tools(mcp)

    logger.info("Chain relay MCP server initialized")
    return mcp
