"""FastAPI application serving the admin API, health check and WebSocket."""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from chainrelay.api import admin, realtime
from chainrelay.clients.resilience import APIError, TaskFailedError, UnsupportedNetworkError
from chainrelay.config import Settings, get_settings
from chainrelay.runtime import Gateway

logger = logging.getLogger(__name__)


def _error_body(message: str, error: Exception) -> dict:
    return {"success": False, "message": message, "error": str(error)}


async def _task_failed(request: Request, exc: Exception) -> JSONResponse:
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=502, content=_error_body("Upstream request failed", exc))


async def _unsupported_network(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=400, content=_error_body("Unsupported network", exc))


def create_app(
    settings: Settings | None = None,
    gateway_factory: Callable[[Settings], Gateway] | None = None,
) -> FastAPI:
    """Build the gateway HTTP application.

    Args:
        settings: Configuration; the cached settings when omitted.
        gateway_factory: Builds the Gateway at startup. Defaults to
            ``Gateway.from_settings``; tests inject fakes here.
    """
    settings = settings or get_settings()
    factory = gateway_factory or Gateway.from_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        gateway = factory(settings)
        app.state.gateway = gateway
        logger.info("Gateway HTTP server started")
        try:
            yield
        finally:
            await gateway.aclose()

    app = FastAPI(title="chain-relay", lifespan=lifespan)
    app.include_router(admin.router)
    app.include_router(realtime.router)
    app.add_exception_handler(TaskFailedError, _task_failed)
    app.add_exception_handler(APIError, _task_failed)
    app.add_exception_handler(UnsupportedNetworkError, _unsupported_network)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app
