"""Administrative and read-only HTTP endpoints under ``/api/v1``."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from chainrelay.auth import token_matches
from chainrelay.clients.networks import get_network_info, get_supported_networks
from chainrelay.models.chain import SignedTransaction
from chainrelay.models.enums import FeePriority
from chainrelay.models.gas import TransactionRequest
from chainrelay.runtime import Gateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")

_bearer = HTTPBearer(auto_error=False)


def get_gateway(request: Request) -> Gateway:
    return request.app.state.gateway


def require_admin(
    gateway: Gateway = Depends(get_gateway),
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> None:
    """Reject the request unless it carries ``ADMIN_TOKEN`` when one is configured."""
    if not gateway.settings.admin_auth_enabled:
        return
    supplied = credentials.credentials if credentials else None
    if not token_matches(supplied, gateway.settings.admin_token):
        logger.warning("Rejected cache administration request: invalid bearer token")
        raise HTTPException(status_code=401, detail="Invalid or missing admin token")


# ── Cache ────────────────────────────────────────────────────────────────


@router.get("/cache-stats")
async def cache_stats(gateway: Gateway = Depends(get_gateway)) -> dict:
    return {"success": True, "data": gateway.cache.get_stats()}


@router.post("/clear-cache", dependencies=[Depends(require_admin)])
async def clear_all_caches(gateway: Gateway = Depends(get_gateway)) -> dict:
    cleared = gateway.cache.invalidate_all()
    logger.info("Cleared %d cache entries across all methods", cleared)
    return {"success": True, "message": "All cache cleared", "data": {"cleared": cleared}}


@router.post("/clear-cache/{method}", dependencies=[Depends(require_admin)])
async def clear_method_cache(method: str, gateway: Gateway = Depends(get_gateway)) -> dict:
    cleared = gateway.cache.invalidate(method)
    logger.info("Cleared %d cache entries for %s", cleared, method)
    return {
        "success": True,
        "message": f"{method} cache cleared",
        "data": {"method": method, "cleared": cleared},
    }


# ── Queue ────────────────────────────────────────────────────────────────


@router.get("/queue/stats")
async def queue_stats(gateway: Gateway = Depends(get_gateway)) -> dict:
    return {"success": True, "data": gateway.queue.get_stats()}


@router.get("/realtime/stats")
async def realtime_stats(gateway: Gateway = Depends(get_gateway)) -> dict:
    return {"success": True, "data": gateway.hub.get_stats()}


# ── Gas ──────────────────────────────────────────────────────────────────


@router.get("/gas/prediction")
async def gas_prediction(
    network: str | None = None,
    network_type: str | None = Query(default=None, alias="networkType"),
    gateway: Gateway = Depends(get_gateway),
) -> dict:
    prediction = await gateway.oracle.predict(gateway.network(network, network_type))
    return {"success": True, "data": prediction.model_dump(mode="json", by_alias=True)}


@router.get("/gas/optimal")
async def gas_optimal(
    network: str | None = None,
    network_type: str | None = Query(default=None, alias="networkType"),
    priority: FeePriority = FeePriority.MEDIUM,
    gateway: Gateway = Depends(get_gateway),
) -> dict:
    fees = await gateway.oracle.optimal_fees(gateway.network(network, network_type), priority)
    return {"success": True, "data": fees.model_dump(mode="json", by_alias=True)}


@router.post("/gas/recommend")
async def gas_recommend(
    tx: TransactionRequest,
    network: str | None = None,
    network_type: str | None = Query(default=None, alias="networkType"),
    gateway: Gateway = Depends(get_gateway),
) -> dict:
    recommendation = await gateway.oracle.recommend(gateway.network(network, network_type), tx)
    return {"success": True, "data": recommendation.model_dump(mode="json", by_alias=True)}


# ── Networks ─────────────────────────────────────────────────────────────


@router.get("/networks")
async def networks() -> dict:
    return {"success": True, "data": get_supported_networks()}


@router.get("/networks/{network}")
async def network_info(
    network: str,
    network_type: str | None = Query(default=None, alias="networkType"),
    gateway: Gateway = Depends(get_gateway),
) -> dict:
    ref = gateway.network(network, network_type)
    info = get_network_info(ref.network, ref.network_type)
    return {"success": True, "data": info.model_dump(mode="json")}


# ── Transactions ─────────────────────────────────────────────────────────


@router.post("/simulate")
async def simulate(
    tx: TransactionRequest,
    network: str | None = None,
    network_type: str | None = Query(default=None, alias="networkType"),
    gateway: Gateway = Depends(get_gateway),
) -> dict:
    result = await gateway.oracle.simulate(gateway.network(network, network_type), tx)
    return {"success": True, "data": result.model_dump(mode="json", by_alias=True)}


@router.post("/transactions")
async def send_transaction(
    body: SignedTransaction,
    network: str | None = None,
    network_type: str | None = Query(default=None, alias="networkType"),
    gateway: Gateway = Depends(get_gateway),
) -> dict:
    submission = await gateway.relay.submit(
        gateway.network(network, network_type), body.raw_transaction
    )
    return {"success": True, "data": submission.model_dump(mode="json", by_alias=True)}
