"""WebSocket endpoint for real-time subscriptions.

Frames are JSON text in both directions: ``{"event": <name>, "data": {...}}``.
"""

import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from functools import partial

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from chainrelay.clients.networks import resolve_network
from chainrelay.clients.resilience import UnsupportedNetworkError
from chainrelay.models.enums import Topic
from chainrelay.models.events import (
    AddressPayload,
    BalanceSubscription,
    NetworkSubscription,
    TransactionSubscription,
    TxHashPayload,
)
from chainrelay.realtime.hub import SubscriptionHub
from chainrelay.runtime import Gateway

logger = logging.getLogger(__name__)

router = APIRouter()

Handler = Callable[[SubscriptionHub, str, dict], Awaitable[None]]


async def _subscribe_balance(hub: SubscriptionHub, client_id: str, data: dict) -> None:
    request = BalanceSubscription.model_validate(data)
    await hub.subscribe(Topic.BALANCE, request.address, client_id, request.ref)


async def _subscribe_transaction(hub: SubscriptionHub, client_id: str, data: dict) -> None:
    request = TransactionSubscription.model_validate(data)
    await hub.subscribe(Topic.TRANSACTION, request.tx_hash, client_id, request.ref)


async def _subscribe_network(
    topic: Topic, hub: SubscriptionHub, client_id: str, data: dict
) -> None:
    request = NetworkSubscription.model_validate(data)
    await hub.subscribe(topic, request.ref.key, client_id, request.ref)


async def _unsubscribe_balance(hub: SubscriptionHub, client_id: str, data: dict) -> None:
    hub.unsubscribe(Topic.BALANCE, AddressPayload.model_validate(data).address, client_id)


async def _unsubscribe_transaction(hub: SubscriptionHub, client_id: str, data: dict) -> None:
    hub.unsubscribe(Topic.TRANSACTION, TxHashPayload.model_validate(data).tx_hash, client_id)


async def _unsubscribe_network(
    topic: Topic, hub: SubscriptionHub, client_id: str, data: dict
) -> None:
    request = NetworkSubscription.model_validate(data)
    ref = resolve_network(request.network, request.network_type)
    hub.unsubscribe(topic, ref.key, client_id)


HANDLERS: dict[str, Handler] = {
    "subscribe:balance": _subscribe_balance,
    "subscribe:transaction": _subscribe_transaction,
    "subscribe:blocks": partial(_subscribe_network, Topic.BLOCKS),
    "subscribe:gasPrice": partial(_subscribe_network, Topic.GAS_PRICE),
    "unsubscribe:balance": _unsubscribe_balance,
    "unsubscribe:transaction": _unsubscribe_transaction,
    "unsubscribe:blocks": partial(_unsubscribe_network, Topic.BLOCKS),
    "unsubscribe:gasPrice": partial(_unsubscribe_network, Topic.GAS_PRICE),
}


async def handle_message(hub: SubscriptionHub, client_id: str, raw: str) -> None:
    """Decode one inbound frame and dispatch it. Bad input yields an ``error`` event."""
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        await hub.emit_error(client_id, "Malformed message", "frame is not valid JSON")
        return

    if not isinstance(message, dict) or not isinstance(message.get("event"), str):
        await hub.emit_error(client_id, "Malformed message", "expected an object with an event name")
        return

    event = message["event"]
    data = message.get("data") or {}
    handler = HANDLERS.get(event)
    if handler is None:
        await hub.emit_error(client_id, f"Unknown event: {event}")
        return
    if not isinstance(data, dict):
        await hub.emit_error(client_id, f"Invalid payload for {event}", "data must be an object")
        return

    try:
        await handler(hub, client_id, data)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        await hub.emit_error(client_id, f"Invalid payload for {event}", f"invalid fields: {fields}")
    except UnsupportedNetworkError as exc:
        await hub.emit_error(client_id, f"Invalid payload for {event}", str(exc))


def client_ip(websocket: WebSocket) -> str:
    """Peer address of the socket.

    Forwarding headers are not read here. Behind a proxy, uvicorn rewrites the
    peer from ``X-Forwarded-For`` only for ``FORWARDED_ALLOW_IPS``.
    """
    return websocket.client.host if websocket.client else "unknown"


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket) -> None:
    gateway: Gateway = websocket.app.state.gateway
    ip = client_ip(websocket)
    await websocket.accept()

    if not gateway.connections.acquire(ip):
        await websocket.send_json({"event": "error", "data": {"message": "Too many connections"}})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    client_id = uuid.uuid4().hex

    async def send(event: str, payload: dict) -> None:
        await websocket.send_json({"event": event, "data": payload})

    gateway.hub.connect(client_id, send)
    try:
        while True:
            raw = await websocket.receive_text()
            await handle_message(gateway.hub, client_id, raw)
    except WebSocketDisconnect:
        pass
    finally:
        gateway.hub.disconnect(client_id)
        gateway.connections.release(ip)
