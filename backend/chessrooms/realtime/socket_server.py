import logging

import socketio

from chessrooms.core.config import get_settings
from chessrooms.realtime.runtime import message_router
from chessrooms.schemas.messages import CLIENT_MESSAGE_TYPES
from chessrooms.services.rate_limit_service import rate_limit_service

logger = logging.getLogger(__name__)

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins="*")

settings = get_settings()
RATE_LIMITED_MESSAGE = "Rate limit exceeded"

_sid_to_conn_id: dict[str, str] = {}


def _extract_client_ip_from_environ(environ: dict) -> str:
    forwarded_for = environ.get("HTTP_X_FORWARDED_FOR", "")
    if isinstance(forwarded_for, str) and forwarded_for.strip():
        return forwarded_for.split(",")[0].strip()
    real_ip = environ.get("HTTP_X_REAL_IP", "")
    if isinstance(real_ip, str) and real_ip.strip():
        return real_ip.strip()
    remote = environ.get("REMOTE_ADDR", "")
    if isinstance(remote, str) and remote.strip():
        return remote.strip()
    return "unknown"


def _is_socket_connect_allowed(client_ip: str) -> bool:
    if not settings.rate_limit_enabled:
        return True
    decision = rate_limit_service.check(
        f"ws:connect:{client_ip or 'unknown'}",
        limit=settings.websocket_connect_limit,
        window_seconds=settings.websocket_connect_window_seconds,
    )
    return decision.allowed


def _is_socket_event_allowed(conn_id: str) -> bool:
    if not settings.rate_limit_enabled:
        return True
    decision = rate_limit_service.check(
        f"ws:event:{conn_id}",
        limit=settings.websocket_event_limit,
        window_seconds=settings.websocket_event_window_seconds,
    )
    return decision.allowed


def _sender_for(sid: str):
    async def send(payload: dict) -> None:
        await sio.emit(payload["type"], payload, room=sid)

    return send


@sio.event
async def connect(sid: str, environ: dict, auth: dict | None = None) -> bool:
    client_ip = _extract_client_ip_from_environ(environ)
    if not _is_socket_connect_allowed(client_ip):
        logger.warning("rejected socket connection from %s: rate limited", client_ip)
        return False
    connection = await message_router.connect(_sender_for(sid), client_ip=client_ip)
    _sid_to_conn_id[sid] = connection.conn_id
    return True


@sio.event
async def disconnect(sid: str, reason: str | None = None) -> None:
    conn_id = _sid_to_conn_id.pop(sid, None)
    if conn_id is None:
        return
    await message_router.disconnect(conn_id)


async def _route(sid: str, payload: object) -> None:
    conn_id = _sid_to_conn_id.get(sid)
    if conn_id is None:
        return
    if not _is_socket_event_allowed(conn_id):
        await message_router.send_error(conn_id, RATE_LIMITED_MESSAGE)
        return
    await message_router.handle(conn_id, payload)


@sio.event
async def message(sid: str, data: object = None) -> None:
    # Protocol objects sent as-is, carrying their own "type".
    await _route(sid, data)


def _typed_event_handler(event_name: str):
    async def handler(sid: str, data: object = None) -> None:
        if data is None:
            data = {}
        if isinstance(data, dict):
            data = {**data, "type": event_name}
        await _route(sid, data)

    handler.__name__ = f"on_{event_name}"
    return handler


for _event_name in CLIENT_MESSAGE_TYPES:
    sio.on(_event_name, handler=_typed_event_handler(_event_name))


def build_socket_app(api_app) -> socketio.ASGIApp:
    return socketio.ASGIApp(sio, other_asgi_app=api_app, socketio_path=settings.socketio_path)
