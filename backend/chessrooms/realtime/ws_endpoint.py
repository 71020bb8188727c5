import logging

from fastapi import WebSocket, WebSocketDisconnect, status

from chessrooms.realtime.runtime import message_router
from chessrooms.realtime.socket_server import (
    RATE_LIMITED_MESSAGE,
    _is_socket_connect_allowed,
    _is_socket_event_allowed,
)

logger = logging.getLogger(__name__)


def _client_ip(websocket: WebSocket) -> str:
    forwarded_for = websocket.headers.get("x-forwarded-for", "").strip()
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if websocket.client and websocket.client.host:
        return websocket.client.host
    return "unknown"


async def websocket_endpoint(websocket: WebSocket) -> None:
    client_ip = _client_ip(websocket)
    if not _is_socket_connect_allowed(client_ip):
        logger.warning("rejected websocket connection from %s: rate limited", client_ip)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    connection = await message_router.connect(websocket.send_json, client_ip=client_ip)
    try:
        while True:
            raw = await websocket.receive_text()
            if not _is_socket_event_allowed(connection.conn_id):
                await message_router.send_error(connection.conn_id, RATE_LIMITED_MESSAGE)
                continue
            await message_router.handle(connection.conn_id, raw)
    except WebSocketDisconnect as exc:
        logger.debug("websocket %s closed with code %s", connection.conn_id, exc.code)
    finally:
        await message_router.disconnect(connection.conn_id)
