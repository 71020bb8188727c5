from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Awaitable, Callable
from uuid import uuid4

logger = logging.getLogger(__name__)

CONNECTION_ID_PREFIX = "guest-"
CONNECTION_ID_HEX_LENGTH = 6


@dataclass
class Connection:
    conn_id: str
    client_ip: str = "unknown"
    nickname: str | None = None
    room_id: str | None = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    send: Callable[[dict], Awaitable[None]] | None = field(default=None, repr=False)


class ConnectionRegistry:
    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        # Reserved until the registry drains, so a closed id is never reissued to a peer.
        self._issued_ids: set[str] = set()

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, conn_id: object) -> bool:
        return conn_id in self._connections

    def _next_id(self) -> str:
        while True:
            conn_id = f"{CONNECTION_ID_PREFIX}{uuid4().hex[:CONNECTION_ID_HEX_LENGTH]}"
            if conn_id not in self._issued_ids:
                return conn_id

    def register(
        self,
        client_ip: str = "unknown",
        send: Callable[[dict], Awaitable[None]] | None = None,
    ) -> Connection:
        connection = Connection(conn_id=self._next_id(), client_ip=client_ip, send=send)
        self._issued_ids.add(connection.conn_id)
        self._connections[connection.conn_id] = connection
        logger.info("connection %s opened from %s", connection.conn_id, client_ip)
        return connection

    def unregister(self, conn_id: str) -> Connection | None:
        connection = self._connections.pop(conn_id, None)
        if connection is None:
            return None
        if len(self._connections) == 0:
            self._issued_ids.clear()
        logger.info("connection %s closed", conn_id)
        return connection

    def get(self, conn_id: str) -> Connection | None:
        return self._connections.get(conn_id)

    def set_room(self, conn_id: str, room_id: str | None) -> str | None:
        connection = self._connections.get(conn_id)
        if connection is None:
            return None
        previous_room_id = connection.room_id
        connection.room_id = room_id
        return previous_room_id

    def clear(self) -> None:
        self._connections.clear()
        self._issued_ids.clear()
