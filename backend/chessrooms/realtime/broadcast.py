import logging

from chessrooms.schemas.messages import (
    MoveSquares,
    PlayerRead,
    RoomStateMessage,
    ServerMessage,
)
from chessrooms.services.connection_registry import ConnectionRegistry
from chessrooms.services.room_service import Room

logger = logging.getLogger(__name__)


def build_room_state(room: Room) -> RoomStateMessage:
    """Full canonical snapshot of a room; clients never need an earlier one."""
    last_move = (
        MoveSquares(from_square=room.last_move.from_square, to_square=room.last_move.to_square)
        if room.last_move
        else None
    )
    return RoomStateMessage(
        room_id=room.id,
        fen=room.oracle.fen(),
        turn=room.oracle.turn(),
        last_move=last_move,
        in_check=room.oracle.in_check(),
        result=room.result.to_payload() if room.result else None,
        seats=dict(room.seats),
        players={
            conn_id: PlayerRead(nickname=player.nickname, spectator=player.spectator)
            for conn_id, player in room.players.items()
        },
        draw_offer=room.draw_offer,
    )


class Broadcaster:
    def __init__(self, connections: ConnectionRegistry) -> None:
        self._connections = connections

    async def send(self, conn_id: str, message: ServerMessage) -> bool:
        connection = self._connections.get(conn_id)
        if connection is None or connection.send is None:
            return False
        try:
            await connection.send(message.to_wire())
        except Exception:
            # A dead peer must not stop the fan-out to everyone else.
            logger.warning("failed to deliver %s to %s", type(message).__name__, conn_id, exc_info=True)
            return False
        return True

    async def broadcast(self, room: Room, message: ServerMessage) -> int:
        delivered = 0
        for conn_id in sorted(room.members):
            if await self.send(conn_id, message):
                delivered += 1
        return delivered

    async def broadcast_room_state(self, room: Room) -> int:
        return await self.broadcast(room, build_room_state(room))
