import json
import logging
from typing import Awaitable, Callable

from pydantic import ValidationError

from chessrooms.core.errors import MalformedMessage, RoomError, RoomNotFound
from chessrooms.realtime.broadcast import Broadcaster
from chessrooms.schemas.messages import (
    CLIENT_MESSAGE_TYPES,
    ClientMessage,
    CreateRoomMessage,
    ErrorMessage,
    JoinMessage,
    LeaveSeatMessage,
    MoveMessage,
    OfferDrawMessage,
    RespondDrawMessage,
    RestartMessage,
    RestartRequestedMessage,
    ResignMessage,
    RoomCreatedMessage,
    TakeSeatMessage,
    WelcomeMessage,
    client_message_adapter,
)
from chessrooms.services.connection_registry import Connection, ConnectionRegistry
from chessrooms.services.room_service import RestartOutcome, Room, RoomRegistry

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal error"

RoomHandler = Callable[[str, Room, ClientMessage], Awaitable[None]]


def decode_client_message(raw: object) -> ClientMessage:
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise MalformedMessage("Message is not valid JSON") from exc
    if not isinstance(raw, dict):
        raise MalformedMessage("Message must be a JSON object")
    try:
        return client_message_adapter.validate_python(raw)
    except ValidationError as exc:
        raise MalformedMessage() from exc


class MessageRouter:
    def __init__(self, rooms: RoomRegistry, connections: ConnectionRegistry) -> None:
        self.rooms = rooms
        self.connections = connections
        self.broadcaster = Broadcaster(connections)
        self._room_handlers: dict[type, RoomHandler] = {
            JoinMessage: self._on_join,
            TakeSeatMessage: self._on_take_seat,
            LeaveSeatMessage: self._on_leave_seat,
            MoveMessage: self._on_move,
            ResignMessage: self._on_resign,
            OfferDrawMessage: self._on_offer_draw,
            RespondDrawMessage: self._on_respond_draw,
            RestartMessage: self._on_restart,
        }
        handled = set(self._room_handlers) | {CreateRoomMessage}
        unhandled = set(CLIENT_MESSAGE_TYPES.values()) - handled
        if unhandled:
            names = ", ".join(sorted(cls.__name__ for cls in unhandled))
            raise RuntimeError(f"No handler for client messages: {names}")

    async def connect(
        self,
        send: Callable[[dict], Awaitable[None]],
        client_ip: str = "unknown",
    ) -> Connection:
        connection = self.connections.register(client_ip=client_ip, send=send)
        await self.broadcaster.send(connection.conn_id, WelcomeMessage(conn_id=connection.conn_id))
        return connection

    async def disconnect(self, conn_id: str) -> None:
        connection = self.connections.unregister(conn_id)
        if connection is None or not connection.room_id:
            return
        await self._leave_room(connection.room_id, conn_id)

    async def _leave_room(self, room_id: str, conn_id: str) -> None:
        room = self.rooms.find_room(room_id)
        if room is None:
            return
        async with room.lock:
            if conn_id not in room.members:
                return
            is_empty = self.rooms.leave(room, conn_id)
            if not is_empty:
                await self.broadcaster.broadcast_room_state(room)

    async def handle(self, conn_id: str, raw: object) -> None:
        try:
            message = decode_client_message(raw)
            await self.dispatch(conn_id, message)
        except MalformedMessage as exc:
            logger.warning("malformed message from %s: %s", conn_id, exc.__cause__ or exc)
            await self.send_error(conn_id, exc.message)
        except RoomError as exc:
            logger.debug("rejected message from %s: %s", conn_id, exc.message)
            await self.send_error(conn_id, exc.message)
        except Exception:
            logger.exception("unhandled error while processing a message from %s", conn_id)
            await self.send_error(conn_id, INTERNAL_ERROR_MESSAGE)

    async def send_error(self, conn_id: str, message: str) -> None:
        await self.broadcaster.send(conn_id, ErrorMessage(message=message))

    async def dispatch(self, conn_id: str, message: ClientMessage) -> None:
        if isinstance(message, CreateRoomMessage):
            await self._on_create_room(conn_id, message)
            return

        room = self.rooms.get_room(message.room_id)
        if isinstance(message, JoinMessage):
            await self._leave_previous_room(conn_id, room.id)

        handler = self._room_handlers[type(message)]
        # Mutation and broadcast share the lock so snapshots go out in mutation order.
        async with room.lock:
            if self.rooms.find_room(room.id) is not room:
                raise RoomNotFound()
            await handler(conn_id, room, message)

    async def _leave_previous_room(self, conn_id: str, next_room_id: str) -> None:
        connection = self.connections.get(conn_id)
        if connection is None or connection.room_id in (None, next_room_id):
            return
        previous_room_id = connection.room_id
        self.connections.set_room(conn_id, None)
        await self._leave_room(previous_room_id, conn_id)

    async def _on_create_room(self, conn_id: str, message: CreateRoomMessage) -> None:
        room = self.rooms.create_room()
        await self.broadcaster.send(conn_id, RoomCreatedMessage(room_id=room.id))

    async def _on_join(self, conn_id: str, room: Room, message: JoinMessage) -> None:
        self.rooms.join(room, conn_id, spectate=message.spectate, nickname=message.nickname)
        self.connections.set_room(conn_id, room.id)
        connection = self.connections.get(conn_id)
        if connection is not None:
            connection.nickname = room.players[conn_id].nickname
        await self.broadcaster.broadcast_room_state(room)

    async def _on_take_seat(self, conn_id: str, room: Room, message: TakeSeatMessage) -> None:
        room.take_seat(conn_id, message.color)
        await self.broadcaster.broadcast_room_state(room)

    async def _on_leave_seat(self, conn_id: str, room: Room, message: LeaveSeatMessage) -> None:
        room.leave_seat(conn_id)
        await self.broadcaster.broadcast_room_state(room)

    async def _on_move(self, conn_id: str, room: Room, message: MoveMessage) -> None:
        room.apply_move(conn_id, message.from_square, message.to_square, message.promotion)
        await self.broadcaster.broadcast_room_state(room)

    async def _on_resign(self, conn_id: str, room: Room, message: ResignMessage) -> None:
        room.resign(conn_id)
        await self.broadcaster.broadcast_room_state(room)

    async def _on_offer_draw(self, conn_id: str, room: Room, message: OfferDrawMessage) -> None:
        room.offer_draw(conn_id)
        await self.broadcaster.broadcast_room_state(room)

    async def _on_respond_draw(self, conn_id: str, room: Room, message: RespondDrawMessage) -> None:
        if room.respond_draw(conn_id, message.accept):
            await self.broadcaster.broadcast_room_state(room)

    async def _on_restart(self, conn_id: str, room: Room, message: RestartMessage) -> None:
        outcome = room.restart(conn_id)
        if outcome is RestartOutcome.RESET:
            logger.info("room %s restarted", room.id)
            await self.broadcaster.broadcast_room_state(room)
        else:
            await self.broadcaster.broadcast(room, RestartRequestedMessage(from_conn_id=conn_id))
