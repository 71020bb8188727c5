from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class ClientMessageBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)


class RoomScopedMessage(ClientMessageBase):
    # Left optional so a missing id is reported as "Room not found" rather than malformed.
    room_id: str | None = Field(default=None, alias="roomId")


class CreateRoomMessage(ClientMessageBase):
    type: Literal["createRoom"]


class JoinMessage(RoomScopedMessage):
    type: Literal["join"]
    spectate: bool = False
    nickname: str | None = Field(default=None, max_length=32)


class TakeSeatMessage(RoomScopedMessage):
    type: Literal["takeSeat"]
    color: str = Field(min_length=1, max_length=8)


class LeaveSeatMessage(RoomScopedMessage):
    type: Literal["leaveSeat"]


class MoveMessage(RoomScopedMessage):
    type: Literal["move"]
    from_square: str = Field(alias="from", min_length=2, max_length=2)
    to_square: str = Field(alias="to", min_length=2, max_length=2)
    promotion: str | None = Field(default=None, max_length=1)


class ResignMessage(RoomScopedMessage):
    type: Literal["resign"]


class OfferDrawMessage(RoomScopedMessage):
    type: Literal["offerDraw"]


class RespondDrawMessage(RoomScopedMessage):
    type: Literal["respondDraw"]
    accept: bool = False


class RestartMessage(RoomScopedMessage):
    type: Literal["restart"]


ClientMessage = Annotated[
    Union[
        CreateRoomMessage,
        JoinMessage,
        TakeSeatMessage,
        LeaveSeatMessage,
        MoveMessage,
        ResignMessage,
        OfferDrawMessage,
        RespondDrawMessage,
        RestartMessage,
    ],
    Field(discriminator="type"),
]

client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)

CLIENT_MESSAGE_TYPES: dict[str, type[ClientMessageBase]] = {
    "createRoom": CreateRoomMessage,
    "join": JoinMessage,
    "takeSeat": TakeSeatMessage,
    "leaveSeat": LeaveSeatMessage,
    "move": MoveMessage,
    "resign": ResignMessage,
    "offerDraw": OfferDrawMessage,
    "respondDraw": RespondDrawMessage,
    "restart": RestartMessage,
}


class ServerMessage(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class WelcomeMessage(ServerMessage):
    type: Literal["welcome"] = "welcome"
    conn_id: str


class RoomCreatedMessage(ServerMessage):
    type: Literal["roomCreated"] = "roomCreated"
    room_id: str


class ErrorMessage(ServerMessage):
    type: Literal["error"] = "error"
    message: str


class RestartRequestedMessage(ServerMessage):
    type: Literal["restartRequested"] = "restartRequested"
    from_conn_id: str = Field(alias="from")


class MoveSquares(ServerMessage):
    from_square: str = Field(alias="from")
    to_square: str = Field(alias="to")


class PlayerRead(ServerMessage):
    nickname: str
    spectator: bool = False


class RoomStateMessage(ServerMessage):
    type: Literal["roomState"] = "roomState"
    room_id: str
    fen: str
    turn: str
    last_move: MoveSquares | None = None
    in_check: bool = False
    result: dict | None = None
    seats: dict[str, str | None]
    players: dict[str, PlayerRead]
    draw_offer: str | None = None
