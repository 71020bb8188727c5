class RoomError(Exception):
    """Base class for failures reported back to the connection that caused them."""

    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class RoomNotFound(RoomError):
    default_message = "Room not found"


class SeatTaken(RoomError):
    default_message = "Seat already taken"


class NotYourTurn(RoomError):
    default_message = "Not your turn or you are not seated"


class IllegalMove(RoomError):
    default_message = "Invalid move"


class MalformedMessage(RoomError):
    default_message = "Malformed message"


class InvalidProtocolState(RoomError):
    default_message = "Action not allowed in the current state"
