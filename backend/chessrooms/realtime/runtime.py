from chessrooms.core.config import get_settings
from chessrooms.realtime.router import MessageRouter
from chessrooms.services.connection_registry import ConnectionRegistry
from chessrooms.services.room_service import RoomRegistry

settings = get_settings()

room_registry = RoomRegistry(
    idle_timeout_seconds=settings.room_idle_timeout_seconds,
    room_id_length=settings.room_id_length,
)
connection_registry = ConnectionRegistry()
message_router = MessageRouter(room_registry, connection_registry)
