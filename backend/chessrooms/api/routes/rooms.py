from fastapi import APIRouter, HTTPException, status

from chessrooms.core.errors import RoomNotFound
from chessrooms.realtime.broadcast import build_room_state
from chessrooms.realtime.runtime import room_registry

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_room() -> dict:
    room = room_registry.create_room()
    return {"roomId": room.id}


@router.get("/{room_id}")
async def get_room_state(room_id: str) -> dict:
    try:
        room = room_registry.get_room(room_id)
    except RoomNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc
    return build_room_state(room).to_wire()
