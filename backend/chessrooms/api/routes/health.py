from fastapi import APIRouter

from chessrooms.realtime.runtime import connection_registry, room_registry

router = APIRouter()


@router.get("/health")
async def health() -> dict:
    return {
        "status": "ok",
        "rooms": len(room_registry),
        "connections": len(connection_registry),
    }
