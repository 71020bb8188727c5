from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chessrooms.api.routes import router as api_router
from chessrooms.core.config import get_settings
from chessrooms.core.logging_config import configure_logging
from chessrooms.realtime.runtime import room_registry
from chessrooms.realtime.socket_server import build_socket_app
from chessrooms.realtime.ws_endpoint import websocket_endpoint

settings = get_settings()
configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    room_registry.close()


api_app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
api_app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
api_app.include_router(api_router, prefix=settings.api_prefix)
api_app.add_api_websocket_route(settings.websocket_path, websocket_endpoint)

app = build_socket_app(api_app)
