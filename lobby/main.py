"""Party Lobby: reference lobby server."""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import random
import string
import logging

import socketio
import uvicorn

import config
config.setup_logging()

from catalog import load_catalog
from lobby_server import LobbyServer

logger = logging.getLogger(__name__)

if config.ALLOWED_ORIGINS.strip():
    origins = [o.strip() for o in config.ALLOWED_ORIGINS.split(",")]
else:
    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

catalog = load_catalog(config.CATALOG_FILE)
sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=origins)
lobby_server = LobbyServer(sio, catalog)
lobby_server.register()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Party Lobby server")
    lobby_server.start_cleanup_loop()
    yield
    logger.info("Shutting down Party Lobby server")


api = FastAPI(title="Party Lobby API", lifespan=lifespan)


def generate_room_code() -> str:
    for _ in range(config.MAX_ROOM_CODE_ATTEMPTS):
        code = ''.join(random.choices(string.ascii_uppercase, k=config.ROOM_CODE_LENGTH))
        if code not in lobby_server.rooms:
            return code
    raise RuntimeError("Failed to generate unique room code")


# --- Endpoints ---

@api.get("/catalog")
async def get_catalog():
    return catalog.model_dump(by_alias=True)


@api.post("/room/create")
async def create_room():
    lobby_server.remove_expired_rooms()
    if len(lobby_server.rooms) >= config.MAX_ROOMS:
        raise HTTPException(status_code=429, detail="Too many active rooms. Try again later.")
    try:
        room_code = generate_room_code()
    except RuntimeError:
        logger.exception("Room code space exhausted")
        raise HTTPException(status_code=503, detail="Could not allocate a room code")
    lobby_server.create_room(room_code)
    return {"room_code": room_code}


@api.get("/room/{room_code}")
async def get_room(room_code: str):
    room = lobby_server.rooms.get(room_code)
    if room is None or room.is_expired():
        raise HTTPException(status_code=404, detail="Room not found")
    return {
        "room_code": room_code,
        "phase": room.state.value,
        "participant_count": len(room.get_participant_list()),
    }


api.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
)


@api.get("/")
async def root():
    return {"message": "Party Lobby API is running"}


@api.get("/health")
async def health():
    return {"status": "ok", "rooms": len(lobby_server.rooms)}


app = socketio.ASGIApp(sio, other_asgi_app=api)


if __name__ == "__main__":
    uvicorn.run("main:app", host=config.HOST, port=config.PORT, reload=True)
