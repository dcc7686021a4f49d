"""FastAPI application factory, CORS, and WebSocket connection manager."""

from __future__ import annotations

from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Dict, List

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from worldforge.config import get_settings
from worldforge.utils.logging_config import get_logger, setup_logging

logger = get_logger("worldforge.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    # Ensure tables exist
    from worldforge.database import create_tables
    await create_tables()
    logger.info("startup complete")
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, version="1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from worldforge.routers import campaigns, forge, quests
    app.include_router(campaigns.router)
    app.include_router(forge.router)
    app.include_router(quests.router)
    return app


# --- Connection Manager ---
class ConnectionManager:
    """WebSocket connections grouped by the pipeline they watch."""

    def __init__(self):
        self.active_connections: Dict[str, List[WebSocket]] = defaultdict(list)

    async def connect(self, websocket: WebSocket, channel: str):
        await websocket.accept()
        self.active_connections[channel].append(websocket)

    def disconnect(self, websocket: WebSocket, channel: str):
        connections = self.active_connections.get(channel, [])
        if websocket in connections:
            connections.remove(websocket)
        if not connections:
            self.active_connections.pop(channel, None)

    async def send_json(self, message: dict, websocket: WebSocket):
        await websocket.send_json(message)

    async def broadcast(self, channel: str, message: dict):
        for connection in list(self.active_connections.get(channel, [])):
            try:
                await connection.send_json(message)
            except Exception as exc:
                logger.warning("dropping websocket on %s: %s", channel, exc)
                self.disconnect(connection, channel)


manager = ConnectionManager()
