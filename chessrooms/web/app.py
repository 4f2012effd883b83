"""
FastAPI application — HTTP surface and the game WebSocket.

Exposes:
  GET  /api/health            Liveness plus live room count
  POST /api/rooms             Create a room under a generated id (bot integration)
  GET  /api/rooms/{room_id}   Room summary; creates the room if it doesn't exist
  GET  /room/{room_id}        Room page (static room.html if present, else the summary)
  GET  /                      Landing page (static index.html if present)
  WS   /ws                    Game session: JSON frames in, JSON events out

Configuration comes from the YAML file named by $CHESSROOMS_CONFIG
(default ./config.yaml; built-in defaults when that default file is absent).
"""

from __future__ import annotations

import asyncio
import json
import logging
import logging.handlers
import os
import uuid

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from chessrooms.config import Config, load_config_or_default
from chessrooms.events import OutboundEvent, to_json
from chessrooms.requests import InvalidRequestError, normalize_room_id
from chessrooms.web.gateway import SessionGateway

_CONFIG_PATH = os.environ.get("CHESSROOMS_CONFIG", "config.yaml")

config = load_config_or_default(_CONFIG_PATH, required="CHESSROOMS_CONFIG" in os.environ)

# --------------------------------------------------------------------------- #
# Logging                                                                      #
# --------------------------------------------------------------------------- #

_LOG_FILE = config.logging.file_path
_LOG_FILE.parent.mkdir(parents=True, exist_ok=True)

logging.basicConfig(
    level=config.logging.level,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    handlers=[
        logging.StreamHandler(),                                   # server console
        logging.handlers.RotatingFileHandler(
            _LOG_FILE, maxBytes=2 * 1024 * 1024, backupCount=3,  # 2 MB × 3 files
            encoding="utf-8",
        ),
    ],
)
logger = logging.getLogger("chessrooms")


class WebSocketConnection:
    """
    Outbound side of one WebSocket.

    push() only enqueues, so rooms and clock ticks never await a network
    write; pump() drains the queue in order on its own task.
    """

    def __init__(self, ws: WebSocket) -> None:
        self._ws = ws
        self._queue: asyncio.Queue[OutboundEvent | None] = asyncio.Queue()
        self.closed = False

    def push(self, event: OutboundEvent) -> None:
        if not self.closed:
            self._queue.put_nowait(event)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(None)

    async def pump(self) -> None:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            try:
                await self._ws.send_text(to_json(event))
            except (WebSocketDisconnect, RuntimeError) as exc:
                logger.warning("Send failed, dropping outbound queue: %s", exc)
                self.closed = True
                return


def create_app(cfg: Config) -> FastAPI:
    app = FastAPI(title="chessrooms")
    gateway = SessionGateway(cfg)
    app.state.gateway = gateway
    static_dir = cfg.server.static_path
    idle_seconds = cfg.rooms.idle_seconds
    background: list[asyncio.Task] = []

    async def _sweep_idle_rooms() -> None:
        while True:
            await asyncio.sleep(min(idle_seconds, 60.0))
            removed = gateway.rooms.sweep_idle(idle_seconds)
            if removed:
                logger.info("Swept %d idle room(s): %s", len(removed), ", ".join(removed))

    @app.on_event("startup")
    async def _startup() -> None:
        if idle_seconds > 0:
            background.append(asyncio.create_task(_sweep_idle_rooms()))

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        """Stop the sweeper and cancel every room clock before the loop goes away."""
        for task in background:
            task.cancel()
        background.clear()
        gateway.rooms.clear()

    # ----------------------------------------------------------------------- #
    # REST                                                                     #
    # ----------------------------------------------------------------------- #

    @app.get("/api/health")
    def health():
        return {"status": "ok", "rooms": len(gateway.rooms)}

    @app.post("/api/rooms")
    def create_room():
        room = gateway.rooms.create()
        return {"room_id": room.id}

    @app.get("/api/rooms/{room_id}")
    def room_summary(room_id: str):
        return _room_or_404(room_id).summary()

    @app.get("/room/{room_id}")
    def room_page(room_id: str):
        room = _room_or_404(room_id)
        page = static_dir / "room.html"
        if page.exists():
            return FileResponse(page)
        return room.summary()

    @app.get("/")
    def landing():
        page = static_dir / "index.html"
        if page.exists():
            return FileResponse(page)
        return {"service": "chessrooms", "ws": "/ws", "rooms": "/api/rooms"}

    def _room_or_404(room_id: str):
        # Loading a room page implies the room exists from then on
        try:
            key = normalize_room_id(room_id)
        except InvalidRequestError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return gateway.rooms.get_or_create(key)

    # ----------------------------------------------------------------------- #
    # WebSocket session                                                        #
    # ----------------------------------------------------------------------- #

    @app.websocket("/ws")
    async def session_ws(ws: WebSocket) -> None:
        await ws.accept()

        connection_id = uuid.uuid4().hex
        connection = WebSocketConnection(ws)
        gateway.connect(connection_id, connection)
        writer = asyncio.create_task(connection.pump())

        try:
            while True:
                message = await ws.receive()
                if message["type"] == "websocket.disconnect":
                    break
                text = message.get("text")
                if text is None:
                    continue   # binary frames carry nothing we understand
                try:
                    payload = json.loads(text)
                except json.JSONDecodeError:
                    logger.debug("Ignoring non-JSON frame from %s", connection_id)
                    continue
                gateway.handle(connection_id, payload)
        except WebSocketDisconnect:
            pass
        finally:
            gateway.disconnect(connection_id)
            connection.close()
            writer.cancel()
            try:
                await writer
            except (asyncio.CancelledError, WebSocketDisconnect):
                pass

    # ----------------------------------------------------------------------- #
    # Static assets                                                            #
    # ----------------------------------------------------------------------- #

    if static_dir.exists():
        app.mount("/static", StaticFiles(directory=static_dir), name="static")

    return app


app = create_app(config)
