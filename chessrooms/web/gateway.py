"""
Session gateway — the connection-facing coordinator.

Keeps the live connections, the connection → room binding, the room registry
and the matchmaker. Inbound frames are parsed into tagged requests and routed
here; rooms push outbound events back through deliver(), which only enqueues
onto the target connection. Everything in this module is synchronous, so one
request is handled start to finish before the event loop runs anything else.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from chessrooms.config import Config
from chessrooms.events import OutboundEvent, RoomStatusEvent
from chessrooms.matchmaker import Matchmaker, Pairing
from chessrooms.registry import RoomRegistry
from chessrooms.requests import (
    AcceptDrawRequest,
    CheckRoomStatusRequest,
    DeclineDrawRequest,
    EnterQuickplayRequest,
    InitializeRoomRequest,
    InvalidRequestError,
    JoinRoomRequest,
    MoveRequest,
    OfferDrawRequest,
    Request,
    ResetGameRequest,
    ResignRequest,
    parse_request,
)
from chessrooms.room import Room

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """A live client. push() must not block; delivery happens elsewhere."""

    def push(self, event: OutboundEvent) -> None: ...


class SessionGateway:
    def __init__(self, config: Config | None = None) -> None:
        config = config or Config()
        self._connections: dict[str, Connection] = {}
        self._bindings: dict[str, str] = {}   # connection id -> room id
        self.rooms = RoomRegistry(
            self, rooms=config.rooms, clock=config.clock, on_remove=self._forget_room
        )
        self.matchmaker = Matchmaker(self.rooms, self, self.is_live)

    # ------------------------------------------------------------------ #
    # Connections                                                          #
    # ------------------------------------------------------------------ #

    def connect(self, connection_id: str, connection: Connection) -> None:
        self._connections[connection_id] = connection
        logger.debug("Connection %s opened (%d live)", connection_id, len(self._connections))

    def disconnect(self, connection_id: str) -> None:
        """Transport-level loss: clear the quickplay slot, vacate, maybe destroy."""
        self._connections.pop(connection_id, None)
        if self.matchmaker.cancel(connection_id):
            logger.info("Connection %s left the quickplay queue", connection_id)
        self._leave_current(connection_id)
        logger.debug("Connection %s closed (%d live)", connection_id, len(self._connections))

    def is_live(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def room_of(self, connection_id: str) -> str | None:
        """Id of the room this connection is bound to, seated or spectating."""
        return self._bindings.get(connection_id)

    def deliver(self, connection_id: str, event: OutboundEvent) -> None:
        connection = self._connections.get(connection_id)
        if connection is None:
            logger.debug("Dropping %s for closed connection %s", type(event).__name__, connection_id)
            return
        connection.push(event)

    # ------------------------------------------------------------------ #
    # Inbound                                                              #
    # ------------------------------------------------------------------ #

    def handle(self, connection_id: str, payload: Any) -> bool:
        """Parse and route one frame. Returns False when it changed nothing."""
        if not self.is_live(connection_id):
            return False
        try:
            request = parse_request(payload)
        except InvalidRequestError as exc:
            logger.debug("Ignoring malformed frame from %s: %s", connection_id, exc)
            return False
        handled = self.dispatch(connection_id, request)
        if not handled:
            logger.debug("No-op %s from %s", type(request).__name__, connection_id)
        return handled

    def dispatch(self, connection_id: str, request: Request) -> bool:
        match request:
            case JoinRoomRequest():
                return self._join(connection_id, request)
            case EnterQuickplayRequest():
                pairing = self.matchmaker.enqueue(connection_id)
                if pairing is not None:
                    self._bind_pairing(pairing)
                return True
            case CheckRoomStatusRequest():
                room = self.rooms.get_or_create(request.room_id)
                self.deliver(connection_id, RoomStatusEvent(room_id=room.id, status=room.status))
                return True

        # Everything below needs an existing room
        room = self.rooms.get(request.room_id)
        if room is None:
            return False

        match request:
            case MoveRequest():
                return room.apply_move(connection_id, request.move)
            case ResignRequest():
                return room.resign(connection_id)
            case OfferDrawRequest():
                return room.offer_draw(connection_id)
            case AcceptDrawRequest():
                return room.accept_draw(connection_id)
            case DeclineDrawRequest():
                return room.decline_draw(connection_id)
            case ResetGameRequest():
                return room.reset(connection_id)
            case InitializeRoomRequest():
                return room.configure(request.settings)
            case _:
                return False

    # ------------------------------------------------------------------ #
    # Internals                                                            #
    # ------------------------------------------------------------------ #

    def _join(self, connection_id: str, request: JoinRoomRequest) -> bool:
        current = self._bindings.get(connection_id)
        if current is not None and current != request.room_id:
            self._leave_current(connection_id)

        room = self.rooms.get_or_create(request.room_id)
        room.join(connection_id, request.seat, is_live=self.is_live)
        self._bindings[connection_id] = room.id
        return True

    def _bind_pairing(self, pairing: Pairing) -> None:
        for connection_id in (pairing.white, pairing.black):
            current = self._bindings.get(connection_id)
            if current is not None and current != pairing.room.id:
                self._leave_current(connection_id)
            self._bindings[connection_id] = pairing.room.id

    def _leave_current(self, connection_id: str) -> None:
        room_id = self._bindings.pop(connection_id, None)
        if room_id is None:
            return
        room = self.rooms.get(room_id)
        # A room that never saw this connection is not ours to tear down
        if room is None or not room.leave(connection_id):
            return
        self.rooms.destroy_if_empty(room.id)

    def _forget_room(self, room: Room) -> None:
        """Registry callback: nobody stays bound to a room that is gone."""
        stale = [cid for cid, room_id in self._bindings.items() if room_id == room.id]
        for connection_id in stale:
            del self._bindings[connection_id]
