"""
Quickplay matchmaker — a single waiting slot.

The first anonymous player parks in the slot; the next one is paired with
them in a brand-new room (waiting player white, newcomer black). Pairing only
reserves the seats and tells both players where to go; they then join the
room normally to get the full game state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from chessrooms.events import LookingEvent, MatchedEvent
from chessrooms.registry import RoomRegistry
from chessrooms.room import Outbox, Room

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueEntry:
    connection_id: str
    enqueued_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class Pairing:
    """Result of a successful enqueue(): who sits where in which room."""

    room: Room
    white: str
    black: str


class Matchmaker:
    def __init__(
        self,
        registry: RoomRegistry,
        outbox: Outbox,
        is_live: Callable[[str], bool],
    ) -> None:
        self._registry = registry
        self._outbox = outbox
        self._is_live = is_live
        self.waiting: QueueEntry | None = None

    def enqueue(self, connection_id: str) -> Pairing | None:
        """
        Park the connection or pair it with whoever is waiting.

        Returns the Pairing when a room was created, None when the connection
        is (still) waiting.
        """
        entry = self.waiting
        if entry is not None and entry.connection_id != connection_id and not self._is_live(entry.connection_id):
            logger.info("Discarding dead quickplay entry %s", entry.connection_id)
            entry = self.waiting = None

        if entry is None:
            self.waiting = QueueEntry(connection_id)
            self._outbox.deliver(connection_id, LookingEvent())
            return None

        if entry.connection_id == connection_id:
            self._outbox.deliver(connection_id, LookingEvent())
            return None

        self.waiting = None
        room = self._registry.create()
        room.reserve(entry.connection_id, "white")
        room.reserve(connection_id, "black")
        logger.info(
            "Quickplay paired %s (waited %.1fs) with %s in room %s",
            entry.connection_id,
            (datetime.now() - entry.enqueued_at).total_seconds(),
            connection_id,
            room.id,
        )
        self._outbox.deliver(entry.connection_id, MatchedEvent(room_id=room.id, seat="white"))
        self._outbox.deliver(connection_id, MatchedEvent(room_id=room.id, seat="black"))
        return Pairing(room=room, white=entry.connection_id, black=connection_id)

    def cancel(self, connection_id: str) -> bool:
        """Clear the slot if this connection holds it."""
        if self.waiting is not None and self.waiting.connection_id == connection_id:
            self.waiting = None
            return True
        return False
