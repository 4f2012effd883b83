"""
The single owned mapping from room id to Room.

Nothing else in the process keeps rooms. Ids are normalised to upper case
before they get here (see requests.normalize_room_id); generated ids are
upper-case hex.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Callable

from chessrooms.config import ClockConfig, RoomConfig
from chessrooms.room import Outbox, Room

logger = logging.getLogger(__name__)


class RoomRegistry:
    def __init__(
        self,
        outbox: Outbox,
        *,
        rooms: RoomConfig | None = None,
        clock: ClockConfig | None = None,
        on_remove: Callable[[Room], None] | None = None,
    ) -> None:
        self._outbox = outbox
        self._room_cfg = rooms or RoomConfig()
        self._clock_cfg = clock or ClockConfig()
        self._on_remove = on_remove
        self._rooms: dict[str, Room] = {}

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return isinstance(room_id, str) and room_id.upper() in self._rooms

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id.upper())

    def get_or_create(self, room_id: str) -> Room:
        """Existing room untouched, or a fresh unconfigured one."""
        key = room_id.upper()
        room = self._rooms.get(key)
        if room is None:
            room = self._new_room(key)
        return room

    def create(self) -> Room:
        """New room under a freshly generated, currently unused id."""
        return self._new_room(self.generate_id())

    def generate_id(self) -> str:
        while True:
            # token_hex(n) gives 2n chars; trim to the configured length
            room_id = secrets.token_hex((self._room_cfg.id_length + 1) // 2)
            room_id = room_id[: self._room_cfg.id_length].upper()
            if room_id not in self._rooms:
                return room_id

    def destroy_if_empty(self, room_id: str) -> bool:
        """Remove the room if both seats are vacant. Safe to call redundantly."""
        room = self._rooms.get(room_id.upper())
        if room is None or not room.is_empty:
            return False
        self._remove(room)
        return True

    def sweep_idle(self, max_idle: float, *, now: float | None = None) -> list[str]:
        """
        Remove rooms nobody has occupied for max_idle seconds.

        Catches rooms created lazily (status checks, room pages, POST
        /api/rooms) that no one ever sat in. Returns the removed ids.
        """
        now = time.monotonic() if now is None else now
        idle = [
            room
            for room in self._rooms.values()
            if room.is_vacant and now - room.last_activity >= max_idle
        ]
        for room in idle:
            self._remove(room)
        return [room.id for room in idle]

    def clear(self) -> None:
        for room in list(self._rooms.values()):
            self._remove(room)

    def _new_room(self, room_id: str) -> Room:
        room = Room(
            room_id,
            self._outbox,
            default_seconds=self._clock_cfg.default_seconds,
            tick_interval=self._clock_cfg.tick_interval,
        )
        self._rooms[room_id] = room
        logger.info("Room %s created (%d live)", room_id, len(self._rooms))
        return room

    def _remove(self, room: Room) -> None:
        # Clock first, so no tick can fire for a room that is no longer registered
        room.close()
        self._rooms.pop(room.id, None)
        if self._on_remove is not None:
            self._on_remove(room)
        logger.info("Room %s destroyed (%d live)", room.id, len(self._rooms))
