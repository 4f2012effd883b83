"""
Typed outbound event dataclasses — the shared language between rooms and connections.

Rooms, the clock and the matchmaker create these; the session gateway routes
them to connections, and the web layer serialises them with to_json().
All events are frozen (immutable) so they're safe to queue across async
boundaries, and serialise to JSON-compatible dicts via dataclasses.asdict().
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal

Color = Literal["white", "black"]
GameResult = Literal["1-0", "0-1", "1/2-1/2", "*"]
GameOverReason = Literal[
    "checkmate",
    "stalemate",
    "threefold_repetition",
    "fifty_move",
    "insufficient_material",
    "draw",
    "resignation",
    "timeout",
    "agreement",
    "game_over",
]
RoomStatus = Literal["empty", "waiting"]

COLORS: tuple[Color, Color] = ("white", "black")


def opponent(color: Color) -> Color:
    return "black" if color == "white" else "white"


@dataclass(frozen=True)
class InitEvent:
    """Full snapshot sent to a connection when it joins (or re-joins) a room."""

    room_id: str
    seat: Color | None          # None = spectator
    fen: str
    timers: dict[str, int]


@dataclass(frozen=True)
class BoardStateEvent:
    fen: str
    turn: Color


@dataclass(frozen=True)
class MoveEvent:
    color: Color
    from_square: str
    to_square: str
    promotion: str | None       # piece letter, e.g. "q"
    san: str
    uci: str
    is_capture: bool
    is_castle: bool
    is_en_passant: bool
    is_check: bool


@dataclass(frozen=True)
class TimersEvent:
    white: int
    black: int
    ticking: Color | None = None


@dataclass(frozen=True)
class GameOverEvent:
    result: GameResult
    reason: GameOverReason
    winner: Color | None        # None = draw
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class LookingEvent:
    """Quickplay: the connection is parked in the matchmaker slot."""

    text: str = "Looking for an opponent..."


@dataclass(frozen=True)
class MatchedEvent:
    room_id: str
    seat: Color


@dataclass(frozen=True)
class WaitingEvent:
    """Seated, but the other seat is still empty."""

    room_id: str
    text: str = "Waiting for an opponent to join..."


@dataclass(frozen=True)
class DrawOfferedEvent:
    by: Color


@dataclass(frozen=True)
class DrawAcceptedEvent:
    by: Color


@dataclass(frozen=True)
class DrawDeclinedEvent:
    by: Color


@dataclass(frozen=True)
class InfoEvent:
    text: str


@dataclass(frozen=True)
class RoomStatusEvent:
    room_id: str
    status: RoomStatus


# Everything a room can push to a connection
OutboundEvent = (
    InitEvent
    | BoardStateEvent
    | MoveEvent
    | TimersEvent
    | GameOverEvent
    | LookingEvent
    | MatchedEvent
    | WaitingEvent
    | DrawOfferedEvent
    | DrawAcceptedEvent
    | DrawDeclinedEvent
    | InfoEvent
    | RoomStatusEvent
)


def to_json_dict(event: OutboundEvent) -> dict[str, Any]:
    """Event → {"type": <class name>, **fields}, with datetimes as ISO strings."""
    payload: dict[str, Any] = {"type": type(event).__name__}
    for key, value in dataclasses.asdict(event).items():
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        payload[key] = value
    return payload


def to_json(event: OutboundEvent) -> str:
    return json.dumps(to_json_dict(event))
