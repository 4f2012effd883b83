"""
Inbound request dataclasses and the strict wire parser.

Every WebSocket frame is a JSON object tagged with "type". parse_request()
maps it to exactly one request dataclass or raises InvalidRequestError; it
never guesses at alternative payload shapes. Room ids are normalised to upper
case here, so nothing downstream has to care about case.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from chessrooms.board import MoveDescriptor
from chessrooms.events import Color
from chessrooms.room import ColorPreference, RoomSettings

_ROOM_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

_SEAT_ALIASES: dict[str, Color] = {
    "w": "white",
    "white": "white",
    "b": "black",
    "black": "black",
}

_COLOR_PREFERENCES: dict[str, ColorPreference] = {
    **_SEAT_ALIASES,
    "random": "random",
}


class InvalidRequestError(ValueError):
    """Raised when an inbound frame does not match any known request shape."""


@dataclass(frozen=True)
class JoinRoomRequest:
    room_id: str
    seat: Color | None = None


@dataclass(frozen=True)
class EnterQuickplayRequest:
    pass


@dataclass(frozen=True)
class MoveRequest:
    room_id: str
    move: MoveDescriptor


@dataclass(frozen=True)
class ResignRequest:
    room_id: str


@dataclass(frozen=True)
class OfferDrawRequest:
    room_id: str


@dataclass(frozen=True)
class AcceptDrawRequest:
    room_id: str


@dataclass(frozen=True)
class DeclineDrawRequest:
    room_id: str


@dataclass(frozen=True)
class ResetGameRequest:
    room_id: str


@dataclass(frozen=True)
class InitializeRoomRequest:
    room_id: str
    settings: RoomSettings


@dataclass(frozen=True)
class CheckRoomStatusRequest:
    room_id: str


Request = (
    JoinRoomRequest
    | EnterQuickplayRequest
    | MoveRequest
    | ResignRequest
    | OfferDrawRequest
    | AcceptDrawRequest
    | DeclineDrawRequest
    | ResetGameRequest
    | InitializeRoomRequest
    | CheckRoomStatusRequest
)

_ROOM_ONLY: dict[str, type] = {
    "resign": ResignRequest,
    "offerDraw": OfferDrawRequest,
    "acceptDraw": AcceptDrawRequest,
    "declineDraw": DeclineDrawRequest,
    "resetgame": ResetGameRequest,
    "check_room_status": CheckRoomStatusRequest,
}


def normalize_room_id(value: Any) -> str:
    """Validate a client-supplied room id and fold it to upper case."""
    if not isinstance(value, str) or not _ROOM_ID_RE.match(value.strip()):
        raise InvalidRequestError(f"Invalid room id: {value!r}")
    return value.strip().upper()


def parse_request(payload: Any) -> Request:
    """
    Map a decoded JSON frame to its request dataclass.

    Raises:
        InvalidRequestError: unknown type, missing field or wrongly typed field.
    """
    if not isinstance(payload, dict):
        raise InvalidRequestError(f"Expected a JSON object, got {type(payload).__name__}")

    kind = payload.get("type")
    match kind:
        case "joinRoom":
            return JoinRoomRequest(
                room_id=normalize_room_id(payload.get("roomId")),
                seat=_parse_seat(payload.get("seat")),
            )
        case "enterQuickplay":
            return EnterQuickplayRequest()
        case "move":
            return MoveRequest(
                room_id=normalize_room_id(payload.get("roomId")),
                move=_parse_move(payload.get("move")),
            )
        case "initialize_room":
            return InitializeRoomRequest(
                room_id=normalize_room_id(payload.get("roomId")),
                settings=_parse_settings(payload.get("settings")),
            )
        case str() if kind in _ROOM_ONLY:
            return _ROOM_ONLY[kind](room_id=normalize_room_id(payload.get("roomId")))
        case _:
            raise InvalidRequestError(f"Unknown request type: {kind!r}")


# --------------------------------------------------------------------------- #
# Field parsers                                                                #
# --------------------------------------------------------------------------- #

def _parse_seat(value: Any) -> Color | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str) or value.lower() not in _SEAT_ALIASES:
        raise InvalidRequestError(f"Invalid seat: {value!r}")
    return _SEAT_ALIASES[value.lower()]


def _parse_move(value: Any) -> MoveDescriptor:
    if not isinstance(value, dict):
        raise InvalidRequestError("move must be an object with 'from' and 'to'")
    from_square = value.get("from")
    to_square = value.get("to")
    promotion = value.get("promotion")
    if not isinstance(from_square, str) or not isinstance(to_square, str):
        raise InvalidRequestError("move.from and move.to must be square names")
    if promotion is not None and not isinstance(promotion, str):
        raise InvalidRequestError("move.promotion must be a piece letter")
    return MoveDescriptor(from_square=from_square, to_square=to_square, promotion=promotion or None)


def _parse_settings(value: Any) -> RoomSettings:
    """
    Lenient on values, strict on shape: an unusable time or colour becomes
    None (the room then uses its defaults), but settings must be an object.
    """
    if value is None:
        value = {}
    if not isinstance(value, dict):
        raise InvalidRequestError("settings must be an object")

    color = value.get("color")
    preference = _COLOR_PREFERENCES.get(color.lower()) if isinstance(color, str) else None
    return RoomSettings(time_seconds=_parse_seconds(value.get("time")), color=preference)


def _parse_seconds(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        seconds = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None
    return seconds if seconds > 0 else None
