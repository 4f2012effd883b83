"""
One game room: its full state and every operation that mutates it.

A Room owns its board adapter, two seats, the spectator set, a Clock, the
pending draw offer, the one-time settings and the terminal outcome. All
methods are synchronous: they validate, mutate and push outbound events into
the Outbox, and never await. Invalid or unauthorised calls return False (or
None) without touching state or emitting anything.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Literal, Protocol

from chessrooms.board import ChessBoard, MoveDescriptor
from chessrooms.clock import Clock
from chessrooms.events import (
    COLORS,
    BoardStateEvent,
    Color,
    DrawAcceptedEvent,
    DrawDeclinedEvent,
    DrawOfferedEvent,
    GameOverEvent,
    GameOverReason,
    GameResult,
    InfoEvent,
    InitEvent,
    MoveEvent,
    OutboundEvent,
    RoomStatus,
    TimersEvent,
    WaitingEvent,
    opponent,
)

logger = logging.getLogger(__name__)

ColorPreference = Literal["white", "black", "random"]


class Outbox(Protocol):
    """Where rooms put outbound events. The session gateway implements this."""

    def deliver(self, connection_id: str, event: OutboundEvent) -> None: ...


@dataclass(frozen=True)
class RoomSettings:
    """One-time configuration chosen by the room's creator."""

    time_seconds: int | None = None          # None = server default
    color: ColorPreference | None = None     # seat for the first joiner


@dataclass(frozen=True)
class DrawOffer:
    connection_id: str
    color: Color


class Room:
    def __init__(
        self,
        room_id: str,
        outbox: Outbox,
        *,
        default_seconds: int = 600,
        tick_interval: float = 1.0,
        fen: str | None = None,
    ) -> None:
        self.id = room_id
        self.board = ChessBoard(fen)
        self.seats: dict[Color, str | None] = {color: None for color in COLORS}
        self.spectators: set[str] = set()
        self.draw_offer: DrawOffer | None = None
        self.settings: RoomSettings | None = None
        self.outcome: GameOverEvent | None = None
        self.last_activity = time.monotonic()
        self._outbox = outbox
        self._default_seconds = default_seconds
        self.clock = Clock(
            default_seconds,
            side_to_move=lambda: self.board.turn,
            on_tick=self._on_clock_tick,
            on_flag=self._on_flag,
            interval=tick_interval,
        )

    def __repr__(self) -> str:
        return f"Room({self.id!r}, white={self.seats['white']!r}, black={self.seats['black']!r})"

    # ------------------------------------------------------------------ #
    # Queries                                                              #
    # ------------------------------------------------------------------ #

    @property
    def is_configured(self) -> bool:
        return self.settings is not None

    @property
    def status(self) -> RoomStatus:
        return "waiting" if self.is_configured else "empty"

    @property
    def is_empty(self) -> bool:
        """Both seats vacant (spectators don't keep a room alive)."""
        return all(holder is None for holder in self.seats.values())

    @property
    def is_vacant(self) -> bool:
        """No seat holders and no spectators."""
        return self.is_empty and not self.spectators

    @property
    def is_full(self) -> bool:
        return all(holder is not None for holder in self.seats.values())

    @property
    def is_terminal(self) -> bool:
        return self.outcome is not None or self.board.is_game_over

    @property
    def time_control(self) -> int:
        if self.settings is not None and self.settings.time_seconds:
            return self.settings.time_seconds
        return self._default_seconds

    def seat_of(self, connection_id: str) -> Color | None:
        for color, holder in self.seats.items():
            if holder == connection_id:
                return color
        return None

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self.seats.values() or connection_id in self.spectators

    def occupants(self) -> list[str]:
        seated = [holder for holder in self.seats.values() if holder is not None]
        return seated + sorted(self.spectators)

    def summary(self) -> dict[str, Any]:
        """JSON-friendly view for the HTTP surface. Exposes no connection ids."""
        return {
            "room_id": self.id,
            "status": self.status,
            "seats": {color: holder is not None for color, holder in self.seats.items()},
            "spectators": len(self.spectators),
            "fen": self.board.fen,
            "timers": self.clock.snapshot(),
            "terminal": self.is_terminal,
        }

    # ------------------------------------------------------------------ #
    # Configuration                                                        #
    # ------------------------------------------------------------------ #

    def configure(self, settings: RoomSettings) -> bool:
        """Apply settings once, before anyone is seated."""
        if self.is_configured or not self.is_empty:
            return False
        self.settings = settings
        self._touch()
        self.clock.reset(self.time_control)
        logger.info("Room %s configured: %ss, color=%s", self.id, self.time_control, settings.color)
        return True

    # ------------------------------------------------------------------ #
    # Seating                                                              #
    # ------------------------------------------------------------------ #

    def join(
        self,
        connection_id: str,
        preferred: Color | None = None,
        *,
        is_live: Callable[[str], bool] | None = None,
    ) -> Color | None:
        """
        Seat (or re-seat) a connection and send it the full snapshot.

        Returns the seat colour, or None when the connection ends up spectating.
        A connection that already holds a seat keeps it. Seat holders whose
        connection is no longer live are evicted first, so an abrupt drop that
        skipped cleanup can't block a seat forever.
        """
        current = self.seat_of(connection_id)
        if current is not None:
            self._send_init(connection_id, current)
            if not self.is_full:
                self._send(connection_id, WaitingEvent(room_id=self.id))
            return current

        if is_live is not None:
            self._evict_dead(is_live)

        self._touch()
        was_full = self.is_full
        self.spectators.discard(connection_id)

        seat = self._pick_seat(preferred)
        if seat is None:
            self.spectators.add(connection_id)
        else:
            self.seats[seat] = connection_id

        self._send_init(connection_id, seat)
        if seat is not None and not was_full and self.is_full:
            # Both players present: the game can begin (clock starts on the first move)
            self._broadcast(BoardStateEvent(fen=self.board.fen, turn=self.board.turn))
            self._broadcast(self._timers_event())
        elif seat is not None:
            self._send(connection_id, WaitingEvent(room_id=self.id))
        return seat

    def reserve(self, connection_id: str, color: Color) -> bool:
        """Put a connection in a seat without any notification (quickplay pairing)."""
        if self.seats[color] is not None or connection_id in self:
            return False
        self._touch()
        self.seats[color] = connection_id
        return True

    def leave(self, connection_id: str) -> bool:
        """Vacate whatever slot the connection holds. Returns False if it held none."""
        self._touch()
        seat = self.seat_of(connection_id)
        if seat is not None:
            self._vacate_seat(seat)
            self._broadcast(InfoEvent(text="Opponent left the game"))
            return True
        if connection_id in self.spectators:
            self.spectators.discard(connection_id)
            return True
        return False

    def close(self) -> None:
        self.clock.stop()

    # ------------------------------------------------------------------ #
    # Play                                                                 #
    # ------------------------------------------------------------------ #

    def apply_move(self, connection_id: str, descriptor: MoveDescriptor) -> bool:
        """Turn-gated move. Anything stale, unauthorised or illegal is ignored."""
        if self.is_terminal:
            return False
        if self.seats[self.board.turn] != connection_id:
            return False

        applied = self.board.apply(descriptor)
        if applied is None:
            return False

        self._broadcast(
            MoveEvent(
                color=applied.color,
                from_square=applied.from_square,
                to_square=applied.to_square,
                promotion=applied.promotion,
                san=applied.san,
                uci=applied.uci,
                is_capture=applied.is_capture,
                is_castle=applied.is_castle,
                is_en_passant=applied.is_en_passant,
                is_check=applied.is_check,
            )
        )
        self._broadcast(BoardStateEvent(fen=self.board.fen, turn=self.board.turn))

        if self.board.is_game_over:
            self.clock.stop()
            self._broadcast(self._timers_event())
            self._finish(
                self.board.result(),
                self.board.game_over_reason(),
                self.board.winner_color(),
            )
        else:
            if self.is_full:
                self.clock.restart()
            else:
                self.clock.stop()
            self._broadcast(self._timers_event())
        return True

    def resign(self, connection_id: str) -> bool:
        seat = self.seat_of(connection_id)
        if seat is None or self.is_terminal:
            return False
        winner = opponent(seat)
        self._finish(_win_result(winner), "resignation", winner)
        return True

    def offer_draw(self, connection_id: str) -> bool:
        """Record (or refresh) an offer and tell only the other seat."""
        seat = self.seat_of(connection_id)
        if seat is None or self.is_terminal:
            return False
        self.draw_offer = DrawOffer(connection_id=connection_id, color=seat)
        other = self.seats[opponent(seat)]
        if other is not None:
            self._send(other, DrawOfferedEvent(by=seat))
        return True

    def accept_draw(self, connection_id: str) -> bool:
        # Either seat may accept, including the one that offered.
        seat = self.seat_of(connection_id)
        if seat is None or self.draw_offer is None or self.is_terminal:
            return False
        self._broadcast(DrawAcceptedEvent(by=seat))
        self._finish("1/2-1/2", "agreement", None)
        return True

    def decline_draw(self, connection_id: str) -> bool:
        seat = self.seat_of(connection_id)
        offer = self.draw_offer
        if seat is None or offer is None:
            return False
        self.draw_offer = None
        if self.seats[offer.color] == offer.connection_id:
            self._send(offer.connection_id, DrawDeclinedEvent(by=seat))
        return True

    def reset(self, connection_id: str) -> bool:
        """Start position, fresh clocks, nothing pending. Any occupant may ask."""
        if connection_id not in self:
            return False
        self.board.reset()
        self.clock.reset(self.time_control)
        self.draw_offer = None
        self.outcome = None
        self._broadcast(BoardStateEvent(fen=self.board.fen, turn=self.board.turn))
        self._broadcast(self._timers_event())
        logger.info("Room %s reset by %s", self.id, connection_id)
        return True

    # ------------------------------------------------------------------ #
    # Internals                                                            #
    # ------------------------------------------------------------------ #

    def _pick_seat(self, preferred: Color | None) -> Color | None:
        if preferred is not None and self.seats[preferred] is None:
            return preferred
        if self.is_empty and self.settings is not None and self.settings.color is not None:
            if self.settings.color == "random":
                return random.choice(COLORS)
            return self.settings.color
        for color in COLORS:
            if self.seats[color] is None:
                return color
        return None

    def _evict_dead(self, is_live: Callable[[str], bool]) -> None:
        for color, holder in self.seats.items():
            if holder is not None and not is_live(holder):
                logger.info("Room %s: freeing %s seat held by dead connection %s", self.id, color, holder)
                self._vacate_seat(color)
        self.spectators = {cid for cid in self.spectators if is_live(cid)}

    def _vacate_seat(self, color: Color) -> None:
        holder = self.seats[color]
        self.seats[color] = None
        # With a seat empty the game is paused
        self.clock.stop()
        if self.draw_offer is not None and self.draw_offer.connection_id == holder:
            self.draw_offer = None

    def _finish(self, result: GameResult, reason: GameOverReason, winner: Color | None) -> None:
        self.clock.stop()
        self.draw_offer = None
        self.outcome = GameOverEvent(result=result, reason=reason, winner=winner)
        logger.info("Room %s game over: %s (%s)", self.id, result, reason)
        self._broadcast(self.outcome)

    def _on_clock_tick(self, color: Color) -> None:
        self._broadcast(self._timers_event())

    def _on_flag(self, color: Color) -> None:
        if self.is_terminal:
            return
        winner = opponent(color)
        self._finish(_win_result(winner), "timeout", winner)

    def _timers_event(self) -> TimersEvent:
        return TimersEvent(
            white=self.clock.remaining["white"],
            black=self.clock.remaining["black"],
            ticking=self.clock.ticking,
        )

    def _send_init(self, connection_id: str, seat: Color | None) -> None:
        self._send(
            connection_id,
            InitEvent(
                room_id=self.id,
                seat=seat,
                fen=self.board.fen,
                timers=self.clock.snapshot(),
            ),
        )

    def _touch(self) -> None:
        self.last_activity = time.monotonic()

    def _send(self, connection_id: str, event: OutboundEvent) -> None:
        self._outbox.deliver(connection_id, event)

    def _broadcast(self, event: OutboundEvent) -> None:
        for connection_id in self.occupants():
            self._outbox.deliver(connection_id, event)


def _win_result(winner: Color) -> GameResult:
    return "1-0" if winner == "white" else "0-1"
