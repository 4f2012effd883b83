"""
Room aggregate tests: seating, turn gate, clock gating, negotiation, reset.

Events go to a RecordingOutbox instead of real connections. Tests that make
moves run inside an event loop because an accepted move (re)starts the clock.
"""

from __future__ import annotations

import asyncio
import unittest

from chessrooms.board import MoveDescriptor
from chessrooms.events import (
    BoardStateEvent,
    DrawAcceptedEvent,
    DrawDeclinedEvent,
    DrawOfferedEvent,
    GameOverEvent,
    InfoEvent,
    InitEvent,
    MoveEvent,
    TimersEvent,
    WaitingEvent,
)
from chessrooms.room import Room, RoomSettings


class RecordingOutbox:
    def __init__(self) -> None:
        self.sent: list[tuple[str, object]] = []

    def deliver(self, connection_id: str, event: object) -> None:
        self.sent.append((connection_id, event))

    def to(self, connection_id: str, kind: type | None = None) -> list:
        return [
            e for cid, e in self.sent
            if cid == connection_id and (kind is None or isinstance(e, kind))
        ]

    def of(self, kind: type) -> list[tuple[str, object]]:
        return [(cid, e) for cid, e in self.sent if isinstance(e, kind)]

    def clear(self) -> None:
        self.sent.clear()


def mv(frm: str, to: str) -> MoveDescriptor:
    return MoveDescriptor(from_square=frm, to_square=to)


def make_room(**kwargs) -> tuple[Room, RecordingOutbox]:
    outbox = RecordingOutbox()
    return Room("ROOM1", outbox, **kwargs), outbox


def seated_room(**kwargs) -> tuple[Room, RecordingOutbox]:
    room, outbox = make_room(**kwargs)
    room.join("alice")
    room.join("bob")
    outbox.clear()
    return room, outbox


def assert_room_invariants(room: Room) -> None:
    seated = [h for h in room.seats.values() if h is not None]
    everyone = seated + list(room.spectators)
    assert len(everyone) == len(set(everyone)), "connection holds more than one slot"
    if room.clock.running:
        assert room.is_full and not room.is_terminal


# --------------------------------------------------------------------------- #
# Seating                                                                      #
# --------------------------------------------------------------------------- #

class TestSeating:
    def test_first_vacant_seat_in_order_then_spectators(self):
        room, outbox = make_room()
        assert room.join("alice") == "white"
        assert room.join("bob") == "black"
        assert room.join("carol") is None
        assert room.spectators == {"carol"}
        init = outbox.to("carol", InitEvent)[0]
        assert init.seat is None
        assert init.room_id == "ROOM1"
        assert_room_invariants(room)

    def test_preferred_seat_when_vacant(self):
        room, _ = make_room()
        assert room.join("alice", "black") == "black"
        assert room.join("bob", "black") == "white"

    def test_join_twice_is_idempotent(self):
        room, outbox = make_room()
        first = room.join("alice", "black")
        second = room.join("alice", "white")
        assert first == second == "black"
        assert room.seats == {"white": None, "black": "alice"}
        inits = outbox.to("alice", InitEvent)
        assert [i.seat for i in inits] == ["black", "black"]

    def test_completing_the_seating_broadcasts_board_and_timers(self):
        room, outbox = make_room()
        room.join("alice")
        assert outbox.to("alice", WaitingEvent)
        outbox.clear()

        room.join("bob")
        for cid in ("alice", "bob"):
            assert outbox.to(cid, BoardStateEvent)
            assert outbox.to(cid, TimersEvent)
        # Seating alone never starts the clock
        assert not room.clock.running

    def test_spectator_join_does_not_rebroadcast(self):
        room, outbox = seated_room()
        room.join("carol")
        assert outbox.of(BoardStateEvent) == []

    def test_dead_seat_holder_is_evicted_on_join(self):
        room, _ = seated_room()
        live = {"bob", "carol"}
        seat = room.join("carol", is_live=lambda cid: cid in live)
        assert seat == "white"
        assert room.seats == {"white": "carol", "black": "bob"}
        assert_room_invariants(room)

    def test_color_preference_from_settings_applies_to_first_joiner(self):
        room, _ = make_room()
        assert room.configure(RoomSettings(time_seconds=300, color="black"))
        assert room.join("alice") == "black"
        assert room.join("bob") == "white"

    def test_random_color_preference_picks_a_seat(self):
        room, _ = make_room()
        room.configure(RoomSettings(color="random"))
        assert room.join("alice") in ("white", "black")

    def test_reserve_does_not_notify(self):
        room, outbox = make_room()
        assert room.reserve("alice", "white")
        assert not room.reserve("alice", "black")
        assert not room.reserve("bob", "white")
        assert outbox.sent == []


class TestConfiguration:
    def test_configure_once_before_seating(self):
        room, _ = make_room(default_seconds=600)
        assert room.status == "empty"
        assert room.configure(RoomSettings(time_seconds=180))
        assert room.status == "waiting"
        assert room.clock.snapshot() == {"white": 180, "black": 180}
        assert not room.configure(RoomSettings(time_seconds=60))
        assert room.clock.snapshot() == {"white": 180, "black": 180}

    def test_configure_without_time_uses_default(self):
        room, _ = make_room(default_seconds=420)
        assert room.configure(RoomSettings(time_seconds=None))
        assert room.clock.snapshot() == {"white": 420, "black": 420}

    def test_configure_rejected_after_someone_sat_down(self):
        room, _ = make_room()
        room.join("alice")
        assert not room.configure(RoomSettings(time_seconds=60))
        assert not room.is_configured


# --------------------------------------------------------------------------- #
# Play                                                                         #
# --------------------------------------------------------------------------- #

class TurnGateTests(unittest.IsolatedAsyncioTestCase):
    async def asyncTearDown(self) -> None:
        self.room.close()

    async def test_accepted_move_broadcasts_and_starts_clock_for_next_side(self) -> None:
        self.room, outbox = seated_room()
        self.assertTrue(self.room.apply_move("alice", mv("e2", "e4")))

        for cid in ("alice", "bob"):
            move = outbox.to(cid, MoveEvent)[0]
            self.assertEqual(move.san, "e4")
            self.assertEqual(outbox.to(cid, BoardStateEvent)[0].turn, "black")
            self.assertEqual(outbox.to(cid, TimersEvent)[0].ticking, "black")
        self.assertEqual(self.room.clock.ticking, "black")
        assert_room_invariants(self.room)

    async def test_move_out_of_turn_is_silently_ignored(self) -> None:
        self.room, outbox = seated_room()
        fen = self.room.board.fen
        self.assertFalse(self.room.apply_move("bob", mv("e7", "e5")))
        self.assertEqual(outbox.sent, [])
        self.assertEqual(self.room.board.fen, fen)

    async def test_spectator_and_stranger_cannot_move(self) -> None:
        self.room, outbox = seated_room()
        self.room.join("carol")
        outbox.clear()
        self.assertFalse(self.room.apply_move("carol", mv("e2", "e4")))
        self.assertFalse(self.room.apply_move("mallory", mv("e2", "e4")))
        self.assertEqual(outbox.sent, [])

    async def test_illegal_move_is_silently_ignored(self) -> None:
        self.room, outbox = seated_room()
        self.assertFalse(self.room.apply_move("alice", mv("e2", "e5")))
        self.assertEqual(outbox.sent, [])
        self.assertFalse(self.room.clock.running)

    async def test_checkmate_ends_game_and_stops_clock(self) -> None:
        self.room, outbox = seated_room()
        moves = [
            ("alice", "e2", "e4"), ("bob", "e7", "e5"),
            ("alice", "f1", "c4"), ("bob", "b8", "c6"),
            ("alice", "d1", "h5"), ("bob", "g8", "f6"),
            ("alice", "h5", "f7"),
        ]
        for cid, frm, to in moves:
            self.assertTrue(self.room.apply_move(cid, mv(frm, to)))

        over = outbox.to("bob", GameOverEvent)
        self.assertEqual(len(over), 1)
        self.assertEqual(over[0].winner, "white")
        self.assertEqual(over[0].reason, "checkmate")
        self.assertFalse(self.room.clock.running)
        self.assertTrue(self.room.is_terminal)
        # No more moves after the end
        self.assertFalse(self.room.apply_move("bob", mv("a7", "a6")))

    async def test_move_with_opponent_absent_does_not_start_clock(self) -> None:
        self.room, _ = seated_room()
        self.room.leave("bob")
        self.assertTrue(self.room.apply_move("alice", mv("e2", "e4")))
        self.assertFalse(self.room.clock.running)

    async def test_timeout_names_the_opponent_winner(self) -> None:
        self.room, outbox = seated_room(tick_interval=0.01)
        self.room.clock.remaining["white"] = 1
        self.room.apply_move("alice", mv("e2", "e4"))
        self.room.apply_move("bob", mv("e7", "e5"))   # white's clock now ticks
        await asyncio.sleep(0.08)

        over = outbox.to("alice", GameOverEvent)
        self.assertEqual(len(over), 1)
        self.assertEqual(over[0].reason, "timeout")
        self.assertEqual(over[0].winner, "black")
        self.assertEqual(over[0].result, "0-1")
        self.assertFalse(self.room.clock.running)
        self.assertEqual(self.room.clock.remaining["white"], 0)

    async def test_vacating_a_seat_pauses_the_clock(self) -> None:
        self.room, outbox = seated_room()
        self.room.apply_move("alice", mv("e2", "e4"))
        self.assertTrue(self.room.clock.running)
        self.assertTrue(self.room.leave("bob"))
        self.assertFalse(self.room.clock.running)
        self.assertEqual(outbox.to("alice", InfoEvent)[0].text, "Opponent left the game")
        self.assertFalse(self.room.is_terminal)

    async def test_moves_then_reset_round_trip(self) -> None:
        self.room, outbox = make_room()
        self.room.configure(RoomSettings(time_seconds=120))
        self.room.join("alice")
        self.room.join("bob")
        start_fen = self.room.board.fen
        self.room.apply_move("alice", mv("d2", "d4"))
        self.room.apply_move("bob", mv("d7", "d5"))
        self.room.clock.remaining["white"] = 17
        outbox.clear()

        self.assertTrue(self.room.reset("bob"))
        self.assertEqual(self.room.board.fen, start_fen)
        self.assertEqual(self.room.clock.snapshot(), {"white": 120, "black": 120})
        self.assertFalse(self.room.clock.running)
        self.assertEqual(outbox.to("alice", BoardStateEvent)[0].fen, start_fen)
        self.assertEqual(outbox.to("alice", TimersEvent)[0].white, 120)

    async def test_reset_requires_an_occupant(self) -> None:
        self.room, outbox = seated_room()
        self.assertFalse(self.room.reset("mallory"))
        self.assertEqual(outbox.sent, [])


# --------------------------------------------------------------------------- #
# Draw / resign                                                                #
# --------------------------------------------------------------------------- #

class NegotiationTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.room, self.outbox = seated_room()
        self.room.apply_move("alice", mv("e2", "e4"))
        self.outbox.clear()

    async def asyncTearDown(self) -> None:
        self.room.close()

    async def test_resign_is_final_and_opponent_wins(self) -> None:
        self.assertTrue(self.room.resign("bob"))
        over = self.outbox.to("alice", GameOverEvent)[0]
        self.assertEqual(over.winner, "white")
        self.assertEqual(over.reason, "resignation")
        self.assertFalse(self.room.clock.running)
        self.assertFalse(self.room.resign("alice"))

    async def test_spectator_cannot_resign(self) -> None:
        self.room.join("carol")
        self.assertFalse(self.room.resign("carol"))
        self.assertFalse(self.room.is_terminal)

    async def test_offer_goes_only_to_the_other_seat(self) -> None:
        self.room.join("carol")
        self.outbox.clear()
        self.assertTrue(self.room.offer_draw("alice"))
        self.assertEqual([cid for cid, _ in self.outbox.of(DrawOfferedEvent)], ["bob"])
        self.assertEqual(self.room.draw_offer.connection_id, "alice")

    async def test_repeat_offer_re_notifies(self) -> None:
        self.room.offer_draw("alice")
        self.room.offer_draw("alice")
        self.assertEqual(len(self.outbox.to("bob", DrawOfferedEvent)), 2)

    async def test_accept_ends_in_draw(self) -> None:
        self.room.offer_draw("alice")
        self.assertTrue(self.room.accept_draw("bob"))
        self.assertTrue(self.outbox.to("alice", DrawAcceptedEvent))
        over = self.outbox.to("alice", GameOverEvent)[0]
        self.assertIsNone(over.winner)
        self.assertEqual(over.result, "1/2-1/2")
        self.assertEqual(over.reason, "agreement")
        self.assertIsNone(self.room.draw_offer)
        self.assertFalse(self.room.clock.running)

    async def test_offering_side_may_accept_its_own_offer(self) -> None:
        # Lenient acceptance: any seat occupant collapses a pending offer
        self.room.offer_draw("alice")
        self.assertTrue(self.room.accept_draw("alice"))
        self.assertEqual(self.outbox.to("bob", GameOverEvent)[0].reason, "agreement")

    async def test_accept_without_offer_is_noop(self) -> None:
        self.assertFalse(self.room.accept_draw("bob"))
        self.assertFalse(self.room.is_terminal)

    async def test_decline_notifies_only_the_offerer(self) -> None:
        self.room.offer_draw("alice")
        self.outbox.clear()
        self.assertTrue(self.room.decline_draw("bob"))
        self.assertEqual([cid for cid, _ in self.outbox.of(DrawDeclinedEvent)], ["alice"])
        self.assertIsNone(self.room.draw_offer)
        self.assertFalse(self.room.accept_draw("bob"))

    async def test_offer_cleared_when_offerer_leaves(self) -> None:
        self.room.offer_draw("alice")
        self.room.leave("alice")
        self.assertIsNone(self.room.draw_offer)
