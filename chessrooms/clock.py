"""
Per-room chess clock.

Holds the remaining whole seconds for both colours and, while running, one
asyncio task that decrements the side to move once per tick interval. The
task is the only background activity a room owns: it only ever suspends on
asyncio.sleep(), and its callbacks are synchronous, so cancelling it can never
interrupt a half-finished broadcast.

The clock does not know about seats or boards. The owning room passes in
callables for "whose turn is it", "a tick happened" and "a flag fell".
"""

from __future__ import annotations

import asyncio
from typing import Callable

from chessrooms.events import COLORS, Color

TickCallback = Callable[[Color], None]


class Clock:
    def __init__(
        self,
        seconds: int,
        *,
        side_to_move: Callable[[], Color],
        on_tick: TickCallback,
        on_flag: TickCallback,
        interval: float = 1.0,
    ) -> None:
        self.remaining: dict[Color, int] = {color: seconds for color in COLORS}
        self.interval = interval
        self._side_to_move = side_to_move
        self._on_tick = on_tick
        self._on_flag = on_flag
        self._task: asyncio.Task[None] | None = None
        self._ticking: Color | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def ticking(self) -> Color | None:
        """The colour currently being decremented, or None when stopped."""
        return self._ticking if self.running else None

    def snapshot(self) -> dict[str, int]:
        return dict(self.remaining)

    # ------------------------------------------------------------------ #
    # Control                                                              #
    # ------------------------------------------------------------------ #

    def start(self) -> bool:
        """
        Begin ticking for the side to move. Returns True if a task was started.

        No-op when already running or when the side to move is out of time.
        Must be called from inside a running event loop.
        """
        if self.running:
            return False
        color = self._side_to_move()
        if self.remaining[color] <= 0:
            return False
        self._ticking = color
        self._task = asyncio.get_running_loop().create_task(self._run())
        return True

    def stop(self) -> None:
        """Cancel ticking. Idempotent."""
        task, self._task = self._task, None
        self._ticking = None
        if task is not None and not task.done():
            task.cancel()

    def restart(self) -> bool:
        """Stop then start, so a partial interval never carries over to the next mover."""
        self.stop()
        return self.start()

    def reset(self, seconds: int) -> None:
        self.stop()
        self.remaining = {color: seconds for color in COLORS}

    # ------------------------------------------------------------------ #
    # Tick loop                                                            #
    # ------------------------------------------------------------------ #

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            color = self._side_to_move()
            self._ticking = color
            self.remaining[color] = max(0, self.remaining[color] - 1)

            if self.remaining[color] == 0:
                # Detach before the callbacks so a stop() from on_flag is a no-op
                self._task = None
                self._ticking = None
                self._on_tick(color)
                self._on_flag(color)
                return

            self._on_tick(color)
