"""Wall-clock countdown for an open challenge surface.

The countdown is a pure function of the current time, recomputed on every
tick. Verification responses never touch it.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING

from ..clock import Clock, utc_now

if TYPE_CHECKING:
    from ..ports import IChallengeSurface


def totp_seconds_remaining(now: datetime, interval: int = 30) -> int:
    """Seconds left in the current step: ``interval - (epoch mod interval)``."""
    return interval - (int(now.timestamp()) % interval)


class CountdownTicker:
    """Periodically pushes the countdown to a surface while it is open."""

    def __init__(
        self,
        surface: IChallengeSurface,
        *,
        interval: int = 30,
        tick_seconds: float = 1.0,
        clock: Clock = utc_now,
    ) -> None:
        self.surface = surface
        self.interval = interval
        self.tick_seconds = tick_seconds
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking; a no-op if already running."""
        if self.running:
            return
        self._tick()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.tick_seconds)
            self._tick()

    def _tick(self) -> None:
        remaining = totp_seconds_remaining(self._clock(), self.interval)
        self.surface.show_countdown(remaining)


__all__: list[str] = ["totp_seconds_remaining", "CountdownTicker"]
