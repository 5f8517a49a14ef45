"""In-memory rate-limit window store.

⚠️ Single-process only. Use the Redis store for distributed deployments.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta

from ..ports import RateLimitWindow

logger = logging.getLogger("stepup_mfa.ratelimit")


class InMemoryRateLimitStore:
    """IRateLimitStore over a dict keyed by (identifier, endpoint).

    Expired windows are filtered on every read. Starting a window also
    sweeps expired ones at most once per ``sweep_interval_seconds``, so
    identifiers that never come back do not pile up.
    """

    def __init__(self, *, sweep_interval_seconds: int = 60) -> None:
        self._windows: dict[tuple[str, str], RateLimitWindow] = {}
        self._sweep_interval = timedelta(seconds=sweep_interval_seconds)
        self._next_sweep: datetime | None = None

    def _active(
        self, identifier: str, endpoint: str, now: datetime
    ) -> RateLimitWindow | None:
        window = self._windows.get((identifier, endpoint))
        if window is None:
            return None
        if window.reset_at <= now:
            del self._windows[(identifier, endpoint)]
            return None
        return window

    def _bump(
        self, identifier: str, endpoint: str, window: RateLimitWindow
    ) -> RateLimitWindow:
        updated = replace(window, count=window.count + 1)
        self._windows[(identifier, endpoint)] = updated
        return updated

    async def get_window(
        self, identifier: str, endpoint: str, now: datetime
    ) -> RateLimitWindow | None:
        return self._active(identifier, endpoint, now)

    async def start_window(
        self, identifier: str, endpoint: str, now: datetime, reset_at: datetime
    ) -> RateLimitWindow:
        if self._next_sweep is None or now >= self._next_sweep:
            self.purge_expired(now)
            self._next_sweep = now + self._sweep_interval

        current = self._active(identifier, endpoint, now)
        if current is not None:
            # Another caller started this window after our read.
            return self._bump(identifier, endpoint, current)

        window = RateLimitWindow(window_start=now, count=1, reset_at=reset_at)
        self._windows[(identifier, endpoint)] = window
        return window

    async def increment(
        self, identifier: str, endpoint: str, now: datetime
    ) -> RateLimitWindow | None:
        window = self._active(identifier, endpoint, now)
        if window is None:
            return None
        return self._bump(identifier, endpoint, window)

    async def extend(self, identifier: str, endpoint: str, reset_at: datetime) -> None:
        window = self._windows.get((identifier, endpoint))
        if window is not None:
            self._windows[(identifier, endpoint)] = replace(
                window, reset_at=reset_at, locked=True
            )

    async def delete(self, identifier: str, endpoint: str) -> None:
        self._windows.pop((identifier, endpoint), None)

    def purge_expired(self, now: datetime) -> int:
        """Drop expired windows; returns how many were removed."""
        expired = [key for key, w in self._windows.items() if w.reset_at <= now]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug("Purged %d expired rate-limit windows", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)


__all__: list[str] = ["InMemoryRateLimitStore"]
