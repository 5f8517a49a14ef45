"""In-memory replay store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class ReplayRecord:
    scope: str
    code_hash: str
    time_step: int
    expires_at: datetime


class InMemoryReplayStore:
    """IReplayStore over per-scope record lists.

    Lookups only scan the caller's scope and drop its expired records.
    Inserts also sweep every scope at most once per
    ``sweep_interval_seconds``, so users that never come back do not pile up.
    """

    def __init__(self, *, sweep_interval_seconds: int = 60) -> None:
        self._records: dict[str, list[ReplayRecord]] = {}
        self._sweep_interval = timedelta(seconds=sweep_interval_seconds)
        self._next_sweep: datetime | None = None

    def _live(self, scope: str, now: datetime) -> list[ReplayRecord]:
        records = [r for r in self._records.get(scope, ()) if r.expires_at > now]
        if records:
            self._records[scope] = records
        else:
            self._records.pop(scope, None)
        return records

    def _matches(
        self, scope: str, code_hash: str, time_step: int, now: datetime
    ) -> bool:
        return any(
            r.time_step == time_step or r.code_hash == code_hash
            for r in self._live(scope, now)
        )

    async def exists(
        self, scope: str, code_hash: str, time_step: int, now: datetime
    ) -> bool:
        return self._matches(scope, code_hash, time_step, now)

    async def add(
        self,
        scope: str,
        code_hash: str,
        time_step: int,
        expires_at: datetime,
        now: datetime,
    ) -> bool:
        if self._next_sweep is None or now >= self._next_sweep:
            self.purge_expired(now)
            self._next_sweep = now + self._sweep_interval

        # No await between the check and the insert.
        if self._matches(scope, code_hash, time_step, now):
            return False
        self._records.setdefault(scope, []).append(
            ReplayRecord(scope, code_hash, time_step, expires_at)
        )
        return True

    def purge_expired(self, now: datetime) -> int:
        before = len(self)
        for scope in list(self._records):
            self._live(scope, now)
        return before - len(self)

    def __len__(self) -> int:
        return sum(len(records) for records in self._records.values())


__all__: list[str] = ["ReplayRecord", "InMemoryReplayStore"]
