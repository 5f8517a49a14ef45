"""Replay guard for accepted TOTP codes.

A (scope, code hash) pair or a (scope, time step) pair accepted once is
rejected until the record's natural expiry. Expiry is checked on every
lookup, so correctness never depends on a cleanup sweep.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from ..clock import Clock, utc_now

if TYPE_CHECKING:
    from ..ports import IReplayStore

logger = logging.getLogger("stepup_mfa.replay")


class ReplayGuard:
    """Records accepted codes and rejects their reuse.

    Store errors propagate as TransientStoreError; the verifier treats
    them as a failed verification.
    """

    def __init__(self, store: IReplayStore, *, clock: Clock = utc_now) -> None:
        self.store = store
        self._clock = clock

    async def was_accepted(self, scope: str, code_hash: str, time_step: int) -> bool:
        return await self.store.exists(scope, code_hash, time_step, self._clock())

    async def record_accepted(
        self, scope: str, code_hash: str, time_step: int, ttl: int
    ) -> bool:
        """Record an accepted code for ``ttl`` seconds (minimum 1).

        Returns:
            False when a live record already matched, i.e. the code is a
            replay. Of concurrent calls for one code at most one gets True.
        """
        now = self._clock()
        expires_at = now + timedelta(seconds=max(1, ttl))
        inserted = await self.store.add(scope, code_hash, time_step, expires_at, now)
        if inserted:
            logger.debug("Recorded accepted code for %s at step %d", scope, time_step)
        return inserted


__all__: list[str] = ["ReplayGuard"]
