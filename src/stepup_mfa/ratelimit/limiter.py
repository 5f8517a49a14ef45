"""Fixed-window request limiter keyed by (identifier, endpoint).

Algorithm per call:

1. Load the active window for the key (expired windows are never returned).
2. No active window: start one with count=1 (or join one a concurrent
   caller just started).
3. Active and under ``max_requests``: increment.
4. Allow only when the count returned by the store is within
   ``max_requests``. Otherwise deny with the reset time. If the rule has a
   lockout, the first denial pushes the reset time to ``now + lockout``.

Store failures fail OPEN: the request is allowed and a warning is logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from ..clock import Clock, utc_now
from ..config import RateLimitConfig
from ..exceptions import TransientStoreError
from ..observability import StepUpMetrics

if TYPE_CHECKING:
    from ..ports import IRateLimitStore

logger = logging.getLogger("stepup_mfa.ratelimit")


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one rate-limit check.

    Attributes:
        allowed: Whether the request may proceed.
        remaining: Requests left in the current window.
        reset_at: When the window ends; None when the store was unavailable.
    """

    allowed: bool
    remaining: int
    reset_at: datetime | None


class RateLimiter:
    """Per-endpoint request limiter.

    Example:
        ```python
        limiter = RateLimiter(InMemoryRateLimitStore())
        decision = await limiter.check("u-123", VERIFY_ENDPOINT)
        if not decision.allowed:
            raise RateLimitedError(reset_at=decision.reset_at)
        ```
    """

    def __init__(
        self,
        store: IRateLimitStore,
        config: RateLimitConfig | None = None,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.config = config or RateLimitConfig()
        self._clock = clock

    async def check(self, identifier: str, endpoint: str) -> RateLimitDecision:
        """Count one request and decide whether it is allowed."""
        rule = self.config.rule_for(endpoint)
        now = self._clock()
        try:
            window = await self.store.get_window(identifier, endpoint, now)

            if window is not None and window.count < rule.max_requests:
                window = await self.store.increment(identifier, endpoint, now)

            if window is None:
                window = await self.store.start_window(
                    identifier,
                    endpoint,
                    now,
                    now + timedelta(seconds=rule.window_seconds),
                )

            # Concurrent callers may all have read count < max; the count
            # returned by the store is the one that decides.
            if window.count <= rule.max_requests and not window.locked:
                return RateLimitDecision(
                    allowed=True,
                    remaining=max(0, rule.max_requests - window.count),
                    reset_at=window.reset_at,
                )

            reset_at = window.reset_at
            if rule.lockout_seconds and not window.locked:
                lockout_until = now + timedelta(seconds=rule.lockout_seconds)
                reset_at = max(reset_at, lockout_until)
                await self.store.extend(identifier, endpoint, reset_at)
                logger.warning(
                    "Locked out %s on %s until %s",
                    identifier,
                    endpoint,
                    reset_at.isoformat(),
                )
        except TransientStoreError:
            logger.warning(
                "Rate-limit store unavailable for %s on %s; allowing request",
                identifier,
                endpoint,
            )
            return RateLimitDecision(
                allowed=True, remaining=rule.max_requests, reset_at=None
            )

        StepUpMetrics.record_rate_limit_denial(endpoint)
        logger.debug("Rate limit exceeded for %s on %s", identifier, endpoint)
        return RateLimitDecision(allowed=False, remaining=0, reset_at=reset_at)

    async def reset(self, identifier: str, endpoint: str) -> None:
        """Forget the window for a key (e.g. after a successful verification)."""
        try:
            await self.store.delete(identifier, endpoint)
        except TransientStoreError:
            logger.warning(
                "Rate-limit store unavailable; could not reset %s on %s",
                identifier,
                endpoint,
            )


__all__: list[str] = ["RateLimitDecision", "RateLimiter"]
