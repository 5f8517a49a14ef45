"""Redis rate-limit window store.

Each (identifier, endpoint) window is one hash with ``start``, ``count``,
``reset`` (epoch milliseconds) and ``locked`` fields, expiring at ``reset``
via PEXPIREAT. Starting and counting are single MULTI transactions whose
returned count decides the request. Redis failures surface as
TransientStoreError so the limiter can fail open.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from redis.exceptions import RedisError

from ..exceptions import TransientStoreError
from ..ports import RateLimitWindow

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger("stepup_mfa.ratelimit.redis")


def _to_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def _from_ms(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode()
    return str(value)


class RedisRateLimitStore:
    """IRateLimitStore backed by ``redis.asyncio``.

    Example:
        ```python
        from redis.asyncio import Redis

        store = RedisRateLimitStore(Redis.from_url("redis://localhost"))
        limiter = RateLimiter(store)
        ```
    """

    def __init__(
        self, redis_client: Redis[bytes], *, prefix: str = "ratelimit:"
    ) -> None:
        self._redis = redis_client
        self._prefix = prefix

    def _key(self, identifier: str, endpoint: str) -> str:
        return f"{self._prefix}{endpoint}:{identifier}"

    def _decode(self, raw: dict[Any, Any]) -> RateLimitWindow | None:
        data = {_text(k): _text(v) for k, v in raw.items()}
        if "reset" not in data or "start" not in data:
            return None
        return RateLimitWindow(
            window_start=_from_ms(int(data["start"])),
            count=int(data.get("count", "0")),
            reset_at=_from_ms(int(data["reset"])),
            locked=data.get("locked") == "1",
        )

    async def get_window(
        self, identifier: str, endpoint: str, now: datetime
    ) -> RateLimitWindow | None:
        key = self._key(identifier, endpoint)
        try:
            raw = await self._redis.hgetall(key)
        except RedisError as e:
            logger.warning("Redis hgetall failed for key %s: %s", key, e)
            raise TransientStoreError() from e
        window = self._decode(raw or {})
        if window is None or window.reset_at <= now:
            return None
        return window

    async def start_window(
        self, identifier: str, endpoint: str, now: datetime, reset_at: datetime
    ) -> RateLimitWindow:
        key = self._key(identifier, endpoint)
        try:
            # One MULTI: a concurrent caller that created the hash first keeps
            # its start/reset and this request is counted in its window.
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hsetnx(key, "start", _to_ms(now))
                pipe.hsetnx(key, "reset", _to_ms(reset_at))
                pipe.hsetnx(key, "locked", 0)
                pipe.hincrby(key, "count", 1)
                pipe.pexpireat(key, _to_ms(reset_at), nx=True)
                pipe.hgetall(key)
                results = await pipe.execute()
        except RedisError as e:
            logger.warning("Redis window start failed for key %s: %s", key, e)
            raise TransientStoreError() from e
        window = self._decode(results[-1] or {})
        if window is None:
            return RateLimitWindow(window_start=now, count=1, reset_at=reset_at)
        return window

    async def increment(
        self, identifier: str, endpoint: str, now: datetime
    ) -> RateLimitWindow | None:
        key = self._key(identifier, endpoint)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hincrby(key, "count", 1)
                pipe.hmget(key, ["start", "reset", "locked"])
                count, (start, reset, locked) = await pipe.execute()
            if start is None or reset is None or int(_text(reset)) <= _to_ms(now):
                # Expired between read and increment; HINCRBY recreated a stub.
                await self._redis.delete(key)
                return None
        except RedisError as e:
            logger.warning("Redis increment failed for key %s: %s", key, e)
            raise TransientStoreError() from e
        return RateLimitWindow(
            window_start=_from_ms(int(_text(start))),
            count=int(count),
            reset_at=_from_ms(int(_text(reset))),
            locked=locked is not None and _text(locked) == "1",
        )

    async def extend(self, identifier: str, endpoint: str, reset_at: datetime) -> None:
        key = self._key(identifier, endpoint)
        try:
            await self._redis.hset(
                key, mapping={"reset": _to_ms(reset_at), "locked": 1}
            )
            await self._redis.pexpireat(key, _to_ms(reset_at))
        except RedisError as e:
            logger.warning("Redis lockout extend failed for key %s: %s", key, e)
            raise TransientStoreError() from e

    async def delete(self, identifier: str, endpoint: str) -> None:
        key = self._key(identifier, endpoint)
        try:
            await self._redis.delete(key)
        except RedisError as e:
            logger.warning("Redis delete failed for key %s: %s", key, e)
            raise TransientStoreError() from e


__all__: list[str] = ["RedisRateLimitStore"]
