"""Redis replay store.

One accepted code writes two keys, one per time step and one per code
hash, each expiring at the record's natural expiry (PXAT). A lookup
matches if either key exists. Both keys are written with SET NX, so of
concurrent writers for the same step or code exactly one inserts.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from redis.exceptions import RedisError

from ..exceptions import TransientStoreError

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger("stepup_mfa.replay.redis")


class RedisReplayStore:
    """IReplayStore backed by ``redis.asyncio``."""

    def __init__(self, redis_client: Redis[bytes], *, prefix: str = "replay:") -> None:
        self._redis = redis_client
        self._prefix = prefix

    def _keys(self, scope: str, code_hash: str, time_step: int) -> tuple[str, str]:
        return (
            f"{self._prefix}{scope}:step:{time_step}",
            f"{self._prefix}{scope}:code:{code_hash}",
        )

    async def exists(
        self, scope: str, code_hash: str, time_step: int, now: datetime
    ) -> bool:
        # Redis expiry already excludes stale records; `now` is unused here.
        try:
            found = await self._redis.exists(*self._keys(scope, code_hash, time_step))
        except RedisError as e:
            logger.warning("Redis replay lookup failed for scope %s: %s", scope, e)
            raise TransientStoreError() from e
        return bool(found)

    async def add(
        self,
        scope: str,
        code_hash: str,
        time_step: int,
        expires_at: datetime,
        now: datetime,
    ) -> bool:
        expire_ms = int(expires_at.timestamp() * 1000)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for key in self._keys(scope, code_hash, time_step):
                    pipe.set(key, b"1", nx=True, pxat=expire_ms)
                results = await pipe.execute()
        except RedisError as e:
            logger.warning("Redis replay write failed for scope %s: %s", scope, e)
            raise TransientStoreError() from e
        # SET NX replies None when the key already existed.
        return all(results)


__all__: list[str] = ["RedisReplayStore"]
