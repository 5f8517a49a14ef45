"""In-memory factor store.

Suitable for tests and single-process deployments. Records are immutable
AuthFactor instances, so replacing the dict entry is the atomic write.
"""

from __future__ import annotations

import logging
from datetime import datetime

from .models import AuthFactor

logger = logging.getLogger("stepup_mfa.factors")


class InMemoryFactorStore:
    """IFactorStore keeping one AuthFactor per user.

    ⚠️ Secrets are held in process memory. Do NOT use in production!
    """

    def __init__(self) -> None:
        self._factors: dict[str, AuthFactor] = {}

    async def get(self, user_id: str) -> AuthFactor | None:
        return self._factors.get(user_id)

    async def save(self, factor: AuthFactor) -> None:
        self._factors[factor.user_id] = factor

    async def consume_recovery_code(self, user_id: str, code_hash: str) -> bool:
        factor = self._factors.get(user_id)
        if factor is None or code_hash not in factor.recovery_code_hashes:
            return False
        # No await between check and write: consumption is atomic.
        self._factors[user_id] = factor.with_recovery_codes(
            factor.recovery_code_hashes - {code_hash}
        )
        logger.debug(
            "Recovery code consumed for user %s (%d left)",
            user_id,
            factor.recovery_codes_remaining - 1,
        )
        return True

    async def mark_verified(self, user_id: str, verified_at: datetime) -> None:
        factor = self._factors.get(user_id)
        if factor is not None:
            self._factors[user_id] = factor.verified(verified_at)

    def clear(self) -> None:
        self._factors.clear()


__all__: list[str] = ["InMemoryFactorStore"]
