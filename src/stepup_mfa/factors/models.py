"""AuthFactor record and its enrollment state machine.

State machine::

    UNENROLLED -> PENDING_ENROLLMENT -> ENABLED -> DISABLED
                        ^   |                         |
                        +---+ (re-begin overwrites)   |
                        +-----------------------------+ (re-enroll)

``PENDING_ENROLLMENT -> ENABLED`` only via a confirmed TOTP code;
``ENABLED -> DISABLED`` only via a verified disable.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, SecretStr


class FactorState(str, Enum):
    UNENROLLED = "unenrolled"
    PENDING_ENROLLMENT = "pending_enrollment"
    ENABLED = "enabled"
    DISABLED = "disabled"


class AuthFactor(BaseModel):
    """Per-user TOTP factor.

    Records are immutable; every mutation produces a new record via
    ``model_copy`` and is persisted whole, so a store write is atomic.

    Attributes:
        user_id: Owner of the factor.
        secret: Confirmed Base32 TOTP secret (only while enabled).
        pending_secret: Secret issued by begin_enrollment, awaiting confirmation.
        enabled: Whether the factor gates sensitive actions.
        recovery_code_hashes: SHA-256 hashes of unused recovery codes.
        last_verified_at: Last successful verification (UTC).
        disabled_at: When the factor was last disabled.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    secret: SecretStr | None = None
    pending_secret: SecretStr | None = None
    enabled: bool = False
    recovery_code_hashes: frozenset[str] = frozenset()
    last_verified_at: datetime | None = None
    disabled_at: datetime | None = None

    @classmethod
    def unenrolled(cls, user_id: str) -> AuthFactor:
        """Factor created alongside a new user: disabled, no secret."""
        return cls(user_id=user_id)

    @property
    def state(self) -> FactorState:
        if self.enabled:
            return FactorState.ENABLED
        if self.pending_secret is not None:
            return FactorState.PENDING_ENROLLMENT
        if self.disabled_at is not None:
            return FactorState.DISABLED
        return FactorState.UNENROLLED

    @property
    def recovery_codes_remaining(self) -> int:
        return len(self.recovery_code_hashes)

    def snapshot(self) -> dict[str, object]:
        """Audit-safe view of the factor (no secrets or hashes)."""
        return {
            "state": self.state.value,
            "enabled": self.enabled,
            "recovery_codes_remaining": self.recovery_codes_remaining,
            "last_verified_at": (
                self.last_verified_at.isoformat() if self.last_verified_at else None
            ),
        }

    # ── Transitions ──────────────────────────────────────────────

    def with_pending_secret(self, secret: str) -> AuthFactor:
        return self.model_copy(update={"pending_secret": SecretStr(secret)})

    def confirmed(
        self, recovery_code_hashes: frozenset[str], verified_at: datetime
    ) -> AuthFactor:
        return self.model_copy(
            update={
                "secret": self.pending_secret,
                "pending_secret": None,
                "enabled": True,
                "recovery_code_hashes": recovery_code_hashes,
                "last_verified_at": verified_at,
                "disabled_at": None,
            }
        )

    def with_recovery_codes(self, recovery_code_hashes: frozenset[str]) -> AuthFactor:
        return self.model_copy(update={"recovery_code_hashes": recovery_code_hashes})

    def verified(self, verified_at: datetime) -> AuthFactor:
        return self.model_copy(update={"last_verified_at": verified_at})

    def cleared(self, disabled_at: datetime) -> AuthFactor:
        return self.model_copy(
            update={
                "secret": None,
                "pending_secret": None,
                "enabled": False,
                "recovery_code_hashes": frozenset(),
                "last_verified_at": None,
                "disabled_at": disabled_at,
            }
        )


__all__: list[str] = ["FactorState", "AuthFactor"]
