"""Code verification guarded by the rate limiter and the replay guard.

Every call is counted by the rate limiter *before* the code is looked at;
once the bucket for (user, purpose) is exhausted, calls fail fast with
``remaining_attempts=0`` whatever the code. A success resets the bucket
and stamps ``last_verified_at``.

Verification outcomes are returned, not raised. Store failures fail
CLOSED: the result is a failure carrying TransientStoreError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from .audit.events import AuditAction, AuditEvent, user_target, verification_event
from .clock import Clock, utc_now
from .codes import CodeType, RecoveryCode, TotpCode, VerificationCode
from .config import VERIFY_ENDPOINT
from .exceptions import (
    EnrollmentRequiredError,
    EnrollmentStateError,
    ExpiredOrReplayedCodeError,
    InvalidCodeError,
    RateLimitedError,
    StepUpError,
    TransientStoreError,
    VerificationError,
)
from .observability import StepUpMetrics

if TYPE_CHECKING:
    from .audit.recorder import AuditRecorder
    from .factors.models import AuthFactor
    from .factors.totp import TotpService
    from .ports import IFactorStore
    from .ratelimit.limiter import RateLimiter
    from .replay.guard import ReplayGuard

logger = logging.getLogger("stepup_mfa.verifier")


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of one verification call.

    Attributes:
        ok: Whether the code was accepted.
        remaining_attempts: Attempts left in the current window.
        method: Which kind of code was submitted.
        failure: The error describing a rejection (None on success).
        reset_at: When a rate limit ends, if rate limited.
    """

    ok: bool
    remaining_attempts: int | None
    method: CodeType
    failure: StepUpError | None = None
    reset_at: datetime | None = None

    def raise_for_failure(self) -> None:
        """Raise the carried error if verification failed."""
        if self.failure is not None:
            raise self.failure

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "ok": self.ok,
            "remaining_attempts": self.remaining_attempts,
            "method": self.method.value,
        }
        if self.failure is not None:
            data["error"] = self.failure.to_dict()
        return data


class Verifier:
    """Validates TOTP and recovery codes for a user.

    Example:
        ```python
        result = await verifier.verify("u-123", TotpCode.parse("123 456"))
        if not result.ok:
            show(result.failure.message, result.remaining_attempts)
        ```
    """

    def __init__(
        self,
        factor_store: IFactorStore,
        limiter: RateLimiter,
        replay_guard: ReplayGuard,
        totp: TotpService,
        audit: AuditRecorder,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.factor_store = factor_store
        self.limiter = limiter
        self.replay_guard = replay_guard
        self.totp = totp
        self.audit = audit
        self._clock = clock

    async def verify(
        self,
        user_id: str,
        code: VerificationCode,
        *,
        purpose: str = VERIFY_ENDPOINT,
        pending: bool = False,
    ) -> VerificationResult:
        """Verify a parsed code.

        Args:
            user_id: User whose factor is checked.
            code: TotpCode or RecoveryCode parsed at the boundary.
            purpose: Rate-limit bucket (verify, confirm, disable, ...).
            pending: Check against the pending enrollment secret instead of
                the enabled factor. Recovery codes are rejected.

        Returns:
            VerificationResult; never raises for code outcomes.
        """
        method = code.kind
        with StepUpMetrics.operation("verify"):
            decision = await self.limiter.check(user_id, purpose)
            if not decision.allowed:
                return await self._locked(user_id, method, purpose, decision.reset_at)

            now = self._clock()
            try:
                failure = await self._check(user_id, code, now, pending=pending)
                if failure is None and not pending:
                    await self.factor_store.mark_verified(user_id, now)
            except TransientStoreError as e:
                logger.warning(
                    "Store unavailable verifying %s for %s; denying",
                    method.value,
                    user_id,
                )
                failure = e

        if failure is not None:
            if isinstance(failure, VerificationError):
                failure.remaining_attempts = decision.remaining
            logger.info(
                "Verification failed for %s (%s, %s)",
                user_id,
                method.value,
                failure.code,
            )
            StepUpMetrics.record_verification(method.value, purpose, failure.code)
            await self.audit.record(
                verification_event(
                    user_id,
                    success=False,
                    method=method.value,
                    purpose=purpose,
                    error_code=failure.code,
                    remaining_attempts=decision.remaining,
                )
            )
            return VerificationResult(
                ok=False,
                remaining_attempts=decision.remaining,
                method=method,
                failure=failure,
            )

        await self.limiter.reset(user_id, purpose)
        logger.info("Verification succeeded for %s (%s)", user_id, method.value)
        StepUpMetrics.record_verification(method.value, purpose, "success")
        await self.audit.record(
            verification_event(
                user_id, success=True, method=method.value, purpose=purpose
            )
        )
        return VerificationResult(
            ok=True,
            remaining_attempts=self.limiter.config.rule_for(purpose).max_requests,
            method=method,
        )

    async def _locked(
        self,
        user_id: str,
        method: CodeType,
        purpose: str,
        reset_at: datetime | None,
    ) -> VerificationResult:
        error = RateLimitedError(reset_at=reset_at)
        logger.warning("Verification rate limited for %s on %s", user_id, purpose)
        StepUpMetrics.record_verification(method.value, purpose, error.code)
        await self.audit.record(
            AuditEvent(
                action=AuditAction.VERIFY_LOCKED,
                actor=user_id,
                target=user_target(user_id),
                success=False,
                error_code=error.code,
                metadata={
                    "method": method.value,
                    "purpose": purpose,
                    "reset_at": reset_at.isoformat() if reset_at else None,
                },
            )
        )
        return VerificationResult(
            ok=False,
            remaining_attempts=0,
            method=method,
            failure=error,
            reset_at=reset_at,
        )

    async def _check(
        self,
        user_id: str,
        code: VerificationCode,
        now: datetime,
        *,
        pending: bool,
    ) -> StepUpError | None:
        """Return the rejection reason, or None when the code is accepted."""
        factor = await self.factor_store.get(user_id)

        if pending:
            if factor is None or factor.pending_secret is None:
                return EnrollmentStateError("No enrollment is pending")
            if not isinstance(code, TotpCode):
                return InvalidCodeError("Enrollment must be confirmed with a TOTP code")
            secret = factor.pending_secret.get_secret_value()
        else:
            if factor is None or not factor.enabled or factor.secret is None:
                return EnrollmentRequiredError()
            secret = factor.secret.get_secret_value()

        if not code.is_well_formed:
            return InvalidCodeError()

        if isinstance(code, TotpCode):
            return await self._check_totp(user_id, secret, code, now)
        return await self._check_recovery(user_id, factor, code)

    async def _check_totp(
        self, user_id: str, secret: str, code: TotpCode, now: datetime
    ) -> StepUpError | None:
        step = self.totp.match(secret, code, now)
        if step is None:
            return InvalidCodeError()

        recorded = await self.replay_guard.record_accepted(
            user_id,
            code.fingerprint(),
            step,
            self.totp.step_expiry_seconds(step, now),
        )
        if not recorded:
            logger.warning("Replayed TOTP code rejected for %s", user_id)
            return ExpiredOrReplayedCodeError()
        return None

    async def _check_recovery(
        self, user_id: str, factor: AuthFactor, code: RecoveryCode
    ) -> StepUpError | None:
        consumed = await self.factor_store.consume_recovery_code(
            user_id, code.fingerprint()
        )
        if not consumed:
            return InvalidCodeError("Invalid or already used recovery code")

        await self.audit.record(
            AuditEvent(
                action=AuditAction.RECOVERY_CODE_USED,
                actor=user_id,
                target=user_target(user_id),
                metadata={"remaining": factor.recovery_codes_remaining - 1},
            )
        )
        return None


__all__: list[str] = ["VerificationResult", "Verifier"]
