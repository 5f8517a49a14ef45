"""Factor enrollment, recovery-code regeneration and disable.

Every operation here is rate limited on its own bucket and audited with
before/after snapshots of the factor. Failed operations leave the stored
factor untouched.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .audit.events import AuditAction, factor_changed_event
from .clock import Clock, utc_now
from .config import (
    CONFIRM_ENDPOINT,
    DISABLE_ENDPOINT,
    ENROLL_ENDPOINT,
    REGENERATE_ENDPOINT,
)
from .exceptions import (
    EnrollmentRequiredError,
    EnrollmentStateError,
    RateLimitedError,
    StepUpError,
)
from .factors.models import AuthFactor, FactorState
from .observability import StepUpMetrics

if TYPE_CHECKING:
    from .audit.recorder import AuditRecorder
    from .codes import VerificationCode
    from .factors.recovery import RecoveryCodeGenerator
    from .factors.totp import EnrollmentSetup, TotpService
    from .ports import IFactorStore
    from .ratelimit.limiter import RateLimiter
    from .verifier import Verifier

logger = logging.getLogger("stepup_mfa.enrollment")


class EnrollmentService:
    """Drives the factor state machine.

    ``UNENROLLED/DISABLED -> PENDING_ENROLLMENT`` via ``begin_enrollment``,
    ``PENDING_ENROLLMENT -> ENABLED`` via ``confirm_enrollment`` and
    ``ENABLED -> DISABLED`` via ``disable``.

    Example:
        ```python
        setup = await enrollment.begin_enrollment("u-123", "jane@example.com")
        render_qr(setup.provisioning_uri)

        codes = await enrollment.confirm_enrollment("u-123", TotpCode.parse(raw))
        show_once(codes)
        ```
    """

    def __init__(
        self,
        factor_store: IFactorStore,
        verifier: Verifier,
        totp: TotpService,
        recovery_codes: RecoveryCodeGenerator,
        limiter: RateLimiter,
        audit: AuditRecorder,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.factor_store = factor_store
        self.verifier = verifier
        self.totp = totp
        self.recovery_codes = recovery_codes
        self.limiter = limiter
        self.audit = audit
        self._clock = clock

    async def _load(self, user_id: str) -> AuthFactor:
        factor = await self.factor_store.get(user_id)
        return factor or AuthFactor.unenrolled(user_id)

    async def _enforce_limit(
        self, user_id: str, endpoint: str, failed_action: AuditAction
    ) -> None:
        decision = await self.limiter.check(user_id, endpoint)
        if decision.allowed:
            return
        error = RateLimitedError(reset_at=decision.reset_at)
        await self._audit_failure(failed_action, user_id, error, None)
        raise error

    async def _audit_failure(
        self,
        action: AuditAction,
        user_id: str,
        error: StepUpError,
        factor: AuthFactor | None,
    ) -> None:
        snapshot = factor.snapshot() if factor is not None else None
        await self.audit.record(
            factor_changed_event(
                action,
                user_id,
                before=snapshot,
                after=snapshot,
                success=False,
                error_code=error.code,
            )
        )

    # ── Enrollment ───────────────────────────────────────────────

    async def begin_enrollment(
        self, user_id: str, account_name: str | None = None
    ) -> EnrollmentSetup:
        """Issue a fresh pending secret without enabling the factor.

        Re-running while pending overwrites the pending secret.

        Raises:
            EnrollmentStateError: If the factor is already enabled.
            RateLimitedError: If the enroll bucket is exhausted.
        """
        await self._enforce_limit(user_id, ENROLL_ENDPOINT, AuditAction.ENROLL_FAILED)

        with StepUpMetrics.operation("enroll.begin"):
            factor = await self._load(user_id)
            if factor.state is FactorState.ENABLED:
                error = EnrollmentStateError(
                    "Two-factor authentication is already enabled"
                )
                await self._audit_failure(
                    AuditAction.ENROLL_FAILED, user_id, error, factor
                )
                raise error

            secret = self.totp.generate_secret()
            updated = factor.with_pending_secret(secret)
            await self.factor_store.save(updated)

        logger.info("Enrollment started for user %s", user_id)
        await self.audit.record(
            factor_changed_event(
                AuditAction.ENROLL_INITIATED,
                user_id,
                before=factor.snapshot(),
                after=updated.snapshot(),
            )
        )
        return self.totp.provisioning(secret, account_name or user_id)

    async def confirm_enrollment(
        self, user_id: str, code: VerificationCode
    ) -> list[str]:
        """Enable the factor with one valid TOTP code for the pending secret.

        Returns:
            The plaintext recovery codes. They are never retrievable again.

        Raises:
            EnrollmentStateError: If no enrollment is pending.
            VerificationError: If the code is rejected (incl. rate limited).
        """
        with StepUpMetrics.operation("enroll.confirm"):
            factor = await self._load(user_id)
            if factor.state is not FactorState.PENDING_ENROLLMENT:
                error = EnrollmentStateError("No enrollment is pending")
                await self._audit_failure(
                    AuditAction.ENROLL_FAILED, user_id, error, factor
                )
                raise error

            result = await self.verifier.verify(
                user_id, code, purpose=CONFIRM_ENDPOINT, pending=True
            )
            if result.failure is not None:
                await self._audit_failure(
                    AuditAction.ENROLL_FAILED, user_id, result.failure, factor
                )
                raise result.failure

            # Only promote the secret the code was checked against. A
            # concurrent begin or confirm may have replaced or cleared it.
            current = await self._load(user_id)
            if (
                current.state is not FactorState.PENDING_ENROLLMENT
                or current.pending_secret != factor.pending_secret
            ):
                error = EnrollmentStateError(
                    "Enrollment changed while confirming. Please start again."
                )
                await self._audit_failure(
                    AuditAction.ENROLL_FAILED, user_id, error, current
                )
                raise error

            codes = self.recovery_codes.generate()
            updated = current.confirmed(
                self.recovery_codes.hash_all(codes), self._clock()
            )
            await self.factor_store.save(updated)

        logger.info("Two-factor authentication enabled for user %s", user_id)
        await self.audit.record(
            factor_changed_event(
                AuditAction.ENABLED,
                user_id,
                before=factor.snapshot(),
                after=updated.snapshot(),
                metadata={"recovery_codes_issued": len(codes)},
            )
        )
        return codes

    # ── Factor management ────────────────────────────────────────

    async def regenerate_recovery_codes(self, user_id: str) -> list[str]:
        """Atomically replace the whole recovery-code set.

        Raises:
            EnrollmentRequiredError: If the factor is not enabled.
            RateLimitedError: If the regenerate bucket is exhausted.
        """
        await self._enforce_limit(
            user_id, REGENERATE_ENDPOINT, AuditAction.RECOVERY_REGENERATED
        )

        with StepUpMetrics.operation("recovery.regenerate"):
            factor = await self._load(user_id)
            if not factor.enabled:
                error = EnrollmentRequiredError()
                await self._audit_failure(
                    AuditAction.RECOVERY_REGENERATED, user_id, error, factor
                )
                raise error

            codes = self.recovery_codes.generate()
            updated = factor.with_recovery_codes(self.recovery_codes.hash_all(codes))
            await self.factor_store.save(updated)

        logger.info("Recovery codes regenerated for user %s", user_id)
        await self.audit.record(
            factor_changed_event(
                AuditAction.RECOVERY_REGENERATED,
                user_id,
                before=factor.snapshot(),
                after=updated.snapshot(),
            )
        )
        return codes

    async def disable(self, user_id: str, code: VerificationCode) -> None:
        """Disable the factor after one valid TOTP or recovery code.

        Clears the secret and invalidates every recovery code.

        Raises:
            EnrollmentRequiredError: If the factor is not enabled.
            VerificationError: If the code is rejected (incl. rate limited).
        """
        with StepUpMetrics.operation("disable"):
            factor = await self._load(user_id)
            if not factor.enabled:
                error = EnrollmentRequiredError()
                await self._audit_failure(
                    AuditAction.DISABLE_FAILED, user_id, error, factor
                )
                raise error

            result = await self.verifier.verify(user_id, code, purpose=DISABLE_ENDPOINT)
            if result.failure is not None:
                await self._audit_failure(
                    AuditAction.DISABLE_FAILED, user_id, result.failure, factor
                )
                raise result.failure

            current = await self._load(user_id)
            updated = current.cleared(self._clock())
            await self.factor_store.save(updated)

        logger.info(
            "Two-factor authentication disabled for user %s (via %s)",
            user_id,
            code.kind.value,
        )
        await self.audit.record(
            factor_changed_event(
                AuditAction.DISABLED,
                user_id,
                before=factor.snapshot(),
                after=updated.snapshot(),
                metadata={"method": code.kind.value},
            )
        )


__all__: list[str] = ["EnrollmentService"]
