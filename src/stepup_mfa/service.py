"""Session-bound facade over enrollment, verification and policy.

Every operation acts on the current user supplied by the session
provider; callers never pass user ids.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .challenge.orchestrator import ChallengeOrchestrator, would_challenge
from .clock import Clock, utc_now
from .codes import CodeType, TotpCode, parse_code
from .config import StepUpConfig
from .exceptions import StepUpRequiredError

if TYPE_CHECKING:
    from datetime import datetime

    from .audit.recorder import AuditRecorder
    from .enrollment import EnrollmentService
    from .factors.totp import EnrollmentSetup
    from .policy.resolver import PolicyResolver
    from .ports import IChallengeSurface, IFactorStore, ISessionProvider
    from .principal import Principal
    from .verifier import VerificationResult, Verifier

logger = logging.getLogger("stepup_mfa.service")


class StepUpService:
    """The administrative and gating surface for the current user.

    Example:
        ```python
        service = build_step_up_service(session=ContextSessionProvider())

        setup = await service.begin_enrollment()
        codes = await service.confirm_enrollment("123456")

        gate = service.open_session(surface)
        await gate.check_and_challenge(do_refund, action_kind="refund")
        ```
    """

    def __init__(
        self,
        session: ISessionProvider,
        enrollment: EnrollmentService,
        verifier: Verifier,
        resolver: PolicyResolver,
        factor_store: IFactorStore,
        audit: AuditRecorder,
        config: StepUpConfig | None = None,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.session = session
        self.enrollment = enrollment
        self.verifier = verifier
        self.resolver = resolver
        self.factor_store = factor_store
        self.audit = audit
        self.config = config or StepUpConfig()
        self._clock = clock

    def now(self) -> datetime:
        """Current time according to the service clock."""
        return self._clock()

    async def _tenant_id(self, principal: Principal) -> str | None:
        tenant = await self.session.get_active_tenant()
        return tenant.id if tenant is not None else principal.tenant_id

    async def _require_fresh_step_up(self, principal: Principal) -> None:
        if not self.config.gate_factor_management:
            return
        factor = await self.factor_store.get(principal.user_id)
        last = factor.last_verified_at if factor is not None else None
        tenant_id = await self._tenant_id(principal)
        if not await self.resolver.is_fresh(last, tenant_id):
            logger.info("Factor management needs step-up for %s", principal.user_id)
            raise StepUpRequiredError()

    # ── Enrollment ───────────────────────────────────────────────

    async def begin_enrollment(self) -> EnrollmentSetup:
        principal = await self.session.get_current_user()
        return await self.enrollment.begin_enrollment(
            principal.user_id, principal.account_name
        )

    async def confirm_enrollment(self, code: str) -> list[str]:
        """Confirm with a TOTP code; returns recovery codes shown once."""
        principal = await self.session.get_current_user()
        return await self.enrollment.confirm_enrollment(
            principal.user_id, TotpCode.parse(code)
        )

    # ── Verification ─────────────────────────────────────────────

    async def verify(
        self, code: str, code_type: CodeType | str = CodeType.TOTP
    ) -> VerificationResult:
        """Verify a code outside of a challenge (e.g. login step-up).

        Raises:
            ValueError: If code_type is unknown.
        """
        principal = await self.session.get_current_user()
        return await self.verifier.verify(
            principal.user_id, parse_code(code, code_type)
        )

    async def status(self) -> dict[str, object]:
        """Audit-safe view of the current user's factor.

        ``enrollment_required`` is True while policy (force flags or
        first-login MFA) demands a factor the user has not enabled yet.
        """
        principal = await self.session.get_current_user()
        factor = await self.factor_store.get(principal.user_id)
        status: dict[str, object] = (
            factor.snapshot()
            if factor is not None
            else {"state": "unenrolled", "enabled": False}
        )
        required = await self.resolver.requires_enrollment(
            await self._tenant_id(principal), principal.effective_role
        )
        status["enrollment_required"] = required and not status["enabled"]
        return status

    # ── Factor management ────────────────────────────────────────

    async def disable(
        self, code: str, code_type: CodeType | str = CodeType.TOTP
    ) -> None:
        """Disable the factor with one valid code.

        Raises:
            StepUpRequiredError: If factor management is gated and the last
                step-up is stale.
        """
        principal = await self.session.get_current_user()
        parsed = parse_code(code, code_type)
        await self._require_fresh_step_up(principal)
        await self.enrollment.disable(principal.user_id, parsed)

    async def regenerate_recovery_codes(self) -> list[str]:
        principal = await self.session.get_current_user()
        await self._require_fresh_step_up(principal)
        return await self.enrollment.regenerate_recovery_codes(principal.user_id)

    # ── Gating ───────────────────────────────────────────────────

    async def requires_step_up(self, action_kind: str) -> bool:
        """UI hint only; the gate re-evaluates when the action runs."""
        return await would_challenge(
            self.session, self.resolver, self.factor_store, action_kind
        )

    def open_session(self, surface: IChallengeSurface) -> ChallengeOrchestrator:
        """Create the orchestrator owning ``surface`` for one session."""
        return ChallengeOrchestrator(
            self.session,
            self.verifier,
            self.resolver,
            self.factor_store,
            surface,
            self.audit,
            self.config,
            clock=self._clock,
        )


__all__: list[str] = ["StepUpService"]
