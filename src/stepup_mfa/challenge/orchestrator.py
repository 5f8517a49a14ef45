"""Per-session challenge orchestrator.

One instance owns the session's single challenge surface and holds at
most one captured action. Lifecycle of a gated call::

    check_and_challenge(action)
        fresh / not required -> action runs now          (EXECUTED)
        stale                -> action captured, surface opens (CHALLENGED)
    submit(code)
        accepted             -> captured action runs once, surface closes
        rejected             -> surface shows error + remaining attempts
        timeout / error      -> nothing runs, surface stays open
    cancel()
        captured action discarded, never runs

A second gate call while a challenge is open raises ChallengePendingError
and leaves the first captured action untouched.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from ..audit.events import AuditAction, gated_action_event
from ..clock import Clock, utc_now
from ..codes import CodeType, VerificationCode, parse_code
from ..config import VERIFY_ENDPOINT, StepUpConfig
from ..exceptions import (
    ChallengePendingError,
    EnrollmentRequiredError,
    NoChallengePendingError,
    StepUpError,
    TransientStoreError,
)
from ..observability import StepUpMetrics
from ..policy.models import sensitivity_of
from ..verifier import VerificationResult
from .countdown import CountdownTicker

if TYPE_CHECKING:
    from ..audit.recorder import AuditRecorder
    from ..policy.resolver import PolicyResolver
    from ..ports import GatedAction, IChallengeSurface, IFactorStore, ISessionProvider
    from ..verifier import Verifier

logger = logging.getLogger("stepup_mfa.challenge")


async def would_challenge(
    session: ISessionProvider,
    resolver: PolicyResolver,
    factor_store: IFactorStore,
    action_kind: str,
) -> bool:
    """Whether gating ``action_kind`` now would prompt the current user.

    True also when step-up is required but no factor is enabled yet.
    """
    principal = await session.get_current_user()
    tenant = await session.get_active_tenant()
    tenant_id = tenant.id if tenant is not None else principal.tenant_id
    if not await resolver.requires_step_up(
        tenant_id, principal.effective_role, sensitivity_of(action_kind)
    ):
        return False
    factor = await factor_store.get(principal.user_id)
    if factor is None or not factor.enabled:
        return True
    return not await resolver.is_fresh(factor.last_verified_at, tenant_id)


class GateOutcome(str, Enum):
    """What a gate call did with the action."""

    EXECUTED = "executed"
    CHALLENGED = "challenged"


@dataclass(frozen=True)
class _CapturedAction:
    action: GatedAction
    action_kind: str
    user_id: str
    tenant_id: str | None
    generation: int


class ChallengeOrchestrator:
    """Gate for one session.

    Example:
        ```python
        gate = service.open_session(surface)

        outcome = await gate.check_and_challenge(
            lambda: payments.refund(payment_id), action_kind="refund"
        )
        if outcome is GateOutcome.CHALLENGED:
            # later, from the surface's submit handler
            await gate.submit("123456")
        ```
    """

    def __init__(
        self,
        session: ISessionProvider,
        verifier: Verifier,
        resolver: PolicyResolver,
        factor_store: IFactorStore,
        surface: IChallengeSurface,
        audit: AuditRecorder,
        config: StepUpConfig | None = None,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.session = session
        self.verifier = verifier
        self.resolver = resolver
        self.factor_store = factor_store
        self.surface = surface
        self.audit = audit
        self.config = config or StepUpConfig()
        self._clock = clock
        self._pending: _CapturedAction | None = None
        self._generation = 0
        # Generation whose submission is being verified, if any.
        self._in_flight: int | None = None
        self._ticker = CountdownTicker(
            surface,
            interval=self.config.totp.interval,
            tick_seconds=self.config.countdown_tick_seconds,
            clock=clock,
        )

    @property
    def is_open(self) -> bool:
        return self._pending is not None

    @property
    def pending_action_kind(self) -> str | None:
        return self._pending.action_kind if self._pending else None

    @property
    def submission_in_flight(self) -> bool:
        return self._pending is not None and self._in_flight == self._pending.generation

    async def _identity(self) -> tuple[str, str | None, str | None]:
        principal = await self.session.get_current_user()
        tenant = await self.session.get_active_tenant()
        tenant_id = tenant.id if tenant is not None else principal.tenant_id
        return principal.user_id, principal.effective_role, tenant_id

    async def requires_step_up(self, action_kind: str) -> bool:
        """UI hint: whether gating this action now would open a challenge."""
        return await would_challenge(
            self.session, self.resolver, self.factor_store, action_kind
        )

    async def check_and_challenge(
        self, action: GatedAction, *, action_kind: str
    ) -> GateOutcome:
        """Run ``action`` now if no fresh step-up is needed, else challenge.

        Raises:
            ChallengePendingError: If a challenge is already open.
            EnrollmentRequiredError: If step-up is needed but no factor is enabled.
            PolicyDeniedError: If no tenant or role can be resolved.
        """
        if self._pending is not None:
            raise ChallengePendingError()

        user_id, role, tenant_id = await self._identity()
        try:
            required = await self.resolver.requires_step_up(
                tenant_id, role, sensitivity_of(action_kind)
            )
            factor = await self.factor_store.get(user_id) if required else None
            if required and (factor is None or not factor.enabled):
                raise EnrollmentRequiredError()
        except StepUpError as e:
            await self._audit_denied(user_id, action_kind, tenant_id, e)
            raise

        if not required or (
            factor is not None
            and await self.resolver.is_fresh(factor.last_verified_at, tenant_id)
        ):
            await self._execute(action, action_kind, user_id, tenant_id)
            return GateOutcome.EXECUTED

        # Another gate call may have opened a challenge while we awaited.
        if self._pending is not None:
            raise ChallengePendingError()

        self._generation += 1
        self._pending = _CapturedAction(
            action=action,
            action_kind=action_kind,
            user_id=user_id,
            tenant_id=tenant_id,
            generation=self._generation,
        )
        self.surface.open(action_kind)
        self._ticker.start()

        logger.info("Step-up challenge opened for %s (%s)", user_id, action_kind)
        StepUpMetrics.record_gate_outcome("challenged")
        await self.audit.record(
            gated_action_event(
                AuditAction.ACTION_CHALLENGED,
                user_id,
                action_kind,
                tenant_id=tenant_id,
            )
        )
        return GateOutcome.CHALLENGED

    async def submit(
        self, raw_code: str, code_type: CodeType | str = CodeType.TOTP
    ) -> VerificationResult | None:
        """Submit a code for the open challenge.

        Returns:
            The verification result, or None when ignored because nothing is
            pending or another submission is still in flight.

        Raises:
            ValueError: If code_type is unknown.
        """
        captured = self._pending
        if captured is None or self._in_flight == captured.generation:
            logger.debug("Ignoring submission (pending=%s)", captured is not None)
            return None

        code = parse_code(raw_code, code_type)
        self._in_flight = captured.generation
        try:
            result = await self._verify(captured.user_id, code)
        finally:
            # A newer challenge may already own the flag.
            if self._in_flight == captured.generation:
                self._in_flight = None

        current = self._pending
        if current is None or current.generation != captured.generation:
            logger.info(
                "Challenge for %s closed during verification; action discarded",
                captured.action_kind,
            )
            return result

        if result.failure is not None:
            if result.remaining_attempts is not None:
                self.surface.show_remaining_attempts(result.remaining_attempts)
            self.surface.show_error(result.failure.code, result.failure.message)
            return result

        self._close()
        await self._execute(
            captured.action, captured.action_kind, captured.user_id, captured.tenant_id
        )
        return result

    async def _verify(
        self, user_id: str, code: VerificationCode
    ) -> VerificationResult:
        try:
            return await asyncio.wait_for(
                self.verifier.verify(user_id, code, purpose=VERIFY_ENDPOINT),
                timeout=self.config.verify_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Verification timed out for %s; action not run", user_id)
            failure = TransientStoreError("Verification timed out. Please try again.")
        except Exception:  # noqa: BLE001
            logger.exception("Verification failed unexpectedly for %s", user_id)
            failure = TransientStoreError()
        return VerificationResult(
            ok=False, remaining_attempts=None, method=code.kind, failure=failure
        )

    async def cancel(self) -> None:
        """Discard the captured action and close the surface.

        Raises:
            NoChallengePendingError: If no challenge is open.
        """
        captured = self._pending
        if captured is None:
            raise NoChallengePendingError()
        self._close()

        logger.info("Step-up challenge cancelled (%s)", captured.action_kind)
        StepUpMetrics.record_gate_outcome("cancelled")
        await self.audit.record(
            gated_action_event(
                AuditAction.ACTION_CANCELLED,
                captured.user_id,
                captured.action_kind,
                tenant_id=captured.tenant_id,
            )
        )

    async def aclose(self) -> None:
        """Tear down the session, cancelling any open challenge."""
        if self._pending is not None:
            await self.cancel()
        self._ticker.stop()

    def _close(self) -> None:
        self._pending = None
        self._generation += 1
        self._ticker.stop()
        self.surface.close()

    async def _execute(
        self,
        action: GatedAction,
        action_kind: str,
        user_id: str,
        tenant_id: str | None,
    ) -> None:
        try:
            result = action()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning("Gated action %s raised %s", action_kind, type(e).__name__)
            StepUpMetrics.record_gate_outcome("failed")
            await self.audit.record(
                gated_action_event(
                    AuditAction.ACTION_FAILED,
                    user_id,
                    action_kind,
                    tenant_id=tenant_id,
                    success=False,
                    error_code=type(e).__name__,
                )
            )
            raise

        StepUpMetrics.record_gate_outcome("executed")
        await self.audit.record(
            gated_action_event(
                AuditAction.ACTION_EXECUTED,
                user_id,
                action_kind,
                tenant_id=tenant_id,
            )
        )

    async def _audit_denied(
        self,
        user_id: str,
        action_kind: str,
        tenant_id: str | None,
        error: StepUpError,
    ) -> None:
        logger.info(
            "Gated action %s denied for %s: %s", action_kind, user_id, error.code
        )
        StepUpMetrics.record_gate_outcome("denied")
        await self.audit.record(
            gated_action_event(
                AuditAction.ACTION_DENIED,
                user_id,
                action_kind,
                tenant_id=tenant_id,
                success=False,
                error_code=error.code,
            )
        )


__all__: list[str] = ["GateOutcome", "ChallengeOrchestrator", "would_challenge"]
