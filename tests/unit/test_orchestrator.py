"""Tests for the per-session challenge orchestrator."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pyotp
import pytest

from stepup_mfa import (
    ChallengePendingError,
    EnrollmentRequiredError,
    GateOutcome,
    NoChallengePendingError,
    PolicyDeniedError,
    Principal,
    StaticSessionProvider,
    StepUpConfig,
    build_step_up_service,
)
from stepup_mfa.audit import AuditAction
from stepup_mfa.challenge import CountdownTicker, totp_seconds_remaining

STALE = 301


class Recorder:
    """Gated action that counts its invocations."""

    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        return "done"


class BlockingVerifier:
    """Wraps a verifier and holds every call until released."""

    def __init__(self, inner) -> None:
        self.inner = inner
        self.release = asyncio.Event()
        self.entered = asyncio.Event()
        self.calls = 0

    async def verify(self, user_id, code, **kwargs):
        self.calls += 1
        self.entered.set()
        await self.release.wait()
        return await self.inner.verify(user_id, code, **kwargs)


class BrokenVerifier:
    async def verify(self, user_id, code, **kwargs):
        raise RuntimeError("database exploded")


def _code(totp, secret, clock) -> str:
    return pyotp.TOTP(secret).at(clock())


@pytest.fixture
def action() -> Recorder:
    return Recorder()


class TestFreshPath:
    @pytest.mark.asyncio
    async def test_fresh_step_up_runs_immediately(
        self, service, surface, enrolled, action, audit_store
    ) -> None:
        gate = service.open_session(surface)

        outcome = await gate.check_and_challenge(action, action_kind="refund")

        assert outcome is GateOutcome.EXECUTED
        assert action.calls == 1
        assert surface.opened == []
        assert audit_store.count_by_action(AuditAction.ACTION_EXECUTED) == 1

    @pytest.mark.asyncio
    async def test_routine_action_never_prompts(
        self, service, surface, action
    ) -> None:
        gate = service.open_session(surface)

        outcome = await gate.check_and_challenge(action, action_kind="dashboard.view")

        assert outcome is GateOutcome.EXECUTED
        assert action.calls == 1

    @pytest.mark.asyncio
    async def test_role_without_requirement_runs_without_factor(
        self, clock, surface, action
    ) -> None:
        developer = Principal(user_id="dev-1", role="developer", tenant_id="acme")
        service = build_step_up_service(
            session=StaticSessionProvider(developer), clock=clock
        )

        outcome = await service.open_session(surface).check_and_challenge(
            action, action_kind="refund"
        )

        assert outcome is GateOutcome.EXECUTED
        assert action.calls == 1

    @pytest.mark.asyncio
    async def test_async_actions_are_awaited(self, service, surface, enrolled) -> None:
        ran = []

        async def issue_payout() -> None:
            await asyncio.sleep(0)
            ran.append(True)

        await service.open_session(surface).check_and_challenge(
            issue_payout, action_kind="payout"
        )
        assert ran == [True]

    @pytest.mark.asyncio
    async def test_failing_action_is_audited_and_raised(
        self, service, surface, enrolled, audit_store
    ) -> None:
        def explode() -> None:
            raise RuntimeError("downstream failure")

        with pytest.raises(RuntimeError):
            await service.open_session(surface).check_and_challenge(
                explode, action_kind="refund"
            )
        failed = (await audit_store.get_events_by_action(AuditAction.ACTION_FAILED))[0]
        assert failed.error_code == "RuntimeError"


class TestDenials:
    @pytest.mark.asyncio
    async def test_enrollment_required(
        self, service, surface, action, audit_store
    ) -> None:
        gate = service.open_session(surface)

        with pytest.raises(EnrollmentRequiredError):
            await gate.check_and_challenge(action, action_kind="refund")

        assert action.calls == 0
        assert surface.opened == []
        denied = (await audit_store.get_events_by_action(AuditAction.ACTION_DENIED))[0]
        assert denied.error_code == "MFA_ENROLL_REQUIRED"
        assert denied.metadata["action_kind"] == "refund"

    @pytest.mark.asyncio
    async def test_disabled_factor_requires_enrollment_not_challenge(
        self, service, surface, enrolled, action
    ) -> None:
        _, codes = enrolled
        await service.disable(codes[0], "recovery")
        gate = service.open_session(surface)

        with pytest.raises(EnrollmentRequiredError):
            await gate.check_and_challenge(action, action_kind="refund")

        assert surface.opened == []
        assert not gate.is_open

    @pytest.mark.asyncio
    async def test_no_tenant_is_denied(self, clock, surface, action) -> None:
        orphan = Principal(user_id="u-9", role="owner")
        service = build_step_up_service(
            session=StaticSessionProvider(orphan), clock=clock
        )

        with pytest.raises(PolicyDeniedError):
            await service.open_session(surface).check_and_challenge(
                action, action_kind="refund"
            )
        assert action.calls == 0


class TestChallenge:
    @pytest.mark.asyncio
    async def test_stale_step_up_captures_action(
        self, service, surface, enrolled, action, clock, audit_store
    ) -> None:
        clock.advance(STALE)
        gate = service.open_session(surface)

        outcome = await gate.check_and_challenge(action, action_kind="refund")

        assert outcome is GateOutcome.CHALLENGED
        assert action.calls == 0
        assert surface.opened == ["refund"]
        assert gate.is_open
        assert gate.pending_action_kind == "refund"
        assert surface.countdowns
        assert audit_store.count_by_action(AuditAction.ACTION_CHALLENGED) == 1
        await gate.aclose()

    @pytest.mark.asyncio
    async def test_correct_code_runs_action_once_and_closes(
        self, service, surface, enrolled, action, clock, totp
    ) -> None:
        secret, _ = enrolled
        clock.advance(STALE)
        gate = service.open_session(surface)
        await gate.check_and_challenge(action, action_kind="refund")

        result = await gate.submit(_code(totp, secret, clock))

        assert result.ok
        assert action.calls == 1
        assert surface.closed == 1
        assert not gate.is_open
        assert await gate.submit(_code(totp, secret, clock)) is None
        assert action.calls == 1

    @pytest.mark.asyncio
    async def test_fresh_after_challenge_runs_next_action_directly(
        self, service, surface, enrolled, action, clock, totp
    ) -> None:
        secret, _ = enrolled
        clock.advance(STALE)
        gate = service.open_session(surface)
        await gate.check_and_challenge(action, action_kind="refund")
        await gate.submit(_code(totp, secret, clock))

        outcome = await gate.check_and_challenge(action, action_kind="payout")

        assert outcome is GateOutcome.EXECUTED
        assert action.calls == 2
        assert surface.opened == ["refund"]

    @pytest.mark.asyncio
    async def test_wrong_code_keeps_challenge_open(
        self, service, surface, enrolled, action, clock
    ) -> None:
        clock.advance(STALE)
        gate = service.open_session(surface)
        await gate.check_and_challenge(action, action_kind="refund")

        result = await gate.submit("000000")

        assert not result.ok
        assert action.calls == 0
        assert gate.is_open
        assert surface.remaining == [4]
        assert surface.errors[0][0] == "INVALID_CODE"
        await gate.aclose()

    @pytest.mark.asyncio
    async def test_recovery_code_satisfies_challenge(
        self, service, surface, enrolled, action, clock
    ) -> None:
        _, codes = enrolled
        clock.advance(STALE)
        gate = service.open_session(surface)
        await gate.check_and_challenge(action, action_kind="refund")

        result = await gate.submit(codes[3], "recovery")

        assert result.ok
        assert action.calls == 1

    @pytest.mark.asyncio
    async def test_lockout_after_five_failures(
        self, service, surface, enrolled, action, clock, totp
    ) -> None:
        secret, _ = enrolled
        clock.advance(STALE)
        gate = service.open_session(surface)
        await gate.check_and_challenge(action, action_kind="refund")
        for _ in range(5):
            await gate.submit("000000")

        result = await gate.submit(_code(totp, secret, clock))

        assert not result.ok
        assert surface.remaining == [4, 3, 2, 1, 0, 0]
        assert surface.errors[-1][0] == "RATE_LIMITED"
        assert action.calls == 0
        await gate.aclose()

    @pytest.mark.asyncio
    async def test_second_gate_while_pending_is_rejected(
        self, service, surface, enrolled, action, clock, totp
    ) -> None:
        secret, _ = enrolled
        clock.advance(STALE)
        gate = service.open_session(surface)
        other = Recorder()
        await gate.check_and_challenge(action, action_kind="refund")

        with pytest.raises(ChallengePendingError):
            await gate.check_and_challenge(other, action_kind="payout")

        assert gate.pending_action_kind == "refund"
        await gate.submit(_code(totp, secret, clock))
        assert action.calls == 1
        assert other.calls == 0


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_discards_action(
        self, service, surface, enrolled, action, clock, totp, audit_store
    ) -> None:
        secret, _ = enrolled
        clock.advance(STALE)
        gate = service.open_session(surface)
        await gate.check_and_challenge(action, action_kind="refund")

        await gate.cancel()

        assert not gate.is_open
        assert surface.closed == 1
        assert await gate.submit(_code(totp, secret, clock)) is None
        assert action.calls == 0
        assert audit_store.count_by_action(AuditAction.ACTION_CANCELLED) == 1

    @pytest.mark.asyncio
    async def test_cancel_without_challenge(self, service, surface) -> None:
        with pytest.raises(NoChallengePendingError):
            await service.open_session(surface).cancel()

    @pytest.mark.asyncio
    async def test_cancel_during_verification_discards_action(
        self, service, surface, enrolled, action, clock, totp
    ) -> None:
        secret, _ = enrolled
        clock.advance(STALE)
        gate = service.open_session(surface)
        await gate.check_and_challenge(action, action_kind="refund")
        blocking = BlockingVerifier(gate.verifier)
        gate.verifier = blocking

        submission = asyncio.create_task(gate.submit(_code(totp, secret, clock)))
        await blocking.entered.wait()
        await gate.cancel()
        blocking.release.set()
        result = await submission

        assert result.ok
        assert action.calls == 0
        assert not gate.is_open


class TestSubmissionSafety:
    @pytest.mark.asyncio
    async def test_double_submit_is_ignored(
        self, service, surface, enrolled, action, clock, totp
    ) -> None:
        secret, _ = enrolled
        clock.advance(STALE)
        gate = service.open_session(surface)
        await gate.check_and_challenge(action, action_kind="refund")
        blocking = BlockingVerifier(gate.verifier)
        gate.verifier = blocking
        code = _code(totp, secret, clock)

        first = asyncio.create_task(gate.submit(code))
        await blocking.entered.wait()
        assert gate.submission_in_flight
        assert await gate.submit(code) is None
        blocking.release.set()

        assert (await first).ok
        assert blocking.calls == 1
        assert action.calls == 1

    @pytest.mark.asyncio
    async def test_new_challenge_takes_submissions_while_old_one_resolves(
        self, service, surface, enrolled, action, clock, totp
    ) -> None:
        secret, _ = enrolled
        clock.advance(STALE)
        gate = service.open_session(surface)
        await gate.check_and_challenge(action, action_kind="refund")
        verifier = gate.verifier
        blocking = BlockingVerifier(verifier)
        gate.verifier = blocking
        stale = asyncio.create_task(gate.submit("000000"))
        await blocking.entered.wait()
        await gate.cancel()

        payout = Recorder()
        await gate.check_and_challenge(payout, action_kind="payout")
        gate.verifier = verifier

        assert not gate.submission_in_flight
        result = await gate.submit(_code(totp, secret, clock))

        assert result.ok
        assert payout.calls == 1
        blocking.release.set()
        await stale
        assert action.calls == 0

    @pytest.mark.asyncio
    async def test_timeout_fails_safe(
        self, principal, clock, surface, action, totp, factor_store
    ) -> None:
        service = build_step_up_service(
            StepUpConfig(verify_timeout_seconds=0.01),
            session=StaticSessionProvider(principal),
            factor_store=factor_store,
            clock=clock,
        )
        setup = await service.begin_enrollment()
        await service.confirm_enrollment(_code(totp, setup.secret, clock))
        clock.advance(STALE)
        gate = service.open_session(surface)
        await gate.check_and_challenge(action, action_kind="refund")
        gate.verifier = BlockingVerifier(gate.verifier)

        result = await gate.submit(_code(totp, setup.secret, clock))

        assert not result.ok
        assert result.failure.code == "STORE_UNAVAILABLE"
        assert surface.errors == [("STORE_UNAVAILABLE", result.failure.message)]
        assert action.calls == 0
        assert gate.is_open
        assert not gate.submission_in_flight
        await gate.aclose()

    @pytest.mark.asyncio
    async def test_verifier_crash_fails_safe(
        self, service, surface, enrolled, action, clock
    ) -> None:
        clock.advance(STALE)
        gate = service.open_session(surface)
        await gate.check_and_challenge(action, action_kind="refund")
        gate.verifier = BrokenVerifier()

        result = await gate.submit("123456")

        assert result.failure.code == "STORE_UNAVAILABLE"
        assert action.calls == 0
        assert gate.is_open
        await gate.aclose()

    @pytest.mark.asyncio
    async def test_unknown_code_type_raises(
        self, service, surface, enrolled, action, clock
    ) -> None:
        clock.advance(STALE)
        gate = service.open_session(surface)
        await gate.check_and_challenge(action, action_kind="refund")

        with pytest.raises(ValueError):
            await gate.submit("123456", "sms")
        assert not gate.submission_in_flight
        await gate.aclose()


class TestRequiresStepUpHint:
    @pytest.mark.asyncio
    async def test_hint_tracks_freshness(
        self, service, surface, enrolled, clock
    ) -> None:
        gate = service.open_session(surface)

        assert not await gate.requires_step_up("refund")
        clock.advance(STALE)
        assert await gate.requires_step_up("refund")
        assert not await gate.requires_step_up("dashboard.view")

    @pytest.mark.asyncio
    async def test_hint_true_without_factor(self, service, surface) -> None:
        assert await service.open_session(surface).requires_step_up("refund")


class TestCountdown:
    def test_seconds_remaining_is_wall_clock_based(self, clock) -> None:
        assert totp_seconds_remaining(clock()) == 30
        assert totp_seconds_remaining(clock() + timedelta(seconds=7)) == 23
        assert totp_seconds_remaining(clock() + timedelta(seconds=29)) == 1
        assert totp_seconds_remaining(clock() + timedelta(seconds=30)) == 30

    @pytest.mark.asyncio
    async def test_ticker_pushes_countdown_until_stopped(
        self, surface, clock
    ) -> None:
        ticker = CountdownTicker(surface, tick_seconds=0.01, clock=clock)

        ticker.start()
        assert surface.countdowns == [30]
        clock.advance(10)
        await asyncio.sleep(0.05)
        ticker.stop()

        assert not ticker.running
        assert surface.countdowns[-1] == 20
        ticks = len(surface.countdowns)
        await asyncio.sleep(0.03)
        assert len(surface.countdowns) == ticks

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, surface, clock) -> None:
        ticker = CountdownTicker(surface, tick_seconds=10, clock=clock)

        ticker.start()
        ticker.start()

        assert surface.countdowns == [30]
        ticker.stop()

    @pytest.mark.asyncio
    async def test_closing_challenge_stops_ticker(
        self, service, surface, enrolled, action, clock
    ) -> None:
        clock.advance(STALE)
        gate = service.open_session(surface)
        await gate.check_and_challenge(action, action_kind="refund")
        assert gate._ticker.running

        await gate.cancel()

        assert not gate._ticker.running
