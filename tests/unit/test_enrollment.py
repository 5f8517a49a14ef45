"""Tests for the factor enrollment state machine."""

from __future__ import annotations

from datetime import timedelta

import pyotp
import pytest

from stepup_mfa.audit import AuditAction
from stepup_mfa.codes import RecoveryCode, TotpCode
from stepup_mfa.exceptions import (
    EnrollmentRequiredError,
    EnrollmentStateError,
    InvalidCodeError,
    RateLimitedError,
)
from stepup_mfa.factors import FactorState

USER = "user-123"


def _code_now(totp, secret: str, clock) -> TotpCode:
    return TotpCode.parse(pyotp.TOTP(secret).at(clock()))


class TestBeginEnrollment:
    @pytest.mark.asyncio
    async def test_creates_pending_factor(
        self, service, factor_store, audit_store
    ) -> None:
        setup = await service.enrollment.begin_enrollment(USER, "jane@example.com")

        factor = await factor_store.get(USER)
        assert factor.state is FactorState.PENDING_ENROLLMENT
        assert factor.pending_secret.get_secret_value() == setup.secret
        assert not factor.enabled
        assert "jane%40example.com" in setup.provisioning_uri
        assert audit_store.count_by_action(AuditAction.ENROLL_INITIATED) == 1

    @pytest.mark.asyncio
    async def test_rebegin_overwrites_pending_secret(
        self, service, factor_store
    ) -> None:
        first = await service.enrollment.begin_enrollment(USER)
        second = await service.enrollment.begin_enrollment(USER)

        factor = await factor_store.get(USER)
        assert first.secret != second.secret
        assert factor.pending_secret.get_secret_value() == second.secret

    @pytest.mark.asyncio
    async def test_rejected_when_already_enabled(
        self, service, enrolled, audit_store
    ) -> None:
        with pytest.raises(EnrollmentStateError):
            await service.enrollment.begin_enrollment(USER)
        assert audit_store.count_by_action(AuditAction.ENROLL_FAILED) == 1

    @pytest.mark.asyncio
    async def test_rate_limited(self, service) -> None:
        for _ in range(10):
            await service.enrollment.begin_enrollment(USER)

        with pytest.raises(RateLimitedError) as exc_info:
            await service.enrollment.begin_enrollment(USER)
        assert exc_info.value.reset_at is not None


class TestConfirmEnrollment:
    @pytest.mark.asyncio
    async def test_enables_factor_and_returns_codes(
        self, service, totp, factor_store, clock, audit_store
    ) -> None:
        setup = await service.enrollment.begin_enrollment(USER)

        codes = await service.enrollment.confirm_enrollment(
            USER, _code_now(totp, setup.secret, clock)
        )

        factor = await factor_store.get(USER)
        assert factor.state is FactorState.ENABLED
        assert factor.secret.get_secret_value() == setup.secret
        assert factor.pending_secret is None
        assert factor.last_verified_at == clock()
        assert len(codes) == 10
        assert factor.recovery_codes_remaining == 10
        for code in codes:
            assert code not in factor.recovery_code_hashes
            assert RecoveryCode.parse(code).fingerprint() in factor.recovery_code_hashes

        enabled = (await audit_store.get_events_by_action(AuditAction.ENABLED))[0]
        assert enabled.before["state"] == "pending_enrollment"
        assert enabled.after["state"] == "enabled"
        assert "secret" not in enabled.after

    @pytest.mark.asyncio
    async def test_wrong_code_keeps_factor_pending(
        self, service, factor_store, audit_store
    ) -> None:
        await service.enrollment.begin_enrollment(USER)

        with pytest.raises(InvalidCodeError) as exc_info:
            await service.enrollment.confirm_enrollment(USER, TotpCode.parse("000000"))

        assert exc_info.value.remaining_attempts == 4
        factor = await factor_store.get(USER)
        assert factor.state is FactorState.PENDING_ENROLLMENT
        assert audit_store.count_by_action(AuditAction.ENROLL_FAILED) == 1

    @pytest.mark.asyncio
    async def test_code_for_previous_secret_rejected(
        self, service, totp, clock
    ) -> None:
        old = await service.enrollment.begin_enrollment(USER)
        await service.enrollment.begin_enrollment(USER)

        with pytest.raises(InvalidCodeError):
            await service.enrollment.confirm_enrollment(
                USER, _code_now(totp, old.secret, clock)
            )

    @pytest.mark.asyncio
    async def test_requires_pending_enrollment(self, service) -> None:
        with pytest.raises(EnrollmentStateError):
            await service.enrollment.confirm_enrollment(USER, TotpCode.parse("123456"))

    @pytest.mark.asyncio
    async def test_secret_replaced_during_confirmation_is_not_enabled(
        self, service, totp, factor_store, clock, audit_store, monkeypatch
    ) -> None:
        setup = await service.enrollment.begin_enrollment(USER)
        verify = service.enrollment.verifier.verify

        async def verify_then_restart(*args, **kwargs):
            result = await verify(*args, **kwargs)
            await service.enrollment.begin_enrollment(USER)
            return result

        monkeypatch.setattr(service.enrollment.verifier, "verify", verify_then_restart)

        with pytest.raises(EnrollmentStateError):
            await service.enrollment.confirm_enrollment(
                USER, _code_now(totp, setup.secret, clock)
            )

        factor = await factor_store.get(USER)
        assert factor.state is FactorState.PENDING_ENROLLMENT
        assert factor.pending_secret.get_secret_value() != setup.secret
        assert audit_store.count_by_action(AuditAction.ENABLED) == 0

    @pytest.mark.asyncio
    async def test_concurrent_confirmations_enable_once(
        self, service, totp, factor_store, clock, audit_store, monkeypatch
    ) -> None:
        setup = await service.enrollment.begin_enrollment(USER)
        previous = TotpCode.parse(
            pyotp.TOTP(setup.secret).at(clock() - timedelta(seconds=30))
        )
        verify = service.enrollment.verifier.verify

        async def verify_while_another_confirms(*args, **kwargs):
            result = await verify(*args, **kwargs)
            monkeypatch.setattr(service.enrollment.verifier, "verify", verify)
            await service.enrollment.confirm_enrollment(USER, previous)
            return result

        monkeypatch.setattr(
            service.enrollment.verifier, "verify", verify_while_another_confirms
        )

        with pytest.raises(EnrollmentStateError):
            await service.enrollment.confirm_enrollment(
                USER, _code_now(totp, setup.secret, clock)
            )

        factor = await factor_store.get(USER)
        assert factor.enabled
        assert factor.secret.get_secret_value() == setup.secret
        assert audit_store.count_by_action(AuditAction.ENABLED) == 1


class TestRegenerateRecoveryCodes:
    @pytest.mark.asyncio
    async def test_old_codes_fail_verification_afterward(
        self, service, enrolled
    ) -> None:
        _, old_codes = enrolled
        await service.enrollment.regenerate_recovery_codes(USER)

        result = await service.verify(old_codes[0], "recovery")

        assert isinstance(result.failure, InvalidCodeError)

    @pytest.mark.asyncio
    async def test_replaces_whole_set(self, service, enrolled, factor_store) -> None:
        _, old_codes = enrolled

        new_codes = await service.enrollment.regenerate_recovery_codes(USER)

        factor = await factor_store.get(USER)
        assert set(new_codes).isdisjoint(old_codes)
        for code in old_codes:
            assert RecoveryCode.parse(code).fingerprint() not in (
                factor.recovery_code_hashes
            )
        assert factor.recovery_codes_remaining == len(new_codes)

    @pytest.mark.asyncio
    async def test_requires_enabled_factor(self, service) -> None:
        with pytest.raises(EnrollmentRequiredError):
            await service.enrollment.regenerate_recovery_codes(USER)


class TestDisable:
    @pytest.mark.asyncio
    async def test_disable_with_recovery_code_clears_everything(
        self, service, enrolled, factor_store, audit_store
    ) -> None:
        _, codes = enrolled

        await service.enrollment.disable(USER, RecoveryCode.parse(codes[0]))

        factor = await factor_store.get(USER)
        assert factor.state is FactorState.DISABLED
        assert factor.secret is None
        assert factor.recovery_codes_remaining == 0
        assert factor.last_verified_at is None
        disabled = (await audit_store.get_events_by_action(AuditAction.DISABLED))[0]
        assert disabled.metadata == {"method": "recovery"}

    @pytest.mark.asyncio
    async def test_disable_with_fresh_totp(
        self, service, enrolled, factor_store, totp, clock
    ) -> None:
        secret, _ = enrolled
        clock.advance(60)

        await service.enrollment.disable(USER, _code_now(totp, secret, clock))

        assert not (await factor_store.get(USER)).enabled

    @pytest.mark.asyncio
    async def test_wrong_code_leaves_factor_enabled(
        self, service, enrolled, factor_store, audit_store
    ) -> None:
        with pytest.raises(InvalidCodeError):
            await service.enrollment.disable(USER, TotpCode.parse("000000"))

        assert (await factor_store.get(USER)).enabled
        assert audit_store.count_by_action(AuditAction.DISABLE_FAILED) == 1

    @pytest.mark.asyncio
    async def test_requires_enabled_factor(self, service) -> None:
        with pytest.raises(EnrollmentRequiredError):
            await service.enrollment.disable(USER, TotpCode.parse("123456"))

    @pytest.mark.asyncio
    async def test_re_enrollment_after_disable(
        self, service, enrolled, factor_store, totp, clock
    ) -> None:
        _, codes = enrolled
        await service.enrollment.disable(USER, RecoveryCode.parse(codes[0]))

        setup = await service.enrollment.begin_enrollment(USER)
        clock.advance(60)
        await service.enrollment.confirm_enrollment(
            USER, _code_now(totp, setup.secret, clock)
        )

        assert (await factor_store.get(USER)).state is FactorState.ENABLED
