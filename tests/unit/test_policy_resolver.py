"""Tests for policy resolution."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from stepup_mfa.exceptions import PolicyDeniedError, TransientStoreError
from stepup_mfa.policy import (
    ActionSensitivity,
    InMemoryPolicyStore,
    PlatformSecurityPolicy,
    PolicyResolver,
    TenantSecurityPolicy,
    sensitivity_of,
)

SENSITIVE = ActionSensitivity.SENSITIVE


def _resolver(clock, platform=None, tenants=None) -> PolicyResolver:
    store = InMemoryPolicyStore(platform, tenants)
    return PolicyResolver(store, clock=clock)


class TestSensitivityCatalog:
    def test_known_actions(self) -> None:
        assert sensitivity_of("refund") is ActionSensitivity.SENSITIVE
        assert sensitivity_of("system_withdrawal") is ActionSensitivity.CRITICAL
        assert sensitivity_of("dashboard.view") is ActionSensitivity.ROUTINE

    def test_unknown_actions_are_sensitive(self) -> None:
        assert sensitivity_of("something-new") is ActionSensitivity.SENSITIVE


class TestRequiresStepUp:
    @pytest.mark.asyncio
    async def test_platform_defaults_by_role(self, clock) -> None:
        resolver = _resolver(clock)

        assert await resolver.requires_step_up("acme", "owner", SENSITIVE)
        assert await resolver.requires_step_up("acme", "admin", SENSITIVE)
        assert not await resolver.requires_step_up("acme", "developer", SENSITIVE)

    @pytest.mark.asyncio
    async def test_tenant_policy_overrides_platform_default(self, clock) -> None:
        resolver = _resolver(
            clock,
            tenants={
                "acme": TenantSecurityPolicy(
                    tenant_id="acme",
                    require_for_role={"owner": False, "finance": True},
                )
            },
        )

        assert not await resolver.requires_step_up("acme", "owner", SENSITIVE)
        assert await resolver.requires_step_up("acme", "finance", SENSITIVE)
        # No tenant entry: falls back to the platform default.
        assert await resolver.requires_step_up("acme", "admin", SENSITIVE)

    @pytest.mark.asyncio
    async def test_force_for_all_roles_overrides_tenant(self, clock) -> None:
        resolver = _resolver(
            clock,
            platform=PlatformSecurityPolicy(force_for_all_roles=True),
            tenants={
                "acme": TenantSecurityPolicy(
                    tenant_id="acme", require_for_role={"developer": False}
                )
            },
        )
        assert await resolver.requires_step_up("acme", "developer", SENSITIVE)

    @pytest.mark.asyncio
    async def test_super_admin_forced_without_tenant(self, clock) -> None:
        resolver = _resolver(clock)
        assert await resolver.requires_step_up(None, "super_admin", SENSITIVE)

    @pytest.mark.asyncio
    async def test_super_admin_force_can_be_disabled(self, clock) -> None:
        resolver = _resolver(
            clock, platform=PlatformSecurityPolicy(force_for_super_admin=False)
        )
        assert not await resolver.requires_step_up(None, "super_admin", SENSITIVE)

    @pytest.mark.asyncio
    async def test_critical_always_required(self, clock) -> None:
        resolver = _resolver(clock)
        assert await resolver.requires_step_up(
            "acme", "developer", ActionSensitivity.CRITICAL
        )

    @pytest.mark.asyncio
    async def test_routine_never_required(self, clock) -> None:
        resolver = _resolver(
            clock, platform=PlatformSecurityPolicy(force_for_all_roles=True)
        )
        assert not await resolver.requires_step_up(
            "acme", "owner", ActionSensitivity.ROUTINE
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("tenant", "role"), [("acme", None), ("acme", ""), (None, "owner")]
    )
    async def test_unresolvable_identity_is_denied(self, clock, tenant, role) -> None:
        with pytest.raises(PolicyDeniedError):
            await _resolver(clock).requires_step_up(tenant, role, SENSITIVE)

    @pytest.mark.asyncio
    async def test_store_failure_requires_step_up(self, clock) -> None:
        store = AsyncMock()
        store.get_platform_policy.side_effect = TransientStoreError()
        resolver = PolicyResolver(store, clock=clock)

        assert await resolver.requires_step_up("acme", "developer", SENSITIVE)


class TestFreshness:
    @pytest.mark.asyncio
    async def test_never_verified_is_stale(self, clock) -> None:
        assert not await _resolver(clock).is_fresh(None, "acme")

    @pytest.mark.asyncio
    async def test_window_boundary_is_inclusive(self, clock) -> None:
        resolver = _resolver(clock)
        verified = clock()

        clock.advance(300)
        assert await resolver.is_fresh(verified, "acme")
        clock.advance(1)
        assert not await resolver.is_fresh(verified, "acme")

    @pytest.mark.asyncio
    async def test_tenant_window_wins(self, clock) -> None:
        resolver = _resolver(
            clock,
            platform=PlatformSecurityPolicy(step_up_window_seconds=600),
            tenants={
                "acme": TenantSecurityPolicy(
                    tenant_id="acme", step_up_window_seconds=60
                )
            },
        )
        verified = clock() - timedelta(seconds=120)

        assert not await resolver.is_fresh(verified, "acme")
        assert await resolver.is_fresh(verified, "other")
        assert await resolver.step_up_window("acme") == 60
        assert await resolver.step_up_window(None) == 600

    @pytest.mark.asyncio
    async def test_store_failure_is_stale(self, clock) -> None:
        store = AsyncMock()
        store.get_platform_policy.side_effect = TransientStoreError()
        resolver = PolicyResolver(store, clock=clock)

        assert not await resolver.is_fresh(clock(), "acme")


class TestRequiresEnrollment:
    @pytest.mark.asyncio
    async def test_first_login_flag(self, clock) -> None:
        resolver = _resolver(
            clock,
            tenants={
                "acme": TenantSecurityPolicy(
                    tenant_id="acme", first_login_requires_mfa=True
                )
            },
        )
        assert await resolver.requires_enrollment("acme", "developer")
        assert not await resolver.requires_enrollment("other", "developer")

    @pytest.mark.asyncio
    async def test_super_admin_must_enroll_by_default(self, clock) -> None:
        assert await _resolver(clock).requires_enrollment(None, "super_admin")


class TestPolicyModels:
    def test_window_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            TenantSecurityPolicy(tenant_id="acme", step_up_window_seconds=0)

    def test_policies_are_immutable(self) -> None:
        policy = PlatformSecurityPolicy()
        with pytest.raises(ValueError):
            policy.force_for_all_roles = True  # type: ignore[misc]
