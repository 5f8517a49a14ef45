"""Policy resolver: who must step up, for what, and for how long.

Resolution order for ``requires_step_up``:

1. No role, or no tenant for a non-super-admin -> PolicyDeniedError.
2. ROUTINE actions never require step-up.
3. Platform ``force_for_all_roles`` -> required.
4. Super admin with platform ``force_for_super_admin`` -> required.
5. CRITICAL actions -> required.
6. Tenant policy entry for the role, else platform default for the role,
   else not required.

Any policy-store failure resolves to "step-up required".
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from ..clock import Clock, utc_now
from ..exceptions import PolicyDeniedError, TransientStoreError
from ..principal import SUPER_ADMIN_ROLE
from .models import (
    ActionSensitivity,
    PlatformSecurityPolicy,
    TenantSecurityPolicy,
)

if TYPE_CHECKING:
    from ..ports import IPolicyStore

logger = logging.getLogger("stepup_mfa.policy")


class PolicyResolver:
    """Evaluates platform and tenant security policy."""

    def __init__(self, store: IPolicyStore, *, clock: Clock = utc_now) -> None:
        self.store = store
        self._clock = clock

    async def _load(
        self, tenant_id: str | None
    ) -> tuple[PlatformSecurityPolicy, TenantSecurityPolicy | None]:
        platform = await self.store.get_platform_policy()
        tenant = None
        if tenant_id is not None:
            tenant = await self.store.get_tenant_policy(tenant_id)
        return platform, tenant

    async def requires_step_up(
        self,
        tenant_id: str | None,
        role: str | None,
        sensitivity: ActionSensitivity = ActionSensitivity.SENSITIVE,
    ) -> bool:
        """Whether an action of this sensitivity needs a fresh step-up.

        Raises:
            PolicyDeniedError: If the role (or tenant, for non-super-admins)
                cannot be resolved.
        """
        is_super_admin = role == SUPER_ADMIN_ROLE
        if not role:
            raise PolicyDeniedError("No role resolved for the current user")
        if tenant_id is None and not is_super_admin:
            raise PolicyDeniedError("No active tenant for the current user")

        if sensitivity is ActionSensitivity.ROUTINE:
            return False

        try:
            platform, tenant = await self._load(tenant_id)
        except TransientStoreError:
            logger.warning(
                "Policy store unavailable for tenant %s; requiring step-up",
                tenant_id,
            )
            return True

        if platform.force_for_all_roles:
            return True
        if is_super_admin and platform.force_for_super_admin:
            return True
        if sensitivity is ActionSensitivity.CRITICAL:
            return True

        if tenant is not None and role in tenant.require_for_role:
            return tenant.require_for_role[role]
        return platform.default_require_for_role.get(role, False)

    async def step_up_window(self, tenant_id: str | None) -> int:
        """Freshness window in seconds (tenant policy, else platform)."""
        platform, tenant = await self._load(tenant_id)
        if tenant is not None:
            return tenant.step_up_window_seconds
        return platform.step_up_window_seconds

    async def is_fresh(
        self, last_verified_at: datetime | None, tenant_id: str | None
    ) -> bool:
        """Whether a prior verification still covers a new action.

        Fresh iff ``now - last_verified_at <= window``. Store failures
        count as stale.
        """
        if last_verified_at is None:
            return False
        try:
            window = await self.step_up_window(tenant_id)
        except TransientStoreError:
            logger.warning(
                "Policy store unavailable for tenant %s; treating as stale",
                tenant_id,
            )
            return False
        return self._clock() - last_verified_at <= timedelta(seconds=window)

    async def requires_enrollment(
        self, tenant_id: str | None, role: str | None
    ) -> bool:
        """Whether the user must enroll a factor before using the platform."""
        try:
            platform, tenant = await self._load(tenant_id)
        except TransientStoreError:
            logger.warning(
                "Policy store unavailable for tenant %s; requiring enrollment",
                tenant_id,
            )
            return True
        if platform.force_for_all_roles:
            return True
        if role == SUPER_ADMIN_ROLE and platform.force_for_super_admin:
            return True
        if tenant is not None:
            return tenant.first_login_requires_mfa
        return platform.first_login_requires_mfa


__all__: list[str] = ["PolicyResolver"]
