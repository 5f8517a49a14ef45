"""In-memory policy store."""

from __future__ import annotations

from .models import PlatformSecurityPolicy, TenantSecurityPolicy


class InMemoryPolicyStore:
    """IPolicyStore holding the platform singleton and per-tenant policies."""

    def __init__(
        self,
        platform: PlatformSecurityPolicy | None = None,
        tenants: dict[str, TenantSecurityPolicy] | None = None,
    ) -> None:
        self._platform = platform or PlatformSecurityPolicy()
        self._tenants: dict[str, TenantSecurityPolicy] = dict(tenants or {})

    async def get_platform_policy(self) -> PlatformSecurityPolicy:
        return self._platform

    async def get_tenant_policy(self, tenant_id: str) -> TenantSecurityPolicy | None:
        return self._tenants.get(tenant_id)

    async def save_platform_policy(self, policy: PlatformSecurityPolicy) -> None:
        self._platform = policy

    async def save_tenant_policy(self, policy: TenantSecurityPolicy) -> None:
        self._tenants[policy.tenant_id] = policy


__all__: list[str] = ["InMemoryPolicyStore"]
