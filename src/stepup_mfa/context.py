"""Principal context management using ContextVar.

Provides async-safe context variables for storing the acting principal
without passing it through function parameters, plus a session provider
that reads from them.
"""

from __future__ import annotations

from contextvars import ContextVar, Token

from .exceptions import PolicyDeniedError
from .principal import Principal, TenantRef

_principal_context: ContextVar[Principal | None] = ContextVar(
    "stepup_principal", default=None
)


def get_current_principal() -> Principal:
    """Get current principal from context.

    Raises:
        PolicyDeniedError: If no principal is set in the context.
    """
    principal = _principal_context.get()
    if principal is None:
        raise PolicyDeniedError("No authenticated user in context")
    return principal


def get_current_principal_or_none() -> Principal | None:
    return _principal_context.get()


def set_principal(principal: Principal) -> Token[Principal | None]:
    """Set principal in current async context.

    Example:
        ```python
        token = set_principal(principal)
        try:
            await service.verify("123456")
        finally:
            reset_principal(token)
        ```
    """
    return _principal_context.set(principal)


def reset_principal(token: Token[Principal | None]) -> None:
    """Reset principal context to previous state."""
    _principal_context.reset(token)


def clear_principal() -> None:
    """Clear principal from context."""
    _principal_context.set(None)


class ContextSessionProvider:
    """ISessionProvider backed by the principal context variable."""

    async def get_current_user(self) -> Principal:
        return get_current_principal()

    async def get_active_tenant(self) -> TenantRef | None:
        principal = get_current_principal()
        if principal.tenant_id is None:
            return None
        return TenantRef(id=principal.tenant_id)


class StaticSessionProvider:
    """ISessionProvider for a fixed principal (tests, background jobs)."""

    def __init__(self, principal: Principal) -> None:
        self.principal = principal

    async def get_current_user(self) -> Principal:
        return self.principal

    async def get_active_tenant(self) -> TenantRef | None:
        if self.principal.tenant_id is None:
            return None
        return TenantRef(id=self.principal.tenant_id)


__all__: list[str] = [
    "get_current_principal",
    "get_current_principal_or_none",
    "set_principal",
    "reset_principal",
    "clear_principal",
    "ContextSessionProvider",
    "StaticSessionProvider",
]
