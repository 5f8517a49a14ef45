"""Principal value object for the acting user.

A Principal is an immutable snapshot of who is acting and in which tenant,
as supplied by the session/authorization layer.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

SUPER_ADMIN_ROLE = "super_admin"


class ValueObject(BaseModel):
    """Base class for Value Objects.

    Value objects are immutable and defined by their attributes.
    Equality is structural (all fields compared).
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, self.__class__):
            return False
        return self.model_dump() == other.model_dump()

    def __hash__(self) -> int:
        return hash(tuple(sorted(self.model_dump().items())))


class Principal(ValueObject):
    """Immutable identity of the acting user.

    Attributes:
        user_id: Unique identifier for the user.
        username: Human-readable username or email, used as the account
            name in provisioning URIs.
        role: Role within the active tenant (owner, admin, finance, ...).
        tenant_id: Active tenant, or None for platform-level users.
        is_super_admin: Platform-level super administrator flag.

    Example:
        ```python
        principal = Principal(
            user_id="u-123",
            username="jane@example.com",
            role="finance",
            tenant_id="acme",
        )
        ```
    """

    user_id: str
    username: str = ""
    role: str | None = None
    tenant_id: str | None = None
    is_super_admin: bool = False

    @property
    def account_name(self) -> str:
        return self.username or self.user_id

    @property
    def effective_role(self) -> str | None:
        """Role used for policy decisions; super admins resolve to super_admin."""
        if self.is_super_admin:
            return SUPER_ADMIN_ROLE
        return self.role


class TenantRef(ValueObject):
    """Reference to the active tenant."""

    id: str


__all__: list[str] = ["SUPER_ADMIN_ROLE", "ValueObject", "Principal", "TenantRef"]
