"""Security policy records and the sensitive-action catalog."""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING

from pydantic import Field

from ..principal import ValueObject

if TYPE_CHECKING:
    from collections.abc import Mapping

DEFAULT_STEP_UP_WINDOW_SECONDS = 300

TENANT_ROLES: tuple[str, ...] = ("owner", "admin", "manager", "finance", "developer")


class ActionSensitivity(str, Enum):
    """How sensitive a gated action is.

    - ROUTINE: never requires step-up.
    - SENSITIVE: step-up follows platform/tenant role policy.
    - CRITICAL: step-up is always required.
    """

    ROUTINE = "routine"
    SENSITIVE = "sensitive"
    CRITICAL = "critical"


ACTION_CATALOG: Mapping[str, ActionSensitivity] = MappingProxyType(
    {
        "create-payment": ActionSensitivity.SENSITIVE,
        "refund": ActionSensitivity.SENSITIVE,
        "payout": ActionSensitivity.SENSITIVE,
        "api-keys": ActionSensitivity.SENSITIVE,
        "webhooks": ActionSensitivity.SENSITIVE,
        "webhooks.replay": ActionSensitivity.SENSITIVE,
        "roles": ActionSensitivity.SENSITIVE,
        "approvals": ActionSensitivity.SENSITIVE,
        "alerts": ActionSensitivity.SENSITIVE,
        "reconciliation": ActionSensitivity.SENSITIVE,
        "export-large": ActionSensitivity.SENSITIVE,
        "deposit_request": ActionSensitivity.SENSITIVE,
        "withdrawal_request": ActionSensitivity.SENSITIVE,
        "users.provision": ActionSensitivity.SENSITIVE,
        "credentials.issue": ActionSensitivity.CRITICAL,
        "system_deposit": ActionSensitivity.CRITICAL,
        "system_withdrawal": ActionSensitivity.CRITICAL,
        "platform.settings.update": ActionSensitivity.CRITICAL,
        "mfa.disable": ActionSensitivity.SENSITIVE,
        "mfa.recovery.regenerate": ActionSensitivity.SENSITIVE,
        "dashboard.view": ActionSensitivity.ROUTINE,
    }
)


def sensitivity_of(action_kind: str) -> ActionSensitivity:
    """Sensitivity of a named action; unknown kinds are treated as SENSITIVE."""
    return ACTION_CATALOG.get(action_kind, ActionSensitivity.SENSITIVE)


class PlatformSecurityPolicy(ValueObject):
    """Platform-wide singleton policy.

    Attributes:
        force_for_super_admin: Super admins always step up (absolute override).
        force_for_all_roles: Every role always steps up (absolute override).
        default_require_for_role: Per-role defaults used when a tenant has
            no policy or no entry for the role.
        step_up_window_seconds: Freshness window when no tenant policy applies.
        first_login_requires_mfa: New users must enroll before first use.
    """

    force_for_super_admin: bool = True
    force_for_all_roles: bool = False
    default_require_for_role: dict[str, bool] = Field(
        default_factory=lambda: {"owner": True, "admin": True}
    )
    step_up_window_seconds: int = Field(
        default=DEFAULT_STEP_UP_WINDOW_SECONDS, gt=0
    )
    first_login_requires_mfa: bool = False

    def __hash__(self) -> int:
        return hash(self.model_dump_json())


class TenantSecurityPolicy(ValueObject):
    """Per-tenant policy; authoritative unless a platform force flag applies."""

    tenant_id: str
    require_for_role: dict[str, bool] = Field(default_factory=dict)
    step_up_window_seconds: int = Field(
        default=DEFAULT_STEP_UP_WINDOW_SECONDS, gt=0
    )
    first_login_requires_mfa: bool = False

    def __hash__(self) -> int:
        return hash(self.model_dump_json())


__all__: list[str] = [
    "DEFAULT_STEP_UP_WINDOW_SECONDS",
    "TENANT_ROLES",
    "ActionSensitivity",
    "ACTION_CATALOG",
    "sensitivity_of",
    "PlatformSecurityPolicy",
    "TenantSecurityPolicy",
]
