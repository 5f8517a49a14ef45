"""Platform and tenant step-up policy."""

from __future__ import annotations

from .memory import InMemoryPolicyStore
from .models import (
    ACTION_CATALOG,
    DEFAULT_STEP_UP_WINDOW_SECONDS,
    TENANT_ROLES,
    ActionSensitivity,
    PlatformSecurityPolicy,
    TenantSecurityPolicy,
    sensitivity_of,
)
from .resolver import PolicyResolver

__all__: list[str] = [
    "ACTION_CATALOG",
    "DEFAULT_STEP_UP_WINDOW_SECONDS",
    "TENANT_ROLES",
    "ActionSensitivity",
    "PlatformSecurityPolicy",
    "TenantSecurityPolicy",
    "sensitivity_of",
    "InMemoryPolicyStore",
    "PolicyResolver",
]
