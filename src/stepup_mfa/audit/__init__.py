"""Append-only audit trail for factor and gated-action events."""

from __future__ import annotations

from .events import (
    AuditAction,
    AuditEvent,
    factor_changed_event,
    gated_action_event,
    user_target,
    verification_event,
)
from .memory import InMemoryAuditStore
from .recorder import AuditRecorder

__all__: list[str] = [
    "AuditAction",
    "AuditEvent",
    "factor_changed_event",
    "gated_action_event",
    "user_target",
    "verification_event",
    "InMemoryAuditStore",
    "AuditRecorder",
]
