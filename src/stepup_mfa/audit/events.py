"""Audit events for step-up authentication.

Every enrollment, verification, disable and regeneration operation, and
every gated-action outcome, produces one append-only AuditEvent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class AuditAction(Enum):
    """Audited actions.

    Naming follows the pattern: `<resource>.<action>[.<outcome>]`
    """

    # Enrollment
    ENROLL_INITIATED = "mfa.enroll.initiated"
    ENROLL_FAILED = "mfa.enroll.failed"
    ENABLED = "mfa.enabled"

    # Verification
    VERIFY_SUCCESS = "mfa.verify.success"
    VERIFY_FAILED = "mfa.verify.failed"
    VERIFY_LOCKED = "mfa.verify.locked"
    RECOVERY_CODE_USED = "mfa.recovery.used"

    # Factor management
    DISABLED = "mfa.disabled"
    DISABLE_FAILED = "mfa.disable.failed"
    RECOVERY_REGENERATED = "mfa.recovery.regenerated"

    # Gated actions
    ACTION_EXECUTED = "stepup.action.executed"
    ACTION_CHALLENGED = "stepup.action.challenged"
    ACTION_CANCELLED = "stepup.action.cancelled"
    ACTION_DENIED = "stepup.action.denied"
    ACTION_FAILED = "stepup.action.failed"

    # Policy
    POLICY_UPDATED = "policy.updated"


@dataclass(frozen=True)
class AuditEvent:
    """Append-only audit record.

    Attributes:
        action: What happened.
        actor: User who performed the action.
        target: Affected resource (e.g. ``user:<id>``).
        tenant_id: Active tenant, if any.
        before: Snapshot of the target before the action.
        after: Snapshot of the target after the action.
        timestamp: When the event occurred (UTC).
        ip_address: Client IP address (if available).
        user_agent: Client user agent string (if available).
        request_id: Correlation ID for request tracing.
        success: Whether the operation succeeded.
        error_code: Machine error code if the operation failed.
        metadata: Additional event-specific data.
    """

    action: AuditAction
    actor: str | None = None
    target: str | None = None
    tenant_id: str | None = None
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    ip_address: str | None = None
    user_agent: str | None = None
    request_id: str | None = None
    success: bool = True
    error_code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.success and not self.error_code:
            object.__setattr__(self, "error_code", "UNKNOWN_ERROR")

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for serialization."""
        return {
            "action": self.action.value,
            "actor": self.actor,
            "target": self.target,
            "tenant_id": self.tenant_id,
            "before": self.before,
            "after": self.after,
            "timestamp": self.timestamp.isoformat(),
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "request_id": self.request_id,
            "success": self.success,
            "error_code": self.error_code,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditEvent:
        """Create event from dictionary.

        Raises:
            ValueError: If action is missing or unknown.
        """
        action_str = data.get("action")
        if action_str is None:
            raise ValueError("Missing required 'action'")

        try:
            action = AuditAction(action_str)
        except ValueError as e:
            raise ValueError(f"Invalid action: {action_str}") from e

        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
            if timestamp.tzinfo is None:
                timestamp = timestamp.replace(tzinfo=timezone.utc)
        elif timestamp is None:
            timestamp = datetime.now(timezone.utc)

        return cls(
            action=action,
            actor=data.get("actor"),
            target=data.get("target"),
            tenant_id=data.get("tenant_id"),
            before=data.get("before"),
            after=data.get("after"),
            timestamp=timestamp,
            ip_address=data.get("ip_address"),
            user_agent=data.get("user_agent"),
            request_id=data.get("request_id"),
            success=data.get("success", True),
            error_code=data.get("error_code"),
            metadata=data.get("metadata", {}),
        )


def user_target(user_id: str) -> str:
    return f"user:{user_id}"


# ═══════════════════════════════════════════════════════════════
# EVENT FACTORY FUNCTIONS
# ═══════════════════════════════════════════════════════════════


def verification_event(
    user_id: str,
    *,
    success: bool,
    method: str,
    purpose: str,
    error_code: str | None = None,
    remaining_attempts: int | None = None,
) -> AuditEvent:
    """Create a verification success/failure event."""
    meta: dict[str, Any] = {"method": method, "purpose": purpose}
    if remaining_attempts is not None:
        meta["remaining_attempts"] = remaining_attempts
    return AuditEvent(
        action=AuditAction.VERIFY_SUCCESS if success else AuditAction.VERIFY_FAILED,
        actor=user_id,
        target=user_target(user_id),
        success=success,
        error_code=error_code,
        metadata=meta,
    )


def factor_changed_event(
    action: AuditAction,
    user_id: str,
    *,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
    success: bool = True,
    error_code: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditEvent:
    """Create an enrollment / disable / regeneration event."""
    return AuditEvent(
        action=action,
        actor=user_id,
        target=user_target(user_id),
        before=before,
        after=after,
        success=success,
        error_code=error_code,
        metadata=metadata or {},
    )


def gated_action_event(
    action: AuditAction,
    user_id: str,
    action_kind: str,
    *,
    tenant_id: str | None = None,
    success: bool = True,
    error_code: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditEvent:
    """Create a gated-action outcome event."""
    meta = {"action_kind": action_kind}
    if metadata:
        meta.update(metadata)
    return AuditEvent(
        action=action,
        actor=user_id,
        target=f"action:{action_kind}",
        tenant_id=tenant_id,
        success=success,
        error_code=error_code,
        metadata=meta,
    )


__all__: list[str] = [
    "AuditAction",
    "AuditEvent",
    "user_target",
    "verification_event",
    "factor_changed_event",
    "gated_action_event",
]
