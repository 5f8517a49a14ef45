"""Step-up authentication errors.

All errors inherit from StepUpError and carry a stable machine-readable
``code`` used for audit records and transport payloads.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

# ═══════════════════════════════════════════════════════════════
# BASE ERROR
# ═══════════════════════════════════════════════════════════════


class StepUpError(Exception):
    """Root exception for the step-up authentication subsystem."""

    code: str = "STEP_UP_ERROR"
    default_message: str = "Step-up authentication failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for API responses."""
        return {"error": self.message, "code": self.code}


# ═══════════════════════════════════════════════════════════════
# VERIFICATION ERRORS
# ═══════════════════════════════════════════════════════════════


class VerificationError(StepUpError):
    """Base class for code verification failures.

    Attributes:
        remaining_attempts: Attempts left in the current rate-limit window,
            or None when the count is unknown.
    """

    code = "VERIFICATION_FAILED"

    def __init__(
        self,
        message: str | None = None,
        *,
        remaining_attempts: int | None = None,
    ) -> None:
        super().__init__(message)
        self.remaining_attempts = remaining_attempts

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.remaining_attempts is not None:
            data["remaining_attempts"] = self.remaining_attempts
        return data


class InvalidCodeError(VerificationError):
    """Raised when a submitted code is wrong, malformed or already consumed."""

    code = "INVALID_CODE"
    default_message = "Invalid verification code"


class ExpiredOrReplayedCodeError(VerificationError):
    """Raised when a TOTP code was already accepted within its window."""

    code = "CODE_REPLAYED"
    default_message = "This code has already been used. Wait for a new code."


class RateLimitedError(VerificationError):
    """Raised when too many attempts were made in the current window.

    Attributes:
        reset_at: When the window (or lockout) ends.
    """

    code = "RATE_LIMITED"
    default_message = "Too many attempts. Please try again later."

    def __init__(
        self,
        message: str | None = None,
        *,
        reset_at: datetime | None = None,
    ) -> None:
        super().__init__(message, remaining_attempts=0)
        self.reset_at = reset_at

    def retry_after_seconds(self, now: datetime) -> int:
        """Whole seconds until the limit resets (never negative)."""
        if self.reset_at is None:
            return 0
        return max(0, int((self.reset_at - now).total_seconds() + 0.999))

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["reset_at"] = self.reset_at.isoformat() if self.reset_at else None
        return data


# ═══════════════════════════════════════════════════════════════
# ENROLLMENT ERRORS
# ═══════════════════════════════════════════════════════════════


class EnrollmentRequiredError(StepUpError):
    """Raised when an operation needs an enabled factor that does not exist."""

    code = "MFA_ENROLL_REQUIRED"
    default_message = "Two-factor authentication must be enabled first"


class EnrollmentStateError(StepUpError):
    """Raised on an illegal factor state transition.

    Examples:
        - confirming without a pending enrollment
        - beginning enrollment while a factor is already enabled
    """

    code = "MFA_INVALID_STATE"
    default_message = "Operation not allowed in the current enrollment state"


# ═══════════════════════════════════════════════════════════════
# POLICY ERRORS
# ═══════════════════════════════════════════════════════════════


class PolicyDeniedError(StepUpError):
    """Raised when no tenant or role can be resolved for a policy decision."""

    code = "POLICY_DENIED"
    default_message = "Access denied: no resolvable tenant or role"


# ═══════════════════════════════════════════════════════════════
# CHALLENGE ERRORS
# ═══════════════════════════════════════════════════════════════


class ChallengeError(StepUpError):
    """Base class for challenge orchestration errors."""

    code = "CHALLENGE_ERROR"


class ChallengePendingError(ChallengeError):
    """Raised when a gate is invoked while another challenge is open."""

    code = "CHALLENGE_PENDING"
    default_message = "Another verification is already in progress"


class NoChallengePendingError(ChallengeError):
    """Raised when cancelling or submitting with no open challenge."""

    code = "CHALLENGE_NOT_PENDING"
    default_message = "No verification is in progress"


class StepUpRequiredError(ChallengeError):
    """Raised when an operation needs a fresh step-up that has lapsed."""

    code = "STEP_UP_REQUIRED"
    default_message = "Verify your identity to continue"


# ═══════════════════════════════════════════════════════════════
# INFRASTRUCTURE ERRORS
# ═══════════════════════════════════════════════════════════════


class TransientStoreError(StepUpError):
    """Raised when a backing store is temporarily unavailable.

    The rate limiter fails open on this error; the verifier fails closed.
    """

    code = "STORE_UNAVAILABLE"
    default_message = "Security store temporarily unavailable"


__all__: list[str] = [
    # Base
    "StepUpError",
    # Verification
    "VerificationError",
    "InvalidCodeError",
    "ExpiredOrReplayedCodeError",
    "RateLimitedError",
    # Enrollment
    "EnrollmentRequiredError",
    "EnrollmentStateError",
    # Policy
    "PolicyDeniedError",
    # Challenge
    "ChallengeError",
    "ChallengePendingError",
    "NoChallengePendingError",
    "StepUpRequiredError",
    # Infrastructure
    "TransientStoreError",
]
