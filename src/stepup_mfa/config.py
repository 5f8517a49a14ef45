"""Configuration for the step-up subsystem.

All configuration objects are frozen dataclasses passed explicitly at
construction time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

# Endpoint names used as rate-limit buckets
SIGNIN_ENDPOINT = "auth:signin"
SIGNUP_ENDPOINT = "auth:signup"
DEFAULT_ENDPOINT = "api:default"
VERIFY_ENDPOINT = "mfa:verify"
CONFIRM_ENDPOINT = "mfa:confirm"
ENROLL_ENDPOINT = "mfa:enroll"
DISABLE_ENDPOINT = "mfa:disable"
REGENERATE_ENDPOINT = "mfa:regenerate"


@dataclass(frozen=True)
class RateLimitRule:
    """Request allowance for one endpoint.

    Attributes:
        max_requests: Requests allowed per window.
        window_seconds: Window length in seconds.
        lockout_seconds: If set, an exhausted window that receives another
            request is extended to end this many seconds later.
    """

    max_requests: int
    window_seconds: float
    lockout_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")


def _default_rules() -> Mapping[str, RateLimitRule]:
    return MappingProxyType(
        {
            SIGNIN_ENDPOINT: RateLimitRule(5, 15 * 60),
            SIGNUP_ENDPOINT: RateLimitRule(3, 60 * 60),
            DEFAULT_ENDPOINT: RateLimitRule(100, 60),
            VERIFY_ENDPOINT: RateLimitRule(5, 15 * 60, lockout_seconds=30 * 60),
            CONFIRM_ENDPOINT: RateLimitRule(5, 10 * 60),
            ENROLL_ENDPOINT: RateLimitRule(10, 60 * 60),
            DISABLE_ENDPOINT: RateLimitRule(5, 10 * 60, lockout_seconds=30 * 60),
            REGENERATE_ENDPOINT: RateLimitRule(5, 60 * 60),
        }
    )


@dataclass(frozen=True)
class RateLimitConfig:
    """Per-endpoint rate-limit rules."""

    rules: Mapping[str, RateLimitRule] = field(default_factory=_default_rules)
    default_endpoint: str = DEFAULT_ENDPOINT

    def rule_for(self, endpoint: str) -> RateLimitRule:
        """Rule for an endpoint, falling back to the default endpoint rule."""
        rule = self.rules.get(endpoint)
        if rule is not None:
            return rule
        try:
            return self.rules[self.default_endpoint]
        except KeyError as e:
            raise ValueError(
                f"No rate-limit rule for {endpoint!r} and no default "
                f"rule {self.default_endpoint!r}"
            ) from e

    def with_rule(self, endpoint: str, rule: RateLimitRule) -> RateLimitConfig:
        """Copy of this config with one rule replaced."""
        rules = dict(self.rules)
        rules[endpoint] = rule
        return RateLimitConfig(
            rules=MappingProxyType(rules), default_endpoint=self.default_endpoint
        )


@dataclass(frozen=True)
class TotpConfig:
    """TOTP parameters (RFC 6238).

    Attributes:
        issuer: Name shown in the authenticator app.
        digits: Code length.
        interval: Time-step length in seconds.
        valid_window: Adjacent steps accepted on either side of now.
        secret_bytes: Entropy of generated secrets.
    """

    issuer: str = "Payment Platform"
    digits: int = 6
    interval: int = 30
    valid_window: int = 1
    secret_bytes: int = 20


@dataclass(frozen=True)
class RecoveryCodeConfig:
    """Recovery code generation parameters."""

    count: int = 10
    code_length: int = 8
    group_size: int = 4


class PendingChallengePolicy(str, Enum):
    """What happens when a gate is hit while a challenge is already open."""

    REJECT = "reject"


@dataclass(frozen=True)
class StepUpConfig:
    """Top-level configuration.

    Attributes:
        gate_factor_management: When True, disabling the factor and
            regenerating recovery codes require a fresh step-up first.
        pending_challenge_policy: Handling of a second gate call while a
            challenge is open.
        verify_timeout_seconds: Upper bound for one verification call made
            from a challenge surface.
        countdown_tick_seconds: Countdown refresh period for open surfaces.
    """

    totp: TotpConfig = field(default_factory=TotpConfig)
    recovery: RecoveryCodeConfig = field(default_factory=RecoveryCodeConfig)
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)
    gate_factor_management: bool = False
    pending_challenge_policy: PendingChallengePolicy = PendingChallengePolicy.REJECT
    verify_timeout_seconds: float = 10.0
    countdown_tick_seconds: float = 1.0


__all__: list[str] = [
    "SIGNIN_ENDPOINT",
    "SIGNUP_ENDPOINT",
    "DEFAULT_ENDPOINT",
    "VERIFY_ENDPOINT",
    "CONFIRM_ENDPOINT",
    "ENROLL_ENDPOINT",
    "DISABLE_ENDPOINT",
    "REGENERATE_ENDPOINT",
    "RateLimitRule",
    "RateLimitConfig",
    "TotpConfig",
    "RecoveryCodeConfig",
    "PendingChallengePolicy",
    "StepUpConfig",
]
