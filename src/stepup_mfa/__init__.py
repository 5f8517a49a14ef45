"""Step-up MFA

Sensitive-action gating: "Prove it's still you."

Enforces a fresh TOTP (or recovery-code) challenge before sensitive
operations, manages factor enrollment and recovery, defends against replay
and brute force, and varies enforcement by platform/tenant policy and role.

Usage:
    ```python
    from stepup_mfa import (
        Principal,
        build_step_up_service,
        set_principal,
    )

    service = build_step_up_service()
    set_principal(Principal(user_id="u-1", role="finance", tenant_id="acme"))

    gate = service.open_session(surface)
    await gate.check_and_challenge(issue_refund, action_kind="refund")
    ```

Submodules:
    - `factors`: TOTP primitives, recovery codes, factor storage
    - `ratelimit`: per-endpoint limiter with in-memory and Redis stores
    - `replay`: accepted-code replay guard with in-memory and Redis stores
    - `policy`: platform/tenant policy and the action catalog
    - `challenge`: per-session challenge orchestrator and countdown
    - `audit`: append-only audit events
    - `contrib.fastapi`: API router and request-context middleware
"""

from __future__ import annotations

# Audit
from .audit import (
    AuditAction,
    AuditEvent,
    AuditRecorder,
    InMemoryAuditStore,
)

# Challenge
from .challenge import (
    ChallengeOrchestrator,
    CountdownTicker,
    GateOutcome,
    totp_seconds_remaining,
)

# Codes
from .codes import (
    CodeType,
    RecoveryCode,
    TotpCode,
    VerificationCode,
    parse_code,
)

# Configuration
from .config import (
    RateLimitConfig,
    RateLimitRule,
    RecoveryCodeConfig,
    StepUpConfig,
    TotpConfig,
)

# Context management
from .context import (
    ContextSessionProvider,
    StaticSessionProvider,
    clear_principal,
    get_current_principal,
    get_current_principal_or_none,
    reset_principal,
    set_principal,
)
from .enrollment import EnrollmentService

# Exceptions
from .exceptions import (
    ChallengeError,
    ChallengePendingError,
    EnrollmentRequiredError,
    EnrollmentStateError,
    ExpiredOrReplayedCodeError,
    InvalidCodeError,
    NoChallengePendingError,
    PolicyDeniedError,
    RateLimitedError,
    StepUpError,
    StepUpRequiredError,
    TransientStoreError,
    VerificationError,
)
from .factory import build_step_up_service

# Factors
from .factors import (
    AuthFactor,
    EnrollmentSetup,
    FactorState,
    InMemoryFactorStore,
    RecoveryCodeGenerator,
    TotpService,
)

# Policy
from .policy import (
    ActionSensitivity,
    InMemoryPolicyStore,
    PlatformSecurityPolicy,
    PolicyResolver,
    TenantSecurityPolicy,
    sensitivity_of,
)

# Ports
from .ports import (
    IAuditStore,
    IChallengeSurface,
    IFactorStore,
    IPolicyStore,
    IRateLimitStore,
    IReplayStore,
    ISessionProvider,
    IStepUpGate,
)
from .principal import Principal, TenantRef

# Rate limiting & replay
from .ratelimit import (
    InMemoryRateLimitStore,
    RateLimitDecision,
    RateLimiter,
    RedisRateLimitStore,
)
from .replay import InMemoryReplayStore, RedisReplayStore, ReplayGuard

# Request context
from .request_context import (
    RequestContext,
    clear_request_context,
    get_request_context,
    reset_request_context,
    set_request_context,
)
from .service import StepUpService
from .verifier import VerificationResult, Verifier

__all__: list[str] = [
    # Audit
    "AuditAction",
    "AuditEvent",
    "AuditRecorder",
    "InMemoryAuditStore",
    # Challenge
    "ChallengeOrchestrator",
    "CountdownTicker",
    "GateOutcome",
    "totp_seconds_remaining",
    # Codes
    "CodeType",
    "RecoveryCode",
    "TotpCode",
    "VerificationCode",
    "parse_code",
    # Configuration
    "RateLimitConfig",
    "RateLimitRule",
    "RecoveryCodeConfig",
    "StepUpConfig",
    "TotpConfig",
    # Context
    "ContextSessionProvider",
    "StaticSessionProvider",
    "clear_principal",
    "get_current_principal",
    "get_current_principal_or_none",
    "reset_principal",
    "set_principal",
    # Services
    "EnrollmentService",
    "StepUpService",
    "Verifier",
    "VerificationResult",
    "build_step_up_service",
    # Exceptions
    "ChallengeError",
    "ChallengePendingError",
    "EnrollmentRequiredError",
    "EnrollmentStateError",
    "ExpiredOrReplayedCodeError",
    "InvalidCodeError",
    "NoChallengePendingError",
    "PolicyDeniedError",
    "RateLimitedError",
    "StepUpError",
    "StepUpRequiredError",
    "TransientStoreError",
    "VerificationError",
    # Factors
    "AuthFactor",
    "EnrollmentSetup",
    "FactorState",
    "InMemoryFactorStore",
    "RecoveryCodeGenerator",
    "TotpService",
    # Policy
    "ActionSensitivity",
    "InMemoryPolicyStore",
    "PlatformSecurityPolicy",
    "PolicyResolver",
    "TenantSecurityPolicy",
    "sensitivity_of",
    # Ports
    "IAuditStore",
    "IChallengeSurface",
    "IFactorStore",
    "IPolicyStore",
    "IRateLimitStore",
    "IReplayStore",
    "ISessionProvider",
    "IStepUpGate",
    # Principal
    "Principal",
    "TenantRef",
    # Rate limiting & replay
    "InMemoryRateLimitStore",
    "RateLimitDecision",
    "RateLimiter",
    "RedisRateLimitStore",
    "InMemoryReplayStore",
    "RedisReplayStore",
    "ReplayGuard",
    # Request context
    "RequestContext",
    "clear_request_context",
    "get_request_context",
    "reset_request_context",
    "set_request_context",
]
