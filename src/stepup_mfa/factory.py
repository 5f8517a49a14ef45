"""Factory functions wiring the step-up subsystem.

Any store not supplied defaults to its in-memory implementation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .audit.memory import InMemoryAuditStore
from .audit.recorder import AuditRecorder
from .clock import Clock, utc_now
from .config import StepUpConfig
from .context import ContextSessionProvider
from .enrollment import EnrollmentService
from .factors.memory import InMemoryFactorStore
from .factors.recovery import RecoveryCodeGenerator
from .factors.totp import TotpService
from .policy.memory import InMemoryPolicyStore
from .policy.resolver import PolicyResolver
from .ratelimit.limiter import RateLimiter
from .ratelimit.memory import InMemoryRateLimitStore
from .replay.guard import ReplayGuard
from .replay.memory import InMemoryReplayStore
from .service import StepUpService
from .verifier import Verifier

if TYPE_CHECKING:
    from .ports import (
        IAuditStore,
        IFactorStore,
        IPolicyStore,
        IRateLimitStore,
        IReplayStore,
        ISessionProvider,
    )


def build_step_up_service(
    config: StepUpConfig | None = None,
    *,
    session: ISessionProvider | None = None,
    factor_store: IFactorStore | None = None,
    policy_store: IPolicyStore | None = None,
    replay_store: IReplayStore | None = None,
    rate_limit_store: IRateLimitStore | None = None,
    audit_store: IAuditStore | None = None,
    clock: Clock = utc_now,
) -> StepUpService:
    """Build a fully wired StepUpService.

    Args:
        config: Step-up configuration (defaults to ``StepUpConfig()``).
        session: Session provider (defaults to the principal ContextVar).
        factor_store: Factor persistence.
        policy_store: Platform/tenant policy persistence.
        replay_store: Accepted-code records (Redis in production).
        rate_limit_store: Rate-limit windows (Redis in production).
        audit_store: Audit sink.
        clock: Time source shared by every component.

    Example:
        ```python
        from redis.asyncio import Redis

        redis = Redis.from_url("redis://localhost")
        service = build_step_up_service(
            replay_store=RedisReplayStore(redis),
            rate_limit_store=RedisRateLimitStore(redis),
        )
        ```
    """
    config = config or StepUpConfig()
    factors = factor_store or InMemoryFactorStore()
    audit = AuditRecorder(audit_store or InMemoryAuditStore())
    totp = TotpService(config.totp)
    limiter = RateLimiter(
        rate_limit_store or InMemoryRateLimitStore(), config.rate_limits, clock=clock
    )
    verifier = Verifier(
        factors,
        limiter,
        ReplayGuard(replay_store or InMemoryReplayStore(), clock=clock),
        totp,
        audit,
        clock=clock,
    )
    enrollment = EnrollmentService(
        factors,
        verifier,
        totp,
        RecoveryCodeGenerator(config.recovery),
        limiter,
        audit,
        clock=clock,
    )
    resolver = PolicyResolver(policy_store or InMemoryPolicyStore(), clock=clock)
    return StepUpService(
        session or ContextSessionProvider(),
        enrollment,
        verifier,
        resolver,
        factors,
        audit,
        config,
        clock=clock,
    )


__all__: list[str] = ["build_step_up_service"]
