"""Ports (protocols) for step-up authentication.

Stores, the session provider and the challenge surface are defined as
protocols. Each store ships an in-memory adapter; the ephemeral stores
(replay, rate limit) also ship Redis adapters.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .audit.events import AuditEvent
    from .factors.models import AuthFactor
    from .policy.models import PlatformSecurityPolicy, TenantSecurityPolicy
    from .principal import Principal, TenantRef

GatedAction = Callable[[], Any]


@dataclass(frozen=True)
class RateLimitWindow:
    """Active counting window for one (identifier, endpoint) key.

    Attributes:
        window_start: When the window began.
        count: Requests counted in this window.
        reset_at: When the window (or its lockout extension) ends.
        locked: Whether the lockout extension was already applied.
    """

    window_start: datetime
    count: int
    reset_at: datetime
    locked: bool = False


# ═══════════════════════════════════════════════════════════════
# PERSISTENCE PORTS
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class IFactorStore(Protocol):
    """Per-user factor records, keyed by user id.

    Every write replaces the whole record; implementations must make
    ``save`` atomic so a factor is never observed half-updated.
    """

    async def get(self, user_id: str) -> AuthFactor | None:
        """Load the factor for a user, or None if none was created."""
        ...

    async def save(self, factor: AuthFactor) -> None:
        """Persist the whole factor record."""
        ...

    async def consume_recovery_code(self, user_id: str, code_hash: str) -> bool:
        """Atomically remove one unused recovery code hash.

        Returns:
            True if the hash was present and is now consumed.
        """
        ...

    async def mark_verified(self, user_id: str, verified_at: datetime) -> None:
        """Record a successful verification time."""
        ...


@runtime_checkable
class IPolicyStore(Protocol):
    """Platform singleton and per-tenant security policies."""

    async def get_platform_policy(self) -> PlatformSecurityPolicy: ...

    async def get_tenant_policy(self, tenant_id: str) -> TenantSecurityPolicy | None:
        ...

    async def save_platform_policy(self, policy: PlatformSecurityPolicy) -> None: ...

    async def save_tenant_policy(self, policy: TenantSecurityPolicy) -> None: ...


@runtime_checkable
class IReplayStore(Protocol):
    """Accepted-code records with natural expiry."""

    async def exists(
        self, scope: str, code_hash: str, time_step: int, now: datetime
    ) -> bool:
        """Whether a non-expired record matches the scope and either the
        code hash or the time step."""
        ...

    async def add(
        self,
        scope: str,
        code_hash: str,
        time_step: int,
        expires_at: datetime,
        now: datetime,
    ) -> bool:
        """Insert a record unless a live one already matches, atomically.

        Returns:
            True if this call inserted the record.
        """
        ...


@runtime_checkable
class IRateLimitStore(Protocol):
    """Counting windows keyed by (identifier, endpoint).

    Implementations may under-count by one request under concurrent
    access but must never let more than one extra request through.
    """

    async def get_window(
        self, identifier: str, endpoint: str, now: datetime
    ) -> RateLimitWindow | None:
        """Active window for the key; expired windows are never returned."""
        ...

    async def start_window(
        self, identifier: str, endpoint: str, now: datetime, reset_at: datetime
    ) -> RateLimitWindow:
        """Begin a new window with count=1.

        If a concurrent caller already started one, count this request in
        that window instead. Returns the window after counting.
        """
        ...

    async def increment(
        self, identifier: str, endpoint: str, now: datetime
    ) -> RateLimitWindow | None:
        """Atomically increment the active window and return it with the new
        count; None if it expired meanwhile."""
        ...

    async def extend(
        self, identifier: str, endpoint: str, reset_at: datetime
    ) -> None:
        """Push the reset time of the active window and mark it locked."""
        ...

    async def delete(self, identifier: str, endpoint: str) -> None: ...


@runtime_checkable
class IAuditStore(Protocol):
    """Append-only audit event sink."""

    async def record(self, event: AuditEvent) -> None: ...


# ═══════════════════════════════════════════════════════════════
# COLLABORATOR PORTS
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class ISessionProvider(Protocol):
    """Current user and tenant, supplied by the session/authorization layer."""

    async def get_current_user(self) -> Principal:
        """Raises PolicyDeniedError if no user is authenticated."""
        ...

    async def get_active_tenant(self) -> TenantRef | None: ...


@runtime_checkable
class IChallengeSurface(Protocol):
    """The single visible challenge prompt of one session.

    Display-only: it never decides outcomes and never calls the verifier.
    """

    def open(self, action_kind: str) -> None: ...

    def close(self) -> None: ...

    def show_countdown(self, seconds_remaining: int) -> None: ...

    def show_remaining_attempts(self, remaining: int) -> None: ...

    def show_error(self, code: str, message: str) -> None: ...


@runtime_checkable
class IStepUpGate(Protocol):
    """Capability every sensitive call site depends on."""

    async def requires_step_up(self, action_kind: str) -> bool:
        """UI hint: whether running this action now would prompt."""
        ...

    async def check_and_challenge(
        self, action: GatedAction, *, action_kind: str
    ) -> Any:
        """Run the action now if fresh, otherwise capture it and challenge."""
        ...


__all__: list[str] = [
    "GatedAction",
    "RateLimitWindow",
    "IFactorStore",
    "IPolicyStore",
    "IReplayStore",
    "IRateLimitStore",
    "IAuditStore",
    "ISessionProvider",
    "IChallengeSurface",
    "IStepUpGate",
]
