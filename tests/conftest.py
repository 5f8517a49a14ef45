"""Test configuration and fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pyotp
import pytest
import pytest_asyncio

from stepup_mfa import (
    InMemoryAuditStore,
    InMemoryFactorStore,
    InMemoryPolicyStore,
    InMemoryRateLimitStore,
    InMemoryReplayStore,
    Principal,
    StaticSessionProvider,
    StepUpConfig,
    StepUpService,
    TotpService,
    build_step_up_service,
)

# Aligned to a 30-second TOTP step boundary.
START = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests that require external services",
    )


class FakeClock:
    """Controllable clock; call it to read the time."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeSurface:
    """Challenge surface recording every call."""

    def __init__(self) -> None:
        self.opened: list[str] = []
        self.closed = 0
        self.countdowns: list[int] = []
        self.remaining: list[int] = []
        self.errors: list[tuple[str, str]] = []

    @property
    def is_open(self) -> bool:
        return len(self.opened) > self.closed

    def open(self, action_kind: str) -> None:
        self.opened.append(action_kind)

    def close(self) -> None:
        self.closed += 1

    def show_countdown(self, seconds_remaining: int) -> None:
        self.countdowns.append(seconds_remaining)

    def show_remaining_attempts(self, remaining: int) -> None:
        self.remaining.append(remaining)

    def show_error(self, code: str, message: str) -> None:
        self.errors.append((code, message))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def principal() -> Principal:
    """A tenant owner in tenant acme."""
    return Principal(
        user_id="user-123",
        username="jane@example.com",
        role="owner",
        tenant_id="acme",
    )


@pytest.fixture
def super_admin() -> Principal:
    return Principal(user_id="root-1", username="root@example.com", is_super_admin=True)


@pytest.fixture
def surface() -> FakeSurface:
    return FakeSurface()


@pytest.fixture
def totp() -> TotpService:
    return TotpService()


@pytest.fixture
def factor_store() -> InMemoryFactorStore:
    return InMemoryFactorStore()


@pytest.fixture
def policy_store() -> InMemoryPolicyStore:
    return InMemoryPolicyStore()


@pytest.fixture
def audit_store() -> InMemoryAuditStore:
    return InMemoryAuditStore()


@pytest.fixture
def replay_store() -> InMemoryReplayStore:
    return InMemoryReplayStore()


@pytest.fixture
def rate_limit_store() -> InMemoryRateLimitStore:
    return InMemoryRateLimitStore()


@pytest.fixture
def config() -> StepUpConfig:
    return StepUpConfig()


@pytest.fixture
def service(
    config: StepUpConfig,
    principal: Principal,
    clock: FakeClock,
    factor_store: InMemoryFactorStore,
    policy_store: InMemoryPolicyStore,
    replay_store: InMemoryReplayStore,
    rate_limit_store: InMemoryRateLimitStore,
    audit_store: InMemoryAuditStore,
) -> StepUpService:
    """Service acting as ``principal`` with every store in memory."""
    return build_step_up_service(
        config,
        session=StaticSessionProvider(principal),
        factor_store=factor_store,
        policy_store=policy_store,
        replay_store=replay_store,
        rate_limit_store=rate_limit_store,
        audit_store=audit_store,
        clock=clock,
    )


@pytest_asyncio.fixture
async def enrolled(
    service: StepUpService, totp: TotpService, clock: FakeClock
) -> tuple[str, list[str]]:
    """Enroll the service user; returns (secret, recovery codes)."""
    setup = await service.begin_enrollment()
    code = pyotp.TOTP(setup.secret).at(clock())
    codes = await service.confirm_enrollment(code)
    return setup.secret, codes
