"""Per-user TOTP factors, recovery codes and their storage."""

from __future__ import annotations

from .memory import InMemoryFactorStore
from .models import AuthFactor, FactorState
from .recovery import RecoveryCodeGenerator
from .totp import EnrollmentSetup, TotpService

__all__: list[str] = [
    "AuthFactor",
    "FactorState",
    "EnrollmentSetup",
    "TotpService",
    "RecoveryCodeGenerator",
    "InMemoryFactorStore",
]
