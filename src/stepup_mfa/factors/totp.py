"""TOTP (Time-based One-Time Password) primitives.

Works with any RFC 6238 authenticator app (Google Authenticator,
Microsoft Authenticator, Authy, 1Password, FreeOTP).

Uses pyotp internally. Unlike ``pyotp.TOTP.verify``, matching reports
*which* time step matched so the replay guard can pin the exact
(user, step) pair that was accepted.
"""

from __future__ import annotations

import hmac
import math
from dataclasses import dataclass
from datetime import datetime

import pyotp

from ..codes import TotpCode
from ..config import TotpConfig


@dataclass(frozen=True)
class EnrollmentSetup:
    """Data returned when enrollment begins.

    Attributes:
        secret: Base32-encoded TOTP secret.
        provisioning_uri: otpauth:// URI for QR code generation.
        manual_key: Human-readable key for manual entry.
    """

    secret: str
    provisioning_uri: str
    manual_key: str

    def __repr__(self) -> str:
        return "EnrollmentSetup(secret=<redacted>)"


class TotpService:
    """Secret generation, provisioning and step-aware code matching.

    Example:
        ```python
        totp = TotpService(TotpConfig(issuer="Payments"))
        secret = totp.generate_secret()
        setup = totp.provisioning(secret, "jane@example.com")
        step = totp.match(secret, TotpCode.parse("123 456"), now)
        if step is not None:
            ...  # accepted at time step `step`
        ```
    """

    def __init__(self, config: TotpConfig | None = None) -> None:
        self.config = config or TotpConfig()

    def _totp(self, secret: str) -> pyotp.TOTP:
        return pyotp.TOTP(
            secret,
            digits=self.config.digits,
            interval=self.config.interval,
            issuer=self.config.issuer,
        )

    def generate_secret(self) -> str:
        """Fresh random Base32 secret with ``secret_bytes`` of entropy."""
        length = max(32, math.ceil(self.config.secret_bytes * 8 / 5))
        return pyotp.random_base32(length=length)

    def provisioning(self, secret: str, account_name: str) -> EnrollmentSetup:
        uri = self._totp(secret).provisioning_uri(
            name=account_name, issuer_name=self.config.issuer
        )
        return EnrollmentSetup(
            secret=secret,
            provisioning_uri=uri,
            manual_key=self._format_secret(secret),
        )

    def _format_secret(self, secret: str) -> str:
        """Format secret as groups of 4 characters for manual entry."""
        secret = secret.rstrip("=")
        return " ".join(secret[i : i + 4] for i in range(0, len(secret), 4))

    def time_step(self, now: datetime) -> int:
        return int(now.timestamp()) // self.config.interval

    def match(self, secret: str, code: TotpCode, now: datetime) -> int | None:
        """Match a code against the current step and its neighbours.

        Args:
            secret: Base32 secret.
            code: Parsed TOTP code.
            now: Verification time.

        Returns:
            The matched time step, or None when nothing matched.
        """
        if len(code.digits) != self.config.digits:
            return None
        totp = self._totp(secret)
        current = self.time_step(now)
        window = self.config.valid_window
        matched: int | None = None
        # No early exit: every candidate step is compared.
        for offset in range(-window, window + 1):
            step = current + offset
            if hmac.compare_digest(totp.generate_otp(step), code.digits):
                matched = step
        return matched

    def step_expiry_seconds(self, time_step: int, now: datetime) -> int:
        """Seconds until a step can no longer match (at least 1)."""
        interval = self.config.interval
        last_valid_end = (time_step + self.config.valid_window + 1) * interval
        return max(1, int(math.ceil(last_valid_end - now.timestamp())))


__all__: list[str] = ["EnrollmentSetup", "TotpService"]
