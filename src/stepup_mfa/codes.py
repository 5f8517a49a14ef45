"""Submitted verification codes as an explicit tagged variant.

Raw user input is parsed exactly once, at the boundary, into either a
``TotpCode`` or a ``RecoveryCode``. Nothing downstream infers the code kind
from the shape of a string.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from enum import Enum
from typing import Union

_NON_DIGITS = re.compile(r"\D")
_RECOVERY_ALLOWED = re.compile(r"^[A-Z0-9]+(?:[-\s][A-Z0-9]+)*$")
_SEPARATORS = re.compile(r"[-\s]")

TOTP_LENGTH = 6


class CodeType(str, Enum):
    """Kind of code a user submits."""

    TOTP = "totp"
    RECOVERY = "recovery"


@dataclass(frozen=True)
class TotpCode:
    """A time-based one-time code, normalized to digits only."""

    digits: str

    @property
    def kind(self) -> CodeType:
        return CodeType.TOTP

    @property
    def is_well_formed(self) -> bool:
        return len(self.digits) == TOTP_LENGTH

    @classmethod
    def parse(cls, raw: str) -> TotpCode:
        return cls(digits=_NON_DIGITS.sub("", raw or ""))

    def fingerprint(self) -> str:
        """SHA-256 hex digest used by the replay guard."""
        return hashlib.sha256(self.digits.encode()).hexdigest()


@dataclass(frozen=True)
class RecoveryCode:
    """A single-use recovery code, upper-cased with separators preserved.

    Attributes:
        value: Normalized display form (e.g. ``ABCD-EFGH``).
    """

    value: str

    @property
    def kind(self) -> CodeType:
        return CodeType.RECOVERY

    @property
    def is_well_formed(self) -> bool:
        return bool(self.value) and bool(_RECOVERY_ALLOWED.match(self.value))

    @property
    def canonical(self) -> str:
        """Separator-free form that is hashed for storage."""
        return _SEPARATORS.sub("", self.value)

    @classmethod
    def parse(cls, raw: str) -> RecoveryCode:
        collapsed = " ".join((raw or "").split())
        return cls(value=collapsed.upper())

    def fingerprint(self) -> str:
        return hash_recovery_code(self.canonical)


VerificationCode = Union[TotpCode, RecoveryCode]


def hash_recovery_code(canonical: str) -> str:
    """Hash a separator-free recovery code for storage and lookup."""
    return hashlib.sha256(canonical.upper().encode()).hexdigest()


def parse_code(raw: str, code_type: CodeType | str = CodeType.TOTP) -> VerificationCode:
    """Parse raw input into a tagged code.

    Args:
        raw: User-submitted string.
        code_type: ``totp`` or ``recovery``.

    Returns:
        TotpCode or RecoveryCode. Malformed input still parses; callers check
        ``is_well_formed`` so malformed submissions count as failed attempts.

    Raises:
        ValueError: If code_type is not a known code type.
    """
    kind = CodeType(code_type)
    if kind is CodeType.TOTP:
        return TotpCode.parse(raw)
    return RecoveryCode.parse(raw)


__all__: list[str] = [
    "TOTP_LENGTH",
    "CodeType",
    "TotpCode",
    "RecoveryCode",
    "VerificationCode",
    "hash_recovery_code",
    "parse_code",
]
