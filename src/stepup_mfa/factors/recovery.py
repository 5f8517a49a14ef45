"""Recovery code generation.

Recovery codes are single-use backup credentials for users who lose their
authenticator device. Plaintext codes are returned exactly once; only
SHA-256 hashes of their separator-free form are stored.
"""

from __future__ import annotations

import secrets
import string

from ..codes import RecoveryCode
from ..config import RecoveryCodeConfig


class RecoveryCodeGenerator:
    """Generates formatted recovery codes and their storage hashes.

    Example:
        ```python
        generator = RecoveryCodeGenerator()
        codes = generator.generate()          # ["K7QM-X2PD", ...] shown once
        hashes = generator.hash_all(codes)    # persisted on the factor
        ```
    """

    # Characters used in recovery codes (exclude ambiguous: 0, O, 1, I)
    ALPHABET = string.ascii_uppercase.replace("O", "").replace(
        "I", ""
    ) + string.digits.replace("0", "").replace("1", "")

    def __init__(self, config: RecoveryCodeConfig | None = None) -> None:
        self.config = config or RecoveryCodeConfig()

    def _generate_code(self) -> str:
        return "".join(
            secrets.choice(self.ALPHABET) for _ in range(self.config.code_length)
        )

    def _format_code(self, code: str) -> str:
        """Format code with dashes for readability (e.g. "ABCD-EFGH")."""
        size = self.config.group_size
        return "-".join(code[i : i + size] for i in range(0, len(code), size))

    def generate(self) -> list[str]:
        """Generate a full set of distinct plaintext codes."""
        codes: list[str] = []
        seen: set[str] = set()
        while len(codes) < self.config.count:
            raw = self._generate_code()
            if raw in seen:
                continue
            seen.add(raw)
            codes.append(self._format_code(raw))
        return codes

    @staticmethod
    def hash_all(codes: list[str]) -> frozenset[str]:
        return frozenset(RecoveryCode.parse(code).fingerprint() for code in codes)


__all__: list[str] = ["RecoveryCodeGenerator"]
