"""Per-session challenge orchestration for gated actions."""

from __future__ import annotations

from .countdown import CountdownTicker, totp_seconds_remaining
from .orchestrator import ChallengeOrchestrator, GateOutcome, would_challenge

__all__: list[str] = [
    "ChallengeOrchestrator",
    "GateOutcome",
    "CountdownTicker",
    "totp_seconds_remaining",
    "would_challenge",
]
