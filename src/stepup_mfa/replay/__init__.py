"""Replay protection for accepted one-time codes."""

from __future__ import annotations

from .guard import ReplayGuard
from .memory import InMemoryReplayStore, ReplayRecord
from .redis import RedisReplayStore

__all__: list[str] = [
    "ReplayGuard",
    "ReplayRecord",
    "InMemoryReplayStore",
    "RedisReplayStore",
]
