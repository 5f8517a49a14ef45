"""In-memory audit store for testing and development."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .events import AuditAction, AuditEvent


class InMemoryAuditStore:
    """Append-only IAuditStore with actor and action indexes.

    Note:
        Events are lost on restart. Not suitable for production use.

    Example:
        ```python
        store = InMemoryAuditStore()
        await store.record(verification_event(
            "u-123", success=False, method="totp", purpose="mfa:verify",
        ))
        failures = await store.get_recent_failures(actor="u-123")
        ```
    """

    def __init__(self) -> None:
        self._events: list[AuditEvent] = []
        self._by_actor: dict[str, list[int]] = defaultdict(list)
        self._by_action: dict[str, list[int]] = defaultdict(list)

    async def record(self, event: AuditEvent) -> None:
        index = len(self._events)
        self._events.append(event)
        if event.actor:
            self._by_actor[event.actor].append(index)
        self._by_action[event.action.value].append(index)

    async def get_events(
        self,
        actor: str,
        *,
        actions: list[AuditAction] | None = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Events performed by an actor, most recent first."""
        results: list[AuditEvent] = []
        for idx in reversed(self._by_actor.get(actor, [])):
            event = self._events[idx]
            if actions and event.action not in actions:
                continue
            results.append(event)
            if len(results) >= limit:
                break
        return results

    async def get_events_by_action(
        self, action: AuditAction, *, limit: int = 100
    ) -> list[AuditEvent]:
        indices = self._by_action.get(action.value, [])
        return [self._events[idx] for idx in reversed(indices)][:limit]

    async def get_recent_failures(
        self,
        *,
        actor: str | None = None,
        minutes: int = 15,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Unsuccessful events within the last ``minutes``, most recent first."""
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=minutes)
        if actor:
            indices = self._by_actor.get(actor, [])
        else:
            indices = list(range(len(self._events)))

        results: list[AuditEvent] = []
        for idx in reversed(indices):
            event = self._events[idx]
            if event.timestamp < cutoff or event.success:
                continue
            results.append(event)
            if len(results) >= limit:
                break
        return results

    def all(self) -> list[AuditEvent]:
        """Every event in insertion order."""
        return list(self._events)

    def clear(self) -> None:
        self._events.clear()
        self._by_actor.clear()
        self._by_action.clear()

    def count(self) -> int:
        return len(self._events)

    def count_by_action(self, action: AuditAction) -> int:
        return len(self._by_action.get(action.value, []))


__all__: list[str] = ["InMemoryAuditStore"]
