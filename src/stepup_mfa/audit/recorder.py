"""Best-effort audit recording.

Audit writes never change the outcome of the operation being audited: a
failing store is logged and the event is dropped.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING

from ..request_context import get_request_context

if TYPE_CHECKING:
    from ..ports import IAuditStore
    from .events import AuditEvent

logger = logging.getLogger("stepup_mfa.audit")


class AuditRecorder:
    """Enriches events with request metadata and writes them to a store."""

    def __init__(self, store: IAuditStore) -> None:
        self.store = store

    def _enrich(self, event: AuditEvent) -> AuditEvent:
        ctx = get_request_context()
        if ctx is None:
            return event
        return dataclasses.replace(
            event,
            ip_address=event.ip_address or ctx.ip_address,
            user_agent=event.user_agent or ctx.user_agent,
            request_id=event.request_id or ctx.request_id,
        )

    async def record(self, event: AuditEvent) -> None:
        try:
            await self.store.record(self._enrich(event))
        except Exception:  # noqa: BLE001
            logger.exception(
                "Failed to record audit event %s for %s",
                event.action.value,
                event.actor,
            )


__all__: list[str] = ["AuditRecorder"]
