"""Request context for capturing HTTP request metadata.

Provides async-safe context variables for request-level information used
to enrich audit events.
"""

from __future__ import annotations

from contextvars import ContextVar, Token
from dataclasses import dataclass

USER_AGENT_MAX_LENGTH = 255


@dataclass(frozen=True)
class RequestContext:
    """Request-level metadata for auditing.

    Attributes:
        request_id: Correlation ID for the request.
        ip_address: Client IP address (first X-Forwarded-For hop or peer).
        user_agent: Client user agent, truncated to 255 characters.
    """

    request_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    def __post_init__(self) -> None:
        if self.user_agent and len(self.user_agent) > USER_AGENT_MAX_LENGTH:
            object.__setattr__(
                self, "user_agent", self.user_agent[:USER_AGENT_MAX_LENGTH]
            )

    def to_dict(self) -> dict[str, str | None]:
        return {
            "request_id": self.request_id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
        }


_request_context: ContextVar[RequestContext | None] = ContextVar(
    "stepup_request_context", default=None
)


def get_request_context() -> RequestContext | None:
    return _request_context.get()


def set_request_context(context: RequestContext) -> Token[RequestContext | None]:
    """Set request context in current async context.

    Example:
        ```python
        token = set_request_context(RequestContext(
            request_id="abc-123",
            ip_address="192.168.1.1",
            user_agent="Mozilla/5.0...",
        ))
        try:
            ...
        finally:
            reset_request_context(token)
        ```
    """
    return _request_context.set(context)


def reset_request_context(token: Token[RequestContext | None]) -> None:
    _request_context.reset(token)


def clear_request_context() -> None:
    _request_context.set(None)


__all__: list[str] = [
    "USER_AGENT_MAX_LENGTH",
    "RequestContext",
    "get_request_context",
    "set_request_context",
    "reset_request_context",
    "clear_request_context",
]
