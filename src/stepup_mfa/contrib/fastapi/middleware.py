"""FastAPI request-context middleware.

Captures client IP, user agent and a request id for every request so audit
events can be enriched without threading request objects through services.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any, cast

from ...request_context import (
    RequestContext,
    reset_request_context,
    set_request_context,
)

if TYPE_CHECKING:
    from fastapi import Request
    from starlette.middleware.base import BaseHTTPMiddleware
    from starlette.responses import Response
else:
    from starlette.middleware.base import BaseHTTPMiddleware  # noqa: F401

_IP_HEADERS = ("x-forwarded-for", "cf-connecting-ip", "x-real-ip")


def client_ip(headers: Any, fallback: str | None = None) -> str | None:
    """First hop of the proxy headers, else the peer address."""
    for name in _IP_HEADERS:
        value = headers.get(name)
        if value:
            return str(value).split(",")[0].strip()
    return fallback


class StepUpContextMiddleware(BaseHTTPMiddleware):
    """Sets the request context for the duration of each request.

    Example:
        ```python
        app = FastAPI()
        app.add_middleware(StepUpContextMiddleware)
        ```
    """

    def __init__(self, app: Any, *, request_id_header: str = "x-request-id") -> None:
        super().__init__(app)
        self.request_id_header = request_id_header

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        peer = request.client.host if request.client else None
        context = RequestContext(
            request_id=request.headers.get(self.request_id_header) or str(uuid.uuid4()),
            ip_address=client_ip(request.headers, peer),
            user_agent=request.headers.get("user-agent"),
        )
        token = set_request_context(context)
        try:
            return cast("Response", await call_next(request))
        finally:
            # Always restore to prevent context leakage between requests
            reset_request_context(token)


__all__: list[str] = ["client_ip", "StepUpContextMiddleware"]
